"""Splits a byte stream into bounded chunks and delivers one message per chunk."""

from typing import BinaryIO, Callable, Iterator

from common.constants import CHUNK_SIZE_BYTES
from common.exceptions import LocalIOError
from common.logging_config import get_logger
from common.types import Chunk, Message
from common.utils import format_file_size
from webhook.channel import MessageChannel

logger = get_logger(__name__)


def read_block(stream: BinaryIO, size: int) -> bytes:
    """
    Read up to size bytes, looping over short reads until full or EOF.

    Args:
        stream: Binary stream
        size: Block size in bytes

    Returns:
        Block bytes (shorter than size only at end of stream)

    Raises:
        OSError: If the underlying read fails
    """
    buffer = bytearray()
    while len(buffer) < size:
        piece = stream.read(size - len(buffer))
        if not piece:
            break
        buffer += piece
    return bytes(buffer)


def iter_chunks(stream: BinaryIO, chunk_size: int = CHUNK_SIZE_BYTES) -> Iterator[Chunk]:
    """
    Yield contiguous chunks of a stream.

    Every chunk but the last is exactly chunk_size bytes. An empty stream
    yields a single empty chunk so that every stream maps to at least one
    message; a stream whose length is an exact multiple of chunk_size does
    not get a trailing empty chunk.

    Args:
        stream: Binary stream
        chunk_size: Maximum chunk size in bytes

    Yields:
        Chunk objects with indices from 0
    """
    index = 0
    data = read_block(stream, chunk_size)
    while True:
        yield Chunk(index=index, data=data)
        if len(data) < chunk_size:
            return
        data = read_block(stream, chunk_size)
        if not data:
            return
        index += 1


class ChunkedUploader:
    """Delivers a byte stream as a sequence of single-attachment messages."""

    def __init__(self, channel: MessageChannel, chunk_size: int = CHUNK_SIZE_BYTES):
        """
        Initialize uploader.

        Args:
            channel: Channel used to deliver each chunk
            chunk_size: Maximum attachment size in bytes
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.channel = channel
        self.chunk_size = chunk_size

    def upload_stream(
        self,
        stream: BinaryIO,
        namer: Callable[[int], str],
        on_chunk: Callable[[Message, int], None]
    ) -> int:
        """
        Upload a stream chunk by chunk, strictly in order.

        Args:
            stream: Binary stream to upload
            namer: Maps a chunk index to its attachment filename
            on_chunk: Called with the delivered message and its index

        Returns:
            Index of the last chunk (chunk count minus one)

        Raises:
            LocalIOError: If reading the stream fails
            Exception: Whatever on_chunk raises, unchanged
        """
        chunks = iter_chunks(stream, self.chunk_size)
        last_index = 0

        while True:
            try:
                chunk = next(chunks)
            except StopIteration:
                return last_index
            except OSError as e:
                logger.error(f"Failed to read upload stream: {e}")
                raise LocalIOError("Failed to read upload stream", str(e)) from e

            name = namer(chunk.index)
            message = self.channel.send(Message.file(name, chunk.data))
            logger.info(f"Uploaded {name} ({format_file_size(len(chunk.data))}) [id={message.id}]")
            on_chunk(message, chunk.index)
            last_index = chunk.index
