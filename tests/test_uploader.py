"""Tests for stream chunking and the chunked uploader."""

import io

import pytest

from backup.uploader import ChunkedUploader, iter_chunks, read_block
from common.constants import CHUNK_SIZE_BYTES
from common.exceptions import LocalIOError

CS = CHUNK_SIZE_BYTES


def patterned(length: int) -> bytes:
    """Bytes whose order is detectable (a repeating 0..250 ramp)."""
    ramp = bytes(range(251))
    return (ramp * (length // len(ramp) + 1))[:length]


class TrickleStream(io.RawIOBase):
    """Stream returning at most `step` bytes per read call."""

    def __init__(self, data: bytes, step: int):
        self._data = data
        self._pos = 0
        self._step = step

    def readable(self):
        return True

    def read(self, size=-1):
        if size is None or size < 0:
            size = len(self._data)
        size = min(size, self._step)
        piece = self._data[self._pos:self._pos + size]
        self._pos += len(piece)
        return piece


class FailingStream(io.RawIOBase):
    """Stream that serves `good` bytes, then fails."""

    def __init__(self, good: bytes):
        self._good = io.BytesIO(good)

    def readable(self):
        return True

    def read(self, size=-1):
        piece = self._good.read(size)
        if piece:
            return piece
        raise OSError(5, "Input/output error")


@pytest.mark.parametrize("length", [0, 1, CS - 1, CS, CS + 1, 3 * CS])
def test_chunks_concatenate_to_original(length):
    """Test that chunks in index order reproduce the stream exactly."""
    data = patterned(length)
    view = memoryview(data)
    offset = 0
    sizes = []

    for expected_index, chunk in enumerate(iter_chunks(io.BytesIO(data), CS)):
        assert chunk.index == expected_index
        assert chunk.data == view[offset:offset + len(chunk.data)]
        offset += len(chunk.data)
        sizes.append(len(chunk.data))

    assert offset == length
    assert len(sizes) == max(1, -(-length // CS))
    assert all(size == CS for size in sizes[:-1])
    assert 0 < sizes[-1] <= CS or length == 0


def test_empty_stream_yields_one_empty_chunk():
    chunks = list(iter_chunks(io.BytesIO(b''), 10))

    assert len(chunks) == 1
    assert chunks[0].index == 0
    assert chunks[0].data == b''


def test_short_reads_are_accumulated():
    data = patterned(1000)

    block = read_block(TrickleStream(data, 7), 100)
    chunks = list(iter_chunks(TrickleStream(data, 7), 300))

    assert block == data[:100]
    assert [len(c.data) for c in chunks] == [300, 300, 300, 100]


def test_upload_stream_sends_one_message_per_chunk(recording_channel):
    data = patterned(2500)
    seen = []

    uploader = ChunkedUploader(recording_channel, chunk_size=1000)
    last = uploader.upload_stream(
        io.BytesIO(data),
        lambda i: f"chunk_{i}.zip",
        lambda message, index: seen.append((message.id, index))
    )

    assert last == 2
    assert recording_channel.attachment_names() == ['chunk_0.zip', 'chunk_1.zip', 'chunk_2.zip']
    assert [index for _, index in seen] == [0, 1, 2]
    assert [mid for mid, _ in seen] == [m.id for m in recording_channel.sent]
    assert b''.join(recording_channel.attachment(mid) for mid, _ in seen) == data


def test_upload_empty_stream_sends_one_message(recording_channel):
    uploader = ChunkedUploader(recording_channel, chunk_size=1000)

    last = uploader.upload_stream(io.BytesIO(b''), lambda i: f"part{i}", lambda m, i: None)

    assert last == 0
    assert recording_channel.attachment_names() == ['part0']
    assert recording_channel.attachment(recording_channel.sent[0].id) == b''


def test_read_failure_aborts_upload(recording_channel):
    """Test that a local read failure ends the upload instead of retrying."""
    uploader = ChunkedUploader(recording_channel, chunk_size=100)

    with pytest.raises(LocalIOError) as exc_info:
        uploader.upload_stream(FailingStream(patterned(250)), lambda i: f"c{i}", lambda m, i: None)

    assert exc_info.value.reason == "Failed to read upload stream"
    assert recording_channel.attachment_names() == ['c0', 'c1']


def test_callback_failure_aborts_upload(recording_channel):
    uploader = ChunkedUploader(recording_channel, chunk_size=10)

    def on_chunk(message, index):
        if index == 1:
            raise LocalIOError("Failed to write download script")

    with pytest.raises(LocalIOError):
        uploader.upload_stream(io.BytesIO(patterned(50)), lambda i: f"c{i}", on_chunk)

    assert recording_channel.attachment_names() == ['c0', 'c1']


def test_rejects_non_positive_chunk_size(recording_channel):
    with pytest.raises(ValueError):
        ChunkedUploader(recording_channel, chunk_size=0)
