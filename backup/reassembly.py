"""
Self-describing download script chain.

The level-0 script downloads every archive chunk by message id and appends
it to the output file. That listing grows with the archive, so it is uploaded
as chunks of its own, described by a level-1 script that downloads those
chunks into a temporary file and runs it, and so on until a level's script
fits in a single chunk. The final message inlines that one id in a shell
one-liner, so the archive can be rebuilt from the channel alone.
"""

from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Tuple

from common.constants import ARCHIVE_CHUNK_NAME, ARCHIVE_OUTPUT_NAME, SCRIPT_CHUNK_NAME
from common.exceptions import LocalIOError
from common.logging_config import get_logger
from common.tempfiles import scoped_file
from common.types import Message, ReassemblyGeneration
from backup.uploader import ChunkedUploader
from webhook.channel import MessageChannel

logger = get_logger(__name__)

ADVISORY_TEXT = (
    ":warning: Do not manually download files below! :warning:\n\n"
    "Those are for the download script."
)

TEMP_FILE_REF = '"$TFILE"'
RELAY_SCRIPT_FOOTER = ';sh "$TFILE";rm "$TFILE"'
MAX_DL_ENTRY_SIZE = len(";dl ") + len(str(2 ** 64 - 1))


def fetch_attachment_command(endpoint: str, message_ref: str) -> str:
    """Shell expression printing the attachment URL of a message."""
    return (
        f'curl -f -L "$(curl -f -L "{endpoint}/messages/{message_ref}"'
        f'|grep -Eo \'"url":"[^"]+"\'|grep -Eo \'https[^"]+\')"'
    )


def dl_function(endpoint: str, target: str) -> str:
    """
    Shell function dl <id> appending one attachment to target.

    A failed download is retried after five seconds.
    """
    return (
        f'dl(){{ {fetch_attachment_command(endpoint, "$1")}>>{target};'
        f'if [ ! $? -eq 0 ];then sleep 5;dl "$1";fi }}'
    )


def archive_script_header(endpoint: str) -> str:
    return f'{dl_function(endpoint, ARCHIVE_OUTPUT_NAME)};printf "">{ARCHIVE_OUTPUT_NAME}'


def relay_script_header(endpoint: str) -> str:
    return f'TFILE=$(mktemp);{dl_function(endpoint, TEMP_FILE_REF)};printf "">{TEMP_FILE_REF}'


def min_chunk_size(endpoint: str) -> int:
    """
    Smallest chunk size for which the script chain is guaranteed to shrink.

    Twice a one-entry relay script: any multi-chunk level then yields a
    strictly smaller script one level up.
    """
    one_entry = len(relay_script_header(endpoint).encode('utf-8')) + len(RELAY_SCRIPT_FOOTER) + MAX_DL_ENTRY_SIZE
    return 2 * one_entry


def completion_text(endpoint: str, message_id: int) -> str:
    """Final message with the one-liner that fetches and runs the top script."""
    one_liner = (
        f'curl -f -L "$(curl -f -L "{endpoint}/messages/{message_id}" '
        f'| grep -Eo \'"url":"[^"]+"\' | grep -Eo \'https[^"]+\')" | sh -'
    )
    return (
        "Upload complete!\n\n"
        "To automatically download the backup archive, use the following script:"
        f"```sh\n{one_liner}\n```\n\n"
        "Make sure `curl` and `grep` are installed."
    )


class ScriptDraft:
    """
    A download script being written to a scoped temporary file.

    Use as a context manager; the file is removed when the block exits.
    """

    def __init__(self, endpoint: str, relay: bool = False, temp_root: Optional[Path] = None):
        self.endpoint = endpoint
        self.relay = relay
        self.temp_root = temp_root
        self.downloads: List[int] = []
        self.path: Optional[Path] = None
        self.finished = False
        self._file: Optional[BinaryIO] = None
        self._resources: Optional[ExitStack] = None

    def __enter__(self) -> 'ScriptDraft':
        with ExitStack() as stack:
            self.path = stack.enter_context(scoped_file(self.temp_root))
            try:
                self._file = stack.enter_context(open(self.path, 'xb'))
            except OSError as e:
                raise LocalIOError("Failed to create download script", str(e)) from e
            header = relay_script_header(self.endpoint) if self.relay else archive_script_header(self.endpoint)
            self._write(header)
            self._resources = stack.pop_all()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._resources is not None:
            self._resources.close()
            self._resources = None

    def _write(self, text: str) -> None:
        if self._file is None or self.finished:
            raise RuntimeError("script draft is not open for writing")
        try:
            self._file.write(text.encode('utf-8'))
        except OSError as e:
            raise LocalIOError("Failed to write download script", str(e)) from e

    def add(self, message_id: int) -> None:
        """Append a download of one message's attachment."""
        self._write(f";dl {message_id}")
        self.downloads.append(message_id)

    def finish(self) -> None:
        """Write the footer and close the file for reading."""
        if self.relay:
            self._write(RELAY_SCRIPT_FOOTER)
        try:
            self._file.close()
        except OSError as e:
            raise LocalIOError("Failed to write download script", str(e)) from e
        self.finished = True

    @property
    def size(self) -> int:
        return self.path.stat().st_size

    def open(self) -> BinaryIO:
        """Open the finished script for reading."""
        if not self.finished:
            raise RuntimeError("script draft is not finished")
        try:
            return open(self.path, 'rb')
        except OSError as e:
            raise LocalIOError("Failed to upload download script", str(e)) from e

    def read_text(self) -> str:
        with self.open() as f:
            return f.read().decode('utf-8')


@dataclass
class PublishResult:
    """Outcome of publishing one archive."""
    chunk_count: int
    generations: List[ReassemblyGeneration]
    completion: Message


class ReassemblyScriptBuilder:
    """Uploads an archive and the download script chain that rebuilds it."""

    def __init__(
        self,
        channel: MessageChannel,
        uploader: Optional[ChunkedUploader] = None,
        temp_root: Optional[Path] = None
    ):
        """
        Initialize builder.

        Args:
            channel: Channel used for advisory and completion messages
            uploader: Chunked uploader (defaults to one on the same channel)
            temp_root: Directory for script drafts (defaults to TMPDIR or /var/tmp)
        """
        self.channel = channel
        self.uploader = uploader or ChunkedUploader(channel)
        self.temp_root = temp_root

        minimum = min_chunk_size(self.endpoint)
        if self.uploader.chunk_size < minimum:
            raise ValueError(f"chunk_size must be at least {minimum} bytes for this endpoint")

    @property
    def endpoint(self) -> str:
        return self.channel.endpoint

    def draft(self, relay: bool = False) -> ScriptDraft:
        return ScriptDraft(self.endpoint, relay=relay, temp_root=self.temp_root)

    def publish(
        self,
        stream: BinaryIO,
        on_archive_uploaded: Optional[Callable[[int], None]] = None
    ) -> PublishResult:
        """
        Upload archive chunks, then the script chain describing them.

        Args:
            stream: Archive byte stream
            on_archive_uploaded: Called with the chunk count before scripts are uploaded

        Returns:
            PublishResult with chunk count, generations and completion message
        """
        with self.draft() as archive_script:
            last_index = self.uploader.upload_stream(
                stream,
                lambda index: ARCHIVE_CHUNK_NAME.format(index=index),
                lambda message, index: archive_script.add(message.id)
            )
            archive_script.finish()
            chunk_count = last_index + 1
            logger.info(f"Uploaded {chunk_count} archive chunk(s)")

            if on_archive_uploaded is not None:
                on_archive_uploaded(chunk_count)

            generations, completion = self.build_chain(archive_script)

        return PublishResult(chunk_count=chunk_count, generations=generations, completion=completion)

    def build_chain(self, script: ScriptDraft) -> Tuple[List[ReassemblyGeneration], Message]:
        """
        Upload a finished level-0 script and every level above it.

        Each iteration uploads the current level's script as chunks named
        script_<level>_<i> while drafting the next level. The loop stops at
        the first level whose script fits in one chunk.

        Args:
            script: Finished level-0 script

        Returns:
            Tuple of (generations in level order, completion message)
        """
        generations: List[ReassemblyGeneration] = []

        with ExitStack() as drafts:
            current = script
            level = 0

            while True:
                self.channel.send_text(ADVISORY_TEXT)
                relay = drafts.enter_context(self.draft(relay=True))

                def name_script_chunk(index: int, level: int = level) -> str:
                    return SCRIPT_CHUNK_NAME.format(level=level, index=index)

                with current.open() as stream:
                    last_index = self.uploader.upload_stream(
                        stream,
                        name_script_chunk,
                        lambda message, index: relay.add(message.id)
                    )

                generation = ReassemblyGeneration(
                    level=level,
                    script_size=current.size,
                    downloads=tuple(current.downloads),
                    script_chunk_ids=tuple(relay.downloads),
                )
                generations.append(generation)
                logger.info(
                    f"Uploaded level {level} script: {generation.script_size} bytes "
                    f"in {last_index + 1} chunk(s)"
                )

                if last_index == 0:
                    completion = self.channel.send_text(
                        completion_text(self.endpoint, relay.downloads[0])
                    )
                    return generations, completion

                relay.finish()
                current = relay
                level += 1
