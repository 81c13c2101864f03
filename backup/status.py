"""Progress reporting on the single head message of a run."""

from typing import Optional

from common.logging_config import get_logger
from common.types import Message
from webhook.channel import MessageChannel

logger = get_logger(__name__)


class StatusReporter:
    """Posts one head message per run and keeps editing it."""

    def __init__(self, channel: MessageChannel):
        self.channel = channel
        self.head: Optional[Message] = None

    def start(self, text: str = "Starting backup process...") -> Message:
        """Send the head message."""
        self.head = self.channel.send_text(text)
        return self.head

    def update(self, text: str) -> None:
        """Replace the head message text."""
        if self.head is None:
            self.start(text)
            return
        self.channel.edit(self.head, text)

    def fail(self, reason: str) -> None:
        """Report a failed run."""
        logger.error(f"Backup run failed: {reason}")
        self.update(reason)

    def complete(self, chunk_count: int, note: Optional[str] = None) -> None:
        """Report a successful run with manual reassembly instructions."""
        text = (
            "Backup completed successfully.\n\n"
            f"To assemble the original archive, download all {chunk_count} chunks "
            "and concatenate them into a single file"
        )
        if note:
            text = f"{text}\n\n{note}"
        self.update(text)
