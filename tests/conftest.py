"""Shared pytest fixtures for all tests."""

import itertools
import logging
import re

import httpx
import pytest
from fastapi.testclient import TestClient

from common.exceptions import MessageNotSentError
from common.types import Message
from fake_webhook import ENDPOINT, FakeWebhook
from webhook.channel import MessageChannel

FIRST_RECORDED_ID = 1_000_000_000_000_000_000


class RecordingChannel(MessageChannel):
    """
    Channel that delivers instantly and keeps every message in memory.

    Ids are 19-digit numbers, like real snowflake ids.
    """

    def __init__(self, endpoint: str = ENDPOINT):
        def refuse(request):
            raise AssertionError(f"unexpected HTTP request: {request.method} {request.url}")

        super().__init__(
            endpoint,
            session=httpx.Client(transport=httpx.MockTransport(refuse)),
            sleep=lambda seconds: None,
        )
        self._ids = itertools.count(FIRST_RECORDED_ID)
        self.sent: list[Message] = []
        self.edits: list[tuple[int, str]] = []

    def send(self, message: Message) -> Message:
        message.id = next(self._ids)
        self.sent.append(message)
        return message

    def edit(self, message: Message, text: str) -> None:
        if message.id is None:
            raise MessageNotSentError("Editing a message that was never sent")
        message.content = text
        self.edits.append((message.id, text))

    def by_id(self, message_id: int) -> Message:
        return next(m for m in self.sent if m.id == message_id)

    def attachment(self, message_id: int) -> bytes:
        (_, data), = self.by_id(message_id).attachments
        return data

    def attachment_names(self) -> list[str]:
        return [name for m in self.sent for name, _ in m.attachments]

    def texts(self) -> list[str]:
        return [m.content for m in self.sent if m.content is not None]


def follow_script_chain(completion_text: str, fetch) -> bytes:
    """
    Rebuild an archive the way the published shell scripts would.

    Args:
        completion_text: Content of the completion message
        fetch: Maps a message id to its attachment bytes

    Returns:
        Reassembled archive bytes
    """
    top_id = int(re.search(r'/messages/(\d+)"', completion_text).group(1))
    script = fetch(top_id).decode('utf-8')

    while True:
        ids = [int(i) for i in re.findall(r';dl (\d+)', script)]
        data = b''.join(fetch(i) for i in ids)
        if not script.startswith('TFILE=$(mktemp);'):
            return data
        assert script.endswith(';sh "$TFILE";rm "$TFILE"')
        script = data.decode('utf-8')


@pytest.fixture
def recording_channel():
    """Channel stub recording sent messages without any HTTP traffic."""
    channel = RecordingChannel()
    yield channel
    channel.close()


@pytest.fixture
def reassemble():
    """Function that follows a script chain back to the archive bytes."""
    return follow_script_chain


@pytest.fixture
def fake_webhook():
    """In-process webhook service."""
    return FakeWebhook()


@pytest.fixture
def webhook_channel(fake_webhook):
    """
    MessageChannel talking to the fake webhook over ASGI.

    Backoff sleeps are recorded instead of slept.
    """
    client = TestClient(fake_webhook.app)
    sleeps: list[float] = []
    channel = MessageChannel(ENDPOINT, session=client, sleep=sleeps.append)
    channel.sleeps = sleeps
    yield channel
    channel.close()


@pytest.fixture
def temp_root(tmp_path):
    """Directory used for scoped temporary files."""
    root = tmp_path / 'tmp'
    root.mkdir()
    return root


@pytest.fixture
def clean_root_logger():
    """Detach root handlers for the test and drop whatever the test installs."""
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    for handler in before:
        root.removeHandler(handler)
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in before:
        root.addHandler(handler)
    root.setLevel(level)
