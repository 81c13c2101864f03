"""HTTP client for posting and editing messages on a webhook endpoint."""

import json
import time
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from common import multipart
from common.constants import (
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    EDIT_RETRY_DELAY_SECONDS,
    PARSE_RETRY_DELAY_SECONDS,
    SEND_RETRY_DELAY_SECONDS,
)
from common.exceptions import MessageNotSentError, ProtocolError, TransportError
from common.logging_config import get_logger
from common.types import Message
from webhook.schemas import CreatedMessageResponse

logger = get_logger(__name__)


class MessageChannel:
    """
    Webhook client that never gives up on delivery.

    Transport failures and malformed responses are retried forever with a
    fixed backoff: the operator-visible status lives on the same endpoint, so
    there is nowhere else to report a delivery failure.
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        session: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        boundary_factory: Callable[[], str] = multipart.random_boundary
    ):
        """
        Initialize message channel.

        Args:
            endpoint: Webhook URL, used verbatim as the base of every request
            timeout: Request timeout in seconds
            session: Optional preconfigured httpx client (testing)
            sleep: Blocking sleep used for backoff (testing)
            boundary_factory: Multipart boundary generator (testing)
        """
        self.endpoint = endpoint.rstrip('/')
        self.session = session if session is not None else httpx.Client(timeout=timeout)
        self.sleep = sleep
        self.boundary_factory = boundary_factory
        self.send_retry_delay = SEND_RETRY_DELAY_SECONDS
        self.parse_retry_delay = PARSE_RETRY_DELAY_SECONDS
        self.edit_retry_delay = EDIT_RETRY_DELAY_SECONDS

    def message_url(self, message_id: int) -> str:
        """URL of a delivered message (used for edits and by download scripts)."""
        return f"{self.endpoint}/messages/{message_id}"

    def _post(self, body: bytes, content_type: str) -> httpx.Response:
        """
        POST one encoded body.

        Raises:
            TransportError: On connection failure or a non-2xx status
        """
        try:
            response = self.session.post(
                f"{self.endpoint}?wait=true",
                content=body,
                headers={
                    'Content-Type': content_type,
                    'Content-Length': str(len(body)),
                },
            )
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _parse_created(response: httpx.Response) -> int:
        """
        Extract the message id from a creation response.

        Raises:
            ProtocolError: If the body is not {"id": "<numeric string>", ...}
        """
        try:
            created = CreatedMessageResponse.model_validate(response.json())
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            raise ProtocolError(str(e)) from e
        return created.id

    def send(self, message: Message) -> Message:
        """
        Deliver a message, retrying until the service acknowledges it.

        Transport failures resend the same body after a short backoff. An
        unparseable acknowledgement re-encodes and resends the whole message
        after a long backoff, which may deliver it twice.

        Args:
            message: Unsent message (content and/or attachments)

        Returns:
            The same message with its id assigned
        """
        while True:
            body, content_type = multipart.encode(
                message.content,
                message.attachments,
                self.boundary_factory
            )
            logger.debug(
                f"Sending message: parts={len(message.attachments) + (message.content is not None)} "
                f"size={len(body)}"
            )

            response = None
            while response is None:
                try:
                    response = self._post(body, content_type)
                except TransportError as e:
                    logger.warning(
                        f"Error sending request: {e}, retrying in {self.send_retry_delay}s"
                    )
                    self.sleep(self.send_retry_delay)

            try:
                message.id = self._parse_created(response)
            except ProtocolError as e:
                logger.error(
                    f"Failed to parse message, retrying in {self.parse_retry_delay}s: {e}"
                )
                self.sleep(self.parse_retry_delay)
                continue

            logger.debug(f"Message delivered [id={message.id}]")
            return message

    def send_text(self, text: str) -> Message:
        """Send a text-only message."""
        return self.send(Message.text(text))

    def send_file(self, name: str, data: bytes) -> Message:
        """Send a message carrying a single attachment."""
        return self.send(Message.file(name, data))

    def edit(self, message: Message, text: str) -> None:
        """
        Replace the text of a delivered message.

        Args:
            message: Message previously returned by send()
            text: New content

        Raises:
            MessageNotSentError: If the message has no id
        """
        if message.id is None:
            raise MessageNotSentError("Editing a message that was never sent")

        message.content = text
        url = self.message_url(message.id)

        while True:
            try:
                response = self.session.patch(url, json={'content': text})
                response.raise_for_status()
                return
            except httpx.HTTPError as e:
                logger.warning(
                    f"Error editing message {message.id}: {type(e).__name__}: {e}, "
                    f"retrying in {self.edit_retry_delay}s"
                )
                self.sleep(self.edit_retry_delay)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
