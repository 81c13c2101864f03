"""multipart/form-data encoder for webhook message uploads."""

import json
import random
import string
from typing import Callable, Iterable, List, Optional, Tuple

from common.constants import BOUNDARY_LENGTH

BOUNDARY_ALPHABET = string.ascii_letters + string.digits

_rng = random.SystemRandom()


def random_boundary(length: int = BOUNDARY_LENGTH) -> str:
    """
    Generate a random alphanumeric boundary token.

    Args:
        length: Token length (32 by default)

    Returns:
        Boundary string
    """
    return ''.join(_rng.choice(BOUNDARY_ALPHABET) for _ in range(length))


def render_content_part(content: str) -> bytes:
    """Render the payload_json part carrying the message text."""
    payload = json.dumps({"content": content}, separators=(",", ":"))
    header = (
        'Content-Disposition: form-data; name="payload_json"\r\n'
        'Content-Type: application/json\r\n'
        '\r\n'
    )
    return header.encode('utf-8') + payload.encode('utf-8')


def render_file_part(index: int, name: str, data: bytes) -> bytes:
    """Render the files[index] part carrying one attachment."""
    header = (
        f'Content-Disposition: form-data; name="files[{index}]"; filename={json.dumps(name)}\r\n'
        'Content-Type: application/octet-stream\r\n'
        '\r\n'
    )
    return header.encode('utf-8') + data


def choose_boundary(
    parts: List[bytes],
    factory: Callable[[], str] = random_boundary
) -> str:
    """
    Pick a boundary that does not occur inside any rendered part.

    Args:
        parts: Rendered part buffers
        factory: Boundary generator, called until a candidate fits

    Returns:
        Boundary string safe for these parts
    """
    while True:
        boundary = factory()
        encoded = boundary.encode('ascii')
        if not any(encoded in part for part in parts):
            return boundary


def encode(
    content: Optional[str],
    files: Iterable[Tuple[str, bytes]],
    boundary_factory: Callable[[], str] = random_boundary
) -> Tuple[bytes, str]:
    """
    Encode a message into one multipart/form-data body.

    Args:
        content: Optional message text (rendered as payload_json)
        files: Ordered (filename, bytes) attachments
        boundary_factory: Boundary generator (overridable for tests)

    Returns:
        Tuple of (body, content_type)
    """
    parts: List[bytes] = []
    if content is not None:
        parts.append(render_content_part(content))
    for index, (name, data) in enumerate(files):
        parts.append(render_file_part(index, name, data))

    boundary = choose_boundary(parts, boundary_factory)
    delimiter = f"--{boundary}\r\n".encode('ascii')

    pieces: List[bytes] = []
    for position, part in enumerate(parts):
        if position:
            pieces.append(b"\r\n")
        pieces.append(delimiter)
        pieces.append(part)
    pieces.append(f"\r\n--{boundary}--".encode('ascii'))

    return b''.join(pieces), f"multipart/form-data; boundary={boundary}"
