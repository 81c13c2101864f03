"""Shared data type definitions (Message, Chunk, ReassemblyGeneration)."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass
class Message:
    """
    A webhook message, local until delivered.

    Attributes:
        id: Message id assigned by the service, None until delivery succeeds
        content: Optional text content
        attachments: Ordered (filename, bytes) pairs
    """
    id: Optional[int] = None
    content: Optional[str] = None
    attachments: List[Tuple[str, bytes]] = field(default_factory=list)

    @classmethod
    def text(cls, content: str) -> 'Message':
        return cls(content=content)

    @classmethod
    def file(cls, name: str, data: bytes, content: Optional[str] = None) -> 'Message':
        return cls(content=content, attachments=[(name, data)])

    @property
    def sent(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class Chunk:
    """
    A bounded fragment of a byte stream.
    """
    index: int
    data: bytes


@dataclass(frozen=True)
class ReassemblyGeneration:
    """
    One level of the download script chain.

    Attributes:
        level: 0 rebuilds the archive, L > 0 rebuilds and runs level L-1
        script_size: Size of this level's script in bytes
        downloads: Ordered message ids the script fetches (the level below)
        script_chunk_ids: Ordered message ids carrying this script
    """
    level: int
    script_size: int
    downloads: Tuple[int, ...]
    script_chunk_ids: Tuple[int, ...]

    @property
    def terminal(self) -> bool:
        return len(self.script_chunk_ids) == 1
