from __future__ import annotations
import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from estate_assistant.schemas.conversation import ContentPart, FilePart, MessageContent
from estate_assistant.schemas.upload import is_acceptable_upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadCandidate:
    """A local file the user picked, not yet read."""

    name: str
    mime_type: str
    size: int
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: Path, mime_type: Optional[str] = None) -> "UploadCandidate":
        path = Path(path)
        guessed = mime_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, mime_type=guessed, size=path.stat().st_size, path=path)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: str) -> "UploadCandidate":
        return cls(name=name, mime_type=mime_type, size=len(data), data=data)

    async def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"{self.name} has no data source")
        return await asyncio.to_thread(self.path.read_bytes)


def select_uploads(candidates: Iterable[UploadCandidate]) -> List[UploadCandidate]:
    """Drop files over the size limit or outside the allow-list, silently for the user."""
    accepted = []
    for c in candidates:
        if is_acceptable_upload(c.mime_type, c.size):
            accepted.append(c)
        else:
            logger.debug("Dropping upload %s type=%s size=%d", c.name, c.mime_type, c.size)
    return accepted


async def resolve_file_parts(content: MessageContent) -> MessageContent:
    """Read local files referenced by file parts into base64 data."""
    if isinstance(content, str):
        return content
    if not any(isinstance(p, FilePart) and p.data is None and p.path is not None for p in content):
        return content
    resolved: List[ContentPart] = []
    for part in content:
        if isinstance(part, FilePart) and part.data is None and part.path is not None:
            raw = await asyncio.to_thread(part.path.read_bytes)
            mime_type = part.mimeType or mimetypes.guess_type(part.path.name)[0] or "application/octet-stream"
            resolved.append(
                FilePart(
                    data=base64.b64encode(raw).decode("ascii"),
                    mimeType=mime_type,
                    name=part.name or part.path.name,
                )
            )
        else:
            resolved.append(part)
    return resolved
