from __future__ import annotations
import threading
from typing import Dict, List, Optional, Protocol, TypeVar

from pydantic import BaseModel
from sqlmodel import select

from estate_assistant.db.models import UploadedDocument, UserProfile
from estate_assistant.db.session import AsyncSessionLocal, SessionFactory, get_session
from estate_assistant.schemas.conversation import new_id, utcnow

RowT = TypeVar("RowT", UploadedDocument, UserProfile)


class ProfileClaims(BaseModel):
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class DocumentRecord(BaseModel):
    name: str
    mime_type: str
    size: int
    document_type: str


class AccountStore(Protocol):
    async def get_or_create_profile(self, claims: ProfileClaims) -> UserProfile:
        ...

    async def record_uploads(self, user_id: str, documents: List[DocumentRecord]) -> int:
        ...

    async def list_uploads(self, user_id: str) -> List[UploadedDocument]:
        ...


class SqlAccountStore:
    def __init__(self, session_factory: SessionFactory = AsyncSessionLocal) -> None:
        self.session_factory = session_factory

    async def get_or_create_profile(self, claims: ProfileClaims) -> UserProfile:
        async with get_session(self.session_factory) as session:
            profile = await session.get(UserProfile, claims.user_id)
            if profile is None:
                profile = UserProfile(
                    id=claims.user_id,
                    email=claims.email,
                    full_name=claims.full_name,
                    avatar_url=claims.avatar_url,
                )
                session.add(profile)
                await session.flush()
            return profile

    async def record_uploads(self, user_id: str, documents: List[DocumentRecord]) -> int:
        async with get_session(self.session_factory) as session:
            for doc in documents:
                session.add(UploadedDocument(user_id=user_id, **doc.model_dump()))
            return len(documents)

    async def list_uploads(self, user_id: str) -> List[UploadedDocument]:
        async with get_session(self.session_factory) as session:
            stmt = (
                select(UploadedDocument)
                .where(UploadedDocument.user_id == user_id)
                .order_by(UploadedDocument.created_at.desc())  # type: ignore[attr-defined]
            )
            result = await session.exec(stmt)
            return list(result.all())


def _detached(row: RowT) -> RowT:
    """A copy callers can mutate without touching the stored row."""
    return type(row)(**row.model_dump())


class MemoryAccountStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._profiles: Dict[str, UserProfile] = {}
        self._uploads: Dict[str, List[UploadedDocument]] = {}

    async def get_or_create_profile(self, claims: ProfileClaims) -> UserProfile:
        with self._lock:
            profile = self._profiles.get(claims.user_id)
            if profile is None:
                profile = UserProfile(
                    id=claims.user_id,
                    email=claims.email,
                    full_name=claims.full_name,
                    avatar_url=claims.avatar_url,
                )
                self._profiles[claims.user_id] = profile
            return _detached(profile)

    async def record_uploads(self, user_id: str, documents: List[DocumentRecord]) -> int:
        with self._lock:
            rows = self._uploads.setdefault(user_id, [])
            for doc in documents:
                rows.append(UploadedDocument(id=new_id(), user_id=user_id, created_at=utcnow(), **doc.model_dump()))
            return len(documents)

    async def list_uploads(self, user_id: str) -> List[UploadedDocument]:
        with self._lock:
            return [_detached(row) for row in reversed(self._uploads.get(user_id, []))]
