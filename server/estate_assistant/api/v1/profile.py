from fastapi import APIRouter, Depends
from typing import Any, Dict, List

from estate_assistant.core.auth import Actor, get_current_actor
from estate_assistant.store.accounts import AccountStore, ProfileClaims
from estate_assistant.store.deps import get_account_store

router = APIRouter()


@router.get("/profile")
async def get_profile(
    actor: Actor = Depends(get_current_actor), accounts: AccountStore = Depends(get_account_store)
) -> Dict[str, Any]:
    """The caller's profile, created from token claims on first read."""
    metadata = (actor.claims or {}).get("user_metadata") or {}
    claims = ProfileClaims(
        user_id=actor.user_id,
        email=actor.email,
        full_name=metadata.get("full_name"),
        avatar_url=metadata.get("avatar_url"),
    )
    profile = await accounts.get_or_create_profile(claims)
    return profile.model_dump()


@router.get("/uploads")
async def list_uploads(
    actor: Actor = Depends(get_current_actor), accounts: AccountStore = Depends(get_account_store)
) -> List[Dict[str, Any]]:
    """Documents this actor has uploaded, newest first."""
    return [doc.model_dump() for doc in await accounts.list_uploads(actor.user_id)]
