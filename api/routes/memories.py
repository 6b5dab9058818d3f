"""
Memories API routes.

Read-only view of what the persona remembers about a user, plus deletion
of single facts. Facts themselves are only ever written by chat turns.
"""
import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from api.services.fact_store import Fact, get_fact_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/memories", tags=["memories"])


class FactResponse(BaseModel):
    """A single stored fact."""
    key: str
    value: str
    created_at: str
    updated_at: str

    @classmethod
    def from_fact(cls, fact: Fact) -> "FactResponse":
        return cls(
            key=fact.key,
            value=fact.value,
            created_at=fact.created_at.isoformat() if fact.created_at else "",
            updated_at=fact.updated_at.isoformat() if fact.updated_at else "",
        )


class FactListResponse(BaseModel):
    """All facts for one user."""
    user_id: str
    facts: list[FactResponse]
    total: int


@router.get("/{user_id}", response_model=FactListResponse)
async def list_facts(user_id: str):
    """**List stored facts** for a user."""
    store = get_fact_store()
    facts = store.list_facts(user_id)

    return FactListResponse(
        user_id=user_id,
        facts=[FactResponse.from_fact(f) for f in facts],
        total=len(facts),
    )


@router.delete("/{user_id}/{key}")
async def delete_fact(user_id: str, key: str):
    """Forget one fact about a user."""
    store = get_fact_store()
    deleted = store.delete(user_id, key)

    if not deleted:
        raise HTTPException(status_code=404, detail="Fact not found")

    logger.info(f"Deleted fact {key} for {user_id}")
    return {"status": "deleted", "key": key}
