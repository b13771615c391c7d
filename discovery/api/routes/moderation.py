"""Moderation hook endpoint."""

from fastapi import APIRouter

from discovery.api.deps import StoreDep
from discovery.reputation.hook import ModerationDecision, ModerationHook
from discovery.store.models import ReputationRecord


router = APIRouter(prefix="/moderation", tags=["moderation"])


@router.post("/decisions", response_model=ReputationRecord)
def moderation_decision(decision: ModerationDecision, store: StoreDep) -> ReputationRecord:
    """Apply a moderation decision and return the domain's new reputation."""
    return ModerationHook(store).on_decision(decision)
