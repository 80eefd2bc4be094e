from __future__ import annotations

from dataclasses import dataclass

FREE_TIER = "free"


@dataclass(frozen=True)
class QuotaState:
    is_free_plan: bool = True
    user_message_count: int = 0


@dataclass(frozen=True)
class QuotaDecision:
    can_send: bool
    # Blocked free-tier users get an upgrade prompt instead of an error
    should_show_upgrade: bool


def is_free_tier(subscription_tier: str | None) -> bool:
    """Anything other than "free" is a paid plan; a missing tier counts as free."""
    return (subscription_tier or FREE_TIER).strip().lower() == FREE_TIER


def check_can_send(state: QuotaState, free_message_limit: int) -> QuotaDecision:
    if not state.is_free_plan:
        return QuotaDecision(can_send=True, should_show_upgrade=False)
    if state.user_message_count >= free_message_limit:
        return QuotaDecision(can_send=False, should_show_upgrade=True)
    return QuotaDecision(can_send=True, should_show_upgrade=False)
