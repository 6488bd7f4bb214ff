"""
Subscription plans, generation quotas and the usage counter.
"""

import math
from datetime import datetime

from pydantic import BaseModel

from promptsite.models import utcnow
from promptsite.stores import ProfileStore


PLAN_LIMITS = {
    "free": {"generations_per_month": 2, "max_pages_per_site": 3},
    "starter": {"generations_per_month": 150, "max_pages_per_site": 10},
    "pro": {"generations_per_month": 300, "max_pages_per_site": math.inf},
}


class UsageLimits(BaseModel):
    can_generate: bool
    generations_used: int
    generations_limit: int
    generations_remaining: int
    max_pages_per_site: float
    plan_name: str
    is_active: bool


class UsageDecision(BaseModel):
    allowed: bool
    reason: str | None = None
    limits: UsageLimits | None = None


def get_plan_type(profile: dict | None) -> str:
    profile = profile or {}
    plan = (profile.get("subscription_plan") or "").lower()
    if profile.get("subscription_status") != "active" or not plan:
        return "free"
    if "pro" in plan:
        return "pro"
    if "starter" in plan:
        return "starter"
    return "free"


def _parse_ts(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def should_reset_generation_count(reset_at, now: datetime | None = None) -> bool:
    """Counts reset at the start of every calendar month."""
    reset = _parse_ts(reset_at)
    if reset is None:
        return True
    now = now or utcnow()
    return (reset.year, reset.month) != (now.year, now.month)


def calculate_usage_limits(profile: dict | None, now: datetime | None = None) -> UsageLimits:
    profile = profile or {}
    plan_type = get_plan_type(profile)
    limits = PLAN_LIMITS[plan_type]

    used = profile.get("generation_count") or 0
    if should_reset_generation_count(profile.get("generation_reset_at"), now):
        used = 0

    limit = limits["generations_per_month"]
    return UsageLimits(
        can_generate=used < limit,
        generations_used=used,
        generations_limit=limit,
        generations_remaining=max(0, limit - used),
        max_pages_per_site=limits["max_pages_per_site"],
        plan_name=plan_type.capitalize(),
        is_active=profile.get("subscription_status") == "active",
    )


class UsageService:
    def __init__(self, profiles: ProfileStore):
        self.profiles = profiles

    async def get_limits(self, user_id: str) -> UsageLimits:
        return calculate_usage_limits(await self.profiles.get_profile(user_id))

    async def can_user_generate(self, user_id: str) -> UsageDecision:
        limits = await self.get_limits(user_id)
        if limits.can_generate:
            return UsageDecision(allowed=True, limits=limits)
        if limits.plan_name == "Free":
            reason = (f"You've used all {limits.generations_limit} free generations. "
                      "Upgrade to continue!")
        else:
            reason = (f"You've reached your monthly limit of {limits.generations_limit} generations. "
                      "Limit resets next month.")
        return UsageDecision(allowed=False, reason=reason, limits=limits)

    async def increment_generation_count(self, user_id: str) -> bool:
        """Bump the monthly counter. Returns False instead of raising on store errors."""
        try:
            profile = await self.profiles.get_profile(user_id)
            now = utcnow()
            if not profile or should_reset_generation_count(profile.get("generation_reset_at"), now):
                count, reset_at = 1, now.isoformat()
            else:
                count = (profile.get("generation_count") or 0) + 1
                reset_at = profile.get("generation_reset_at") or now.isoformat()
                if isinstance(reset_at, datetime):
                    reset_at = reset_at.isoformat()
            await self.profiles.upsert_profile(
                user_id, {"generation_count": count, "generation_reset_at": reset_at}
            )
            return True
        except Exception as e:
            print(f"  [usage] Failed to increment generation count for {user_id}: {e}")
            return False
