from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from certisure.core.errors import QuotaExceededError

logger = logging.getLogger(__name__)


class CertificateCounter(Protocol):
    async def count_created_between(self, start: datetime, end: datetime) -> int: ...


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    allowed: bool
    current_count: int
    limit: int | None

    @property
    def remaining(self) -> int | None:
        if not self.limit:
            return None
        return max(self.limit - self.current_count, 0)


def month_window(now: datetime | None = None) -> tuple[datetime, datetime]:
    """Start (inclusive) and end (exclusive) of the UTC calendar month containing ``now``."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


class QuotaTracker:
    """Counts persisted certificates; nothing is reserved or incremented here.

    The check and the subsequent insert are not atomic, so N concurrent requests
    can overshoot the limit by at most N-1.
    """

    def __init__(self, counter: CertificateCounter) -> None:
        self.counter = counter

    async def current_usage(self, now: datetime | None = None) -> int:
        start, end = month_window(now)
        return await self.counter.count_created_between(start, end)

    async def check_and_reserve(
        self,
        limit: int | None,
        *,
        requested: int = 1,
        now: datetime | None = None,
    ) -> QuotaDecision:
        count = await self.current_usage(now)
        if not limit:
            return QuotaDecision(allowed=True, current_count=count, limit=limit)
        allowed = count + max(requested, 1) - 1 < limit
        return QuotaDecision(allowed=allowed, current_count=count, limit=limit)

    async def enforce(
        self,
        limit: int | None,
        *,
        plan: str,
        requested: int = 1,
        now: datetime | None = None,
    ) -> QuotaDecision:
        decision = await self.check_and_reserve(limit, requested=requested, now=now)
        if not decision.allowed:
            logger.info(
                "Quota exceeded plan=%s limit=%s count=%s requested=%s",
                plan,
                decision.limit,
                decision.current_count,
                requested,
            )
            if requested > 1:
                message = (
                    f"This batch of {requested} certificates exceeds your monthly limit of "
                    f"{decision.limit} on the {plan} plan ({decision.current_count} already issued). "
                    "Upgrade your plan to increase limits."
                )
            else:
                message = (
                    f"Your monthly certificate limit ({decision.limit}) on the {plan} plan has been "
                    f"reached ({decision.current_count} issued). Upgrade your plan to increase limits."
                )
            raise QuotaExceededError(
                message,
                limit=decision.limit,
                current_count=decision.current_count,
                plan=plan,
                requested=requested if requested > 1 else None,
            )
        return decision
