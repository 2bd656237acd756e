"""Per-address cooldowns for submissions and valuation requests.

The two counters are independent: submitting does not delay a valuation
request by the same address, and vice versa. A cooldown has elapsed once
now >= last + cooldown_seconds; an address that never acted is never
limited.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from fhevault.errors import CooldownActive
from fhevault.ledger.state import LedgerState


class RateLimiter:
    def __init__(self, state: LedgerState) -> None:
        self._state = state

    def _remaining(self, last: Optional[datetime], now: datetime) -> float:
        if last is None:
            return 0.0
        ready_at = last + timedelta(seconds=self._state.config.cooldown_seconds)
        return max(0.0, (ready_at - now).total_seconds())

    def require_submission_allowed(self, address: str, now: datetime) -> None:
        remaining = self._remaining(self._state.rate_limit(address).last_submission_utc, now)
        if remaining > 0:
            raise CooldownActive(
                f"Submission cooldown active for {address!r}: {remaining:.0f}s remaining"
            )

    def require_request_allowed(self, address: str, now: datetime) -> None:
        remaining = self._remaining(self._state.rate_limit(address).last_request_utc, now)
        if remaining > 0:
            raise CooldownActive(
                f"Valuation request cooldown active for {address!r}: {remaining:.0f}s remaining"
            )

    def record_submission(self, address: str, now: datetime) -> None:
        self._state.set_last_submission(address, now)

    def record_request(self, address: str, now: datetime) -> None:
        self._state.set_last_request(address, now)
