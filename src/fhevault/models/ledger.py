"""Ledger models — global configuration, batches, entries, cooldowns.

Ciphertext values are opaque handles owned by the encryption capability.
The ledger never inspects them beyond the capability's well-formedness
check and canonical serialization.

Constitutional invariants enforced by these models:
- Batch lifecycle is one-way (OPEN → CLOSED), never reopened
- Entries are immutable once appended
- Submission and valuation-request cooldowns are tracked independently
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fhevault.errors import InvalidBatch


# Opaque handle produced by an EncryptionCapability.
Ciphertext = Any


class BatchState(str, enum.Enum):
    """Lifecycle state of a batch.

    State machine:
        OPEN → CLOSED
    """
    OPEN = "open"
    CLOSED = "closed"


BATCH_TRANSITIONS: Dict[BatchState, frozenset] = {
    BatchState.OPEN: frozenset({BatchState.CLOSED}),
    BatchState.CLOSED: frozenset(),
}


@dataclass
class GlobalConfig:
    """Owner-controlled ledger parameters.

    Mutated only through owner operations.
    """
    owner: str
    paused: bool = False
    cooldown_seconds: int = 60
    current_batch_id: int = 1


@dataclass
class Batch:
    """A time-bounded group of encrypted entries.

    Mutable only through transition_to. Batches are never deleted.
    """
    batch_id: int
    state: BatchState = BatchState.OPEN
    opened_utc: Optional[datetime] = None
    closed_utc: Optional[datetime] = None

    @property
    def closed(self) -> bool:
        return self.state == BatchState.CLOSED

    def transition_to(self, new_state: BatchState) -> None:
        """Transition to a new state, validating the transition is legal."""
        allowed = BATCH_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise InvalidBatch(
                f"Invalid batch transition for batch {self.batch_id}: "
                f"{self.state.value} → {new_state.value}"
            )
        self.state = new_state


@dataclass(frozen=True)
class Entry:
    """A single encrypted (value, weight) contribution.

    index is the entry's position inside its batch.
    """
    batch_id: int
    index: int
    provider: str
    encrypted_value: Ciphertext
    encrypted_weight: Ciphertext
    submitted_utc: Optional[datetime] = None


@dataclass
class RateLimitState:
    """Per-address cooldown timestamps. None means never acted."""
    last_submission_utc: Optional[datetime] = None
    last_request_utc: Optional[datetime] = None
