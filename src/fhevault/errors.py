"""Ledger error taxonomy.

Every failure aborts the operation that raised it and leaves no trace.
Guard failures are raised before any state is touched; a failed event
write undoes the mutation it was recording before it is raised. Errors
derive from ValueError so the service layer can treat them the same way
as other rejected input.

Categories:
    AuthorizationError: caller lacks the role the operation requires
    LifecycleError: pause switch or batch lifecycle forbids it
    RateLimitError: caller's cooldown has not elapsed
    IntegrityError: decryption fulfilment failed verification
    ValidationError: malformed ciphertext, cleartext or parameter
    RecordingError: the event log or chain anchor could not be written
"""

from __future__ import annotations


class VaultError(ValueError):
    """Base class for every ledger rejection."""

    code = "vault_error"


class AuthorizationError(VaultError):
    code = "unauthorized"


class LifecycleError(VaultError):
    code = "lifecycle"


class RateLimitError(VaultError):
    code = "rate_limited"


class IntegrityError(VaultError):
    code = "integrity"


class ValidationError(VaultError):
    code = "invalid"


class NotOwner(AuthorizationError):
    code = "not_owner"


class NotProvider(AuthorizationError):
    code = "not_provider"


class NotOracle(AuthorizationError):
    """Raised when finalize is invoked by anyone but the decryption capability."""

    code = "not_oracle"


class Paused(LifecycleError):
    code = "paused"


class InvalidBatch(LifecycleError):
    code = "invalid_batch"


class BatchClosed(LifecycleError):
    """Submission targeted a batch that is already closed."""

    code = "batch_closed"


class CooldownActive(RateLimitError):
    code = "cooldown_active"


class ReplayAttempt(IntegrityError):
    code = "replay_attempt"


class StateMismatch(IntegrityError):
    code = "state_mismatch"


class InvalidProof(IntegrityError):
    code = "invalid_proof"


class UnknownRequest(IntegrityError):
    code = "unknown_request"


class FHENotInitialized(ValidationError):
    code = "fhe_not_initialized"


class InvalidCleartext(ValidationError):
    code = "invalid_cleartext"


class InvalidParameter(ValidationError):
    code = "invalid_parameter"


class RecordingError(VaultError):
    code = "recording_failed"


class EventLogFailure(RecordingError):
    """The event for an operation could not be appended; the operation was undone."""

    code = "event_log_failure"


class AnchorFailed(RecordingError):
    code = "anchor_failed"
