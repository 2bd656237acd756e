"""Access control — owner identity, provider role, pause switch, cooldown.

All mutations are owner-only. The pause switch gates batch lifecycle,
submission and valuation requests, but never ownership transfer or
provider management, so the owner can still recover a paused ledger.

Pure state logic: event emission is handled by the vault.
"""

from __future__ import annotations

from fhevault.errors import InvalidParameter, NotOwner, NotProvider, Paused
from fhevault.ledger.state import LedgerState


class AccessControl:
    """Role checks and owner-only configuration over a LedgerState."""

    def __init__(self, state: LedgerState) -> None:
        self._state = state

    @property
    def owner(self) -> str:
        return self._state.config.owner

    @property
    def paused(self) -> bool:
        return self._state.config.paused

    @property
    def cooldown_seconds(self) -> int:
        return self._state.config.cooldown_seconds

    def is_provider(self, address: str) -> bool:
        return address in self._state.providers

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def require_owner(self, caller: str) -> None:
        if caller != self._state.config.owner:
            raise NotOwner(f"Caller {caller!r} is not the owner")

    def require_provider(self, caller: str) -> None:
        if caller not in self._state.providers:
            raise NotProvider(f"Caller {caller!r} is not a registered provider")

    def require_not_paused(self) -> None:
        if self._state.config.paused:
            raise Paused("Ledger is paused")

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def transfer_owner(self, caller: str, new_owner: str) -> str:
        """Hand ownership to new_owner. Returns the previous owner."""
        self.require_owner(caller)
        new_owner = _require_identity(new_owner)
        previous = self._state.config.owner
        self._state.config.owner = new_owner
        return previous

    def add_provider(self, caller: str, provider: str) -> str:
        """Grant the provider role. Returns the normalized identity."""
        self.require_owner(caller)
        provider = _require_identity(provider)
        self._state.providers.add(provider)
        return provider

    def remove_provider(self, caller: str, provider: str) -> str:
        """Revoke the provider role. Returns the normalized identity."""
        self.require_owner(caller)
        provider = _require_identity(provider)
        if provider not in self._state.providers:
            raise InvalidParameter(f"{provider!r} is not a registered provider")
        self._state.providers.discard(provider)
        return provider

    def set_paused(self, caller: str, paused: bool) -> None:
        self.require_owner(caller)
        self._state.config.paused = paused

    def set_cooldown(self, caller: str, seconds: int) -> None:
        self.require_owner(caller)
        if seconds < 0:
            raise InvalidParameter(f"Cooldown must be non-negative, got {seconds}")
        self._state.config.cooldown_seconds = seconds


def _require_identity(address: str) -> str:
    address = (address or "").strip()
    if not address:
        raise InvalidParameter("Identity must not be blank")
    return address
