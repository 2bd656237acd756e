"""Runtime configuration, read from the environment (and a .env file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
SEPOLIA_CHAIN_ID = 11155111


@dataclass
class VaultConfig:
    owner: str = "owner"
    ledger_id: str = "fhevault:local"
    cooldown_seconds: int = 60
    oracle_private_key: Optional[str] = None  # unset: ephemeral key per start
    data_dir: Path = field(default_factory=lambda: Path("data"))
    log_level: str = "WARNING"
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    chain_id: int = SEPOLIA_CHAIN_ID

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def events_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None) -> VaultConfig:
        load_dotenv(dotenv_path)
        cooldown = _int_env("FHEVAULT_COOLDOWN_SECONDS", 60)
        if cooldown < 0:
            raise ValueError(f"FHEVAULT_COOLDOWN_SECONDS must be non-negative, got {cooldown}")
        return cls(
            owner=os.getenv("FHEVAULT_OWNER", "owner"),
            ledger_id=os.getenv("FHEVAULT_LEDGER_ID", "fhevault:local"),
            cooldown_seconds=cooldown,
            oracle_private_key=os.getenv("FHEVAULT_ORACLE_KEY") or None,
            data_dir=Path(os.getenv("FHEVAULT_DATA_DIR", "data")),
            log_level=os.getenv("FHEVAULT_LOG_LEVEL", "WARNING").upper(),
            rpc_url=os.getenv("SEPOLIA_RPC_URL") or None,
            private_key=os.getenv("PRIVATE_KEY") or os.getenv("SEPOLIA_PRIVATE_KEY") or None,
            chain_id=_int_env("FHEVAULT_CHAIN_ID", SEPOLIA_CHAIN_ID),
        )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def setup_logging(level: str = "WARNING") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.WARNING), format=LOG_FORMAT)
