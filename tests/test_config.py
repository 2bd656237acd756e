"""Tests for environment configuration."""

import logging
import pytest
from pathlib import Path

from fhevault.config import VaultConfig, setup_logging

_VARS = (
    "FHEVAULT_OWNER",
    "FHEVAULT_LEDGER_ID",
    "FHEVAULT_COOLDOWN_SECONDS",
    "FHEVAULT_ORACLE_KEY",
    "FHEVAULT_CHAIN_ID",
    "FHEVAULT_DATA_DIR",
    "FHEVAULT_LOG_LEVEL",
    "SEPOLIA_RPC_URL",
    "PRIVATE_KEY",
    "SEPOLIA_PRIVATE_KEY",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _VARS:
        # setenv first so monkeypatch restores (removes) anything a .env load adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestFromEnv:
    def test_defaults(self, tmp_path: Path) -> None:
        config = VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")
        assert config.owner == "owner"
        assert config.cooldown_seconds == 60
        assert config.data_dir == Path("data")
        assert config.state_path == Path("data") / "state.json"
        assert config.events_path == Path("data") / "events.jsonl"
        assert config.rpc_url is None
        assert config.private_key is None
        assert config.oracle_private_key is None
        assert config.chain_id == 11155111

    def test_environment_overrides(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("FHEVAULT_OWNER", "treasury")
        monkeypatch.setenv("FHEVAULT_COOLDOWN_SECONDS", "5")
        monkeypatch.setenv("FHEVAULT_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("FHEVAULT_LOG_LEVEL", "info")
        monkeypatch.setenv("SEPOLIA_PRIVATE_KEY", "0xabc")
        config = VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")
        assert config.owner == "treasury"
        assert config.cooldown_seconds == 5
        assert config.data_dir == tmp_path
        assert config.log_level == "INFO"
        assert config.private_key == "0xabc"

    def test_dotenv_file(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.write_text(
            "FHEVAULT_LEDGER_ID=ledger:dotenv\nSEPOLIA_RPC_URL=http://rpc.example\n",
            encoding="utf-8",
        )
        config = VaultConfig.from_env(dotenv_path=env)
        assert config.ledger_id == "ledger:dotenv"
        assert config.rpc_url == "http://rpc.example"

    def test_environment_wins_over_dotenv(self, tmp_path: Path, monkeypatch) -> None:
        env = tmp_path / ".env"
        env.write_text("FHEVAULT_OWNER=from-file\n", encoding="utf-8")
        monkeypatch.setenv("FHEVAULT_OWNER", "from-env")
        assert VaultConfig.from_env(dotenv_path=env).owner == "from-env"

    def test_invalid_cooldown(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("FHEVAULT_COOLDOWN_SECONDS", "soon")
        with pytest.raises(ValueError, match="integer"):
            VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")
        monkeypatch.setenv("FHEVAULT_COOLDOWN_SECONDS", "-3")
        with pytest.raises(ValueError, match="non-negative"):
            VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")

    def test_oracle_key_and_chain(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("FHEVAULT_ORACLE_KEY", "0x" + "4c" * 32)
        monkeypatch.setenv("FHEVAULT_CHAIN_ID", "31337")
        config = VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")
        assert config.oracle_private_key == "0x" + "4c" * 32
        assert config.chain_id == 31337

    def test_invalid_chain_id(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("FHEVAULT_CHAIN_ID", "sepolia")
        with pytest.raises(ValueError, match="FHEVAULT_CHAIN_ID must be an integer"):
            VaultConfig.from_env(dotenv_path=tmp_path / "absent.env")


class TestLogging:
    def test_setup_logging_accepts_unknown_level(self) -> None:
        setup_logging("nonsense")
        assert logging.getLogger("fhevault").isEnabledFor(logging.WARNING)
