"""Tests for fhevault CLI — proves CLI dispatches correctly."""

import json
import pytest
from pathlib import Path

from fhevault.cli import build_parser, main
from fhevault.config import VaultConfig
from fhevault.crypto.anchor import AnchorRecord


def _config(tmp_path: Path, **overrides) -> VaultConfig:
    return VaultConfig(data_dir=tmp_path, cooldown_seconds=0, **overrides)


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_submit_command(self) -> None:
        args = build_parser().parse_args([
            "--caller", "alice", "submit", "--value", "3", "--weight", "2",
        ])
        assert args.command == "submit"
        assert args.caller == "alice"
        assert (args.value, args.weight) == (3, 2)

    def test_show_batch_defaults_to_current(self) -> None:
        args = build_parser().parse_args(["show-batch"])
        assert args.batch is None

    def test_request_valuation_requires_batch(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["request-valuation"])

    def test_verify_anchor_command(self) -> None:
        args = build_parser().parse_args(["verify-anchor", "--request-id", "3"])
        assert args.command == "verify-anchor"
        assert args.request_id == 3


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "fhevault" in capsys.readouterr().out

    def test_status_runs(self, tmp_path: Path, capsys) -> None:
        assert main(["status"], config=_config(tmp_path)) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["batches"]["current"] == 1

    def test_valuation_e2e(self, tmp_path: Path, capsys) -> None:
        config = _config(tmp_path)
        assert main(["add-provider", "--address", "alice"], config=config) == 0
        assert main(["--caller", "alice", "submit", "--value", "3", "--weight", "2"], config=config) == 0
        assert main(["close-batch"], config=config) == 0
        assert main(["--caller", "bob", "request-valuation", "--batch", "1"], config=config) == 0
        capsys.readouterr()

        assert main(["fulfill", "--request-id", "1"], config=config) == 0
        out = capsys.readouterr().out
        assert '"total_value": 6' in out

        assert main(["show-batch", "--batch", "1"], config=config) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["closed"] is True
        assert summary["request_ids"] == [1]

    def test_rejected_operation_exits_nonzero(self, tmp_path: Path, capsys) -> None:
        config = _config(tmp_path)
        assert main(["--caller", "mallory", "submit", "--value", "1", "--weight", "1"], config=config) == 1
        assert "Failed [not_provider]" in capsys.readouterr().err

    def test_pause_blocks_submission(self, tmp_path: Path, capsys) -> None:
        config = _config(tmp_path)
        main(["add-provider", "--address", "alice"], config=config)
        assert main(["pause"], config=config) == 0
        assert main(["--caller", "alice", "submit", "--value", "1", "--weight", "1"], config=config) == 1
        assert "Failed [paused]" in capsys.readouterr().err
        assert main(["unpause"], config=config) == 0
        assert main(["--caller", "alice", "submit", "--value", "1", "--weight", "1"], config=config) == 0

    def test_anchor_requires_configuration(self, tmp_path: Path, capsys) -> None:
        assert main(["anchor-valuation", "--request-id", "1"], config=_config(tmp_path)) == 1
        assert "not_configured" in capsys.readouterr().err

    def test_anchor_e2e(self, tmp_path: Path, capsys, monkeypatch) -> None:
        sent: dict[str, bytes] = {}

        class _FakeChain:
            def __init__(self, rpc_url: str, private_key: str, chain_id: int) -> None:
                pass

            def publish(self, payload: bytes) -> AnchorRecord:
                sent["0xfeed"] = payload
                return AnchorRecord(tx_hash="0xfeed", block_number=1, chain_id=11155111)

            def payload_of(self, tx_hash: str) -> bytes:
                return sent[tx_hash]

        monkeypatch.setattr("fhevault.service.ChainAnchor", _FakeChain)
        config = _config(tmp_path, rpc_url="http://rpc", private_key="0xkey")
        main(["add-provider", "--address", "alice"], config=config)
        main(["--caller", "alice", "submit", "--value", "4", "--weight", "1"], config=config)
        main(["close-batch"], config=config)
        main(["request-valuation", "--batch", "1"], config=config)
        main(["fulfill", "--request-id", "1"], config=config)
        capsys.readouterr()

        denied = main(["--caller", "alice", "anchor-valuation", "--request-id", "1"], config=config)
        assert denied == 1
        assert "not_owner" in capsys.readouterr().err

        assert main(["anchor-valuation", "--request-id", "1"], config=config) == 0
        assert json.loads(capsys.readouterr().out)["tx_hash"] == "0xfeed"

        assert main(["verify-anchor", "--request-id", "1"], config=config) == 0
        assert json.loads(capsys.readouterr().out)["verified"] is True

    def test_bad_environment_config(self, tmp_path: Path, monkeypatch, capsys) -> None:
        monkeypatch.setenv("FHEVAULT_COOLDOWN_SECONDS", "soon")
        monkeypatch.chdir(tmp_path)
        assert main(["status"]) == 1
        assert "Configuration error" in capsys.readouterr().err
