"""fhevault CLI — command-line interface for the confidential vault.

Usage:
    python -m fhevault.cli status
    python -m fhevault.cli add-provider --address alice
    python -m fhevault.cli --caller alice submit --value 3 --weight 2
    python -m fhevault.cli close-batch
    python -m fhevault.cli --caller bob request-valuation --batch 1
    python -m fhevault.cli fulfill --request-id 1
    python -m fhevault.cli show-request --request-id 1
    python -m fhevault.cli anchor-valuation --request-id 1
    python -m fhevault.cli verify-anchor --request-id 1

State lives under --data-dir (default: FHEVAULT_DATA_DIR or ./data).
--caller defaults to the configured owner.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from fhevault.config import VaultConfig, setup_logging
from fhevault.persistence.event_log import EventLog
from fhevault.persistence.state_store import StateStore
from fhevault.service import ServiceResult, VaultService


def _make_service(args: argparse.Namespace) -> VaultService:
    """Create a VaultService with durable persistence."""
    config: VaultConfig = args.config
    if args.data_dir is not None:
        config.data_dir = args.data_dir
    config.data_dir.mkdir(parents=True, exist_ok=True)
    return VaultService(
        config,
        event_log=EventLog(storage_path=config.events_path),
        state_store=StateStore(config.state_path),
    )


def _caller(args: argparse.Namespace) -> str:
    return args.caller or args.config.owner


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        for warning in result.errors:
            print(f"Warning: {warning}", file=sys.stderr)
        return 0
    code = result.data.get("code", "error")
    print(f"Failed [{code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_transfer_owner(args: argparse.Namespace) -> int:
    return _report(_make_service(args).transfer_owner(_caller(args), args.new_owner))


def cmd_add_provider(args: argparse.Namespace) -> int:
    return _report(_make_service(args).add_provider(_caller(args), args.address))


def cmd_remove_provider(args: argparse.Namespace) -> int:
    return _report(_make_service(args).remove_provider(_caller(args), args.address))


def cmd_pause(args: argparse.Namespace) -> int:
    return _report(_make_service(args).set_paused(_caller(args), True))


def cmd_unpause(args: argparse.Namespace) -> int:
    return _report(_make_service(args).set_paused(_caller(args), False))


def cmd_set_cooldown(args: argparse.Namespace) -> int:
    return _report(_make_service(args).set_cooldown(_caller(args), args.seconds))


def cmd_open_batch(args: argparse.Namespace) -> int:
    return _report(_make_service(args).open_batch(_caller(args)))


def cmd_close_batch(args: argparse.Namespace) -> int:
    return _report(_make_service(args).close_batch(_caller(args)))


def cmd_submit(args: argparse.Namespace) -> int:
    return _report(_make_service(args).submit(_caller(args), args.value, args.weight))


def cmd_request_valuation(args: argparse.Namespace) -> int:
    return _report(_make_service(args).request_valuation(_caller(args), args.batch))


def cmd_fulfill(args: argparse.Namespace) -> int:
    return _report(_make_service(args).fulfill(args.request_id))


def cmd_show_batch(args: argparse.Namespace) -> int:
    service = _make_service(args)
    batch_id = args.batch if args.batch is not None else service.vault.current_batch_id
    return _report(service.batch_summary(batch_id))


def cmd_show_request(args: argparse.Namespace) -> int:
    return _report(_make_service(args).request_info(args.request_id))


def cmd_anchor_valuation(args: argparse.Namespace) -> int:
    return _report(_make_service(args).anchor_valuation(_caller(args), args.request_id))


def cmd_verify_anchor(args: argparse.Namespace) -> int:
    return _report(_make_service(args).verify_anchor(args.request_id))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fhevault",
        description="Confidential aggregation ledger",
    )
    parser.add_argument("--caller", help="Caller identity (default: configured owner)")
    parser.add_argument("--data-dir", type=Path, default=None, help="State directory")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show ledger status")

    p_owner = sub.add_parser("transfer-owner", help="Transfer ownership")
    p_owner.add_argument("--new-owner", required=True, help="New owner identity")

    p_add = sub.add_parser("add-provider", help="Grant the provider role")
    p_add.add_argument("--address", required=True, help="Provider identity")

    p_rm = sub.add_parser("remove-provider", help="Revoke the provider role")
    p_rm.add_argument("--address", required=True, help="Provider identity")

    sub.add_parser("pause", help="Pause batch lifecycle, submissions and valuations")
    sub.add_parser("unpause", help="Lift the pause")

    p_cd = sub.add_parser("set-cooldown", help="Set the per-address cooldown")
    p_cd.add_argument("--seconds", type=int, required=True, help="Cooldown in seconds")

    sub.add_parser("open-batch", help="Open the next batch")
    sub.add_parser("close-batch", help="Close the current batch")

    p_submit = sub.add_parser("submit", help="Encrypt and submit a (value, weight) pair")
    p_submit.add_argument("--value", type=int, required=True, help="Plaintext value")
    p_submit.add_argument("--weight", type=int, required=True, help="Plaintext weight")

    p_req = sub.add_parser("request-valuation", help="Request a closed batch's aggregate")
    p_req.add_argument("--batch", type=int, required=True, help="Batch ID")

    p_ful = sub.add_parser("fulfill", help="Deliver a pending decryption (local oracle)")
    p_ful.add_argument("--request-id", type=int, required=True, help="Request ID")

    p_show = sub.add_parser("show-batch", help="Summarise a batch")
    p_show.add_argument("--batch", type=int, default=None, help="Batch ID (default: current)")

    p_showr = sub.add_parser("show-request", help="Show a decryption context")
    p_showr.add_argument("--request-id", type=int, required=True, help="Request ID")

    p_anchor = sub.add_parser("anchor-valuation", help="Anchor a valuation receipt on chain")
    p_anchor.add_argument("--request-id", type=int, required=True, help="Request ID")

    p_verify = sub.add_parser("verify-anchor", help="Check an anchored valuation against its tx")
    p_verify.add_argument("--request-id", type=int, required=True, help="Request ID")

    return parser


def main(argv: Optional[list[str]] = None, config: Optional[VaultConfig] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        args.config = config if config is not None else VaultConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(args.config.log_level)

    commands: dict[str, Any] = {
        "status": cmd_status,
        "transfer-owner": cmd_transfer_owner,
        "add-provider": cmd_add_provider,
        "remove-provider": cmd_remove_provider,
        "pause": cmd_pause,
        "unpause": cmd_unpause,
        "set-cooldown": cmd_set_cooldown,
        "open-batch": cmd_open_batch,
        "close-batch": cmd_close_batch,
        "submit": cmd_submit,
        "request-valuation": cmd_request_valuation,
        "fulfill": cmd_fulfill,
        "show-batch": cmd_show_batch,
        "show-request": cmd_show_request,
        "anchor-valuation": cmd_anchor_valuation,
        "verify-anchor": cmd_verify_anchor,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
