"""PoWorth CLI — command-line interface for the prediction market.

Usage:
    python -m poworth.cli status
    python -m poworth.cli deposit --account bob --amount 50000000
    python -m poworth.cli create-topic --id 1 --description "AAPL close" --symbol AAPL \\
        --commit-deadline 1700000060 --reveal-deadline 1700000120 \\
        --authority alice --oracle oracle
    python -m poworth.cli make-commitment --topic 1 --participant bob --prediction 150.25
    python -m poworth.cli commit --topic 1 --participant bob --stake 25000000
    python -m poworth.cli reveal --topic 1 --participant bob
    python -m poworth.cli finalize --topic 1 --oracle oracle --truth 151.00
    python -m poworth.cli settle --topic 1 --caller alice
    python -m poworth.cli show-topic --topic 1

Prediction and truth values are given as decimals and stored as
fixed-point integers (six decimal places). Stakes are integer base
units. --now pins the clock, for scripted walkthroughs of the phases.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import InvalidOperation
from pathlib import Path

from poworth.config import MarketConfig
from poworth.crypto.commitment import compute_commitment, generate_salt
from poworth.errors import MarketError
from poworth.fixed_point import from_fixed_point, to_fixed_point
from poworth.ledger.clock import Clock, ManualClock, SystemClock
from poworth.ledger.transfer import InMemoryLedger
from poworth.persistence.event_log import EventLog
from poworth.persistence.salt_store import SaltStore
from poworth.persistence.state_store import StateStore
from poworth.service import PredictionMarketService, ServiceResult


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _clock(args: argparse.Namespace) -> Clock:
    if args.now is not None:
        return ManualClock(args.now)
    return SystemClock()


def _make_service(args: argparse.Namespace) -> PredictionMarketService:
    """Create a PredictionMarketService with durable persistence."""
    data_dir: Path = args.data
    data_dir.mkdir(parents=True, exist_ok=True)
    config = MarketConfig.from_config_dir(args.config)
    return PredictionMarketService(
        config,
        InMemoryLedger(storage_path=data_dir / "ledger.json"),
        clock=_clock(args),
        store=StateStore(storage_path=data_dir / "state.json"),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
    )


def _salt_store(args: argparse.Namespace) -> SaltStore:
    args.data.mkdir(parents=True, exist_ok=True)
    return SaltStore(storage_path=args.data / "salts.json")


def _fixed(raw: str) -> int:
    try:
        return to_fixed_point(raw)
    except (InvalidOperation, MarketError):
        raise argparse.ArgumentTypeError(f"not a fixed-point decimal: {raw!r}")


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, sort_keys=True))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_deposit(args: argparse.Namespace) -> int:
    args.data.mkdir(parents=True, exist_ok=True)
    ledger = InMemoryLedger(storage_path=args.data / "ledger.json")
    ledger.deposit(args.account, args.amount)
    print(f"Deposited {args.amount} to {args.account} (balance: {ledger.balance(args.account)})")
    return 0


def cmd_create_topic(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.create_topic(
        topic_id=args.id,
        description=args.description,
        symbol=args.symbol,
        commit_deadline=args.commit_deadline,
        reveal_deadline=args.reveal_deadline,
        authority=args.authority,
        oracle_authority=args.oracle,
        min_stake=args.min_stake,
    )
    if result.success:
        print(f"Created topic: {result.data['topic_id']} ({result.data['symbol']})")
        return 0
    return _report(result)


def cmd_make_commitment(args: argparse.Namespace) -> int:
    """Draw a salt, store it with the prediction, print the commitment hash."""
    salts = _salt_store(args)
    salt = generate_salt()
    digest = compute_commitment(args.prediction, salt, args.participant)
    try:
        salts.save_salt(
            topic_id=args.topic,
            participant=args.participant,
            salt=salt,
            prediction=args.prediction,
            committed_at=_clock(args).now(),
        )
    except ValueError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps({
        "topic_id": args.topic,
        "participant": args.participant,
        "prediction_value": args.prediction,
        "commitment_hash": digest.hex(),
    }, indent=2))
    return 0


def cmd_commit(args: argparse.Namespace) -> int:
    if args.hash is not None:
        digest = bytes.fromhex(args.hash)
    else:
        record = _salt_store(args).get_salt(args.topic, args.participant)
        if record is None or record.revealed:
            print("Failed: no stored salt; run make-commitment or pass --hash", file=sys.stderr)
            return 1
        digest = compute_commitment(record.prediction, record.salt_bytes, args.participant)

    service = _make_service(args)
    return _report(service.commit(args.topic, args.participant, digest, args.stake))


def cmd_reveal(args: argparse.Namespace) -> int:
    if (args.salt is None) != (args.prediction is None):
        print("Failed: --prediction and --salt must be given together", file=sys.stderr)
        return 1
    salts = _salt_store(args)
    if args.salt is not None:
        prediction, salt = args.prediction, bytes.fromhex(args.salt)
    else:
        record = salts.get_salt(args.topic, args.participant)
        if record is None:
            print("Failed: no stored salt; pass --prediction and --salt", file=sys.stderr)
            return 1
        prediction, salt = record.prediction, record.salt_bytes

    service = _make_service(args)
    result = service.reveal(args.topic, args.participant, prediction, salt)
    if result.success:
        salts.mark_revealed(args.topic, args.participant)
    return _report(result)


def cmd_finalize(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.finalize(args.topic, args.oracle, args.truth))


def cmd_settle(args: argparse.Namespace) -> int:
    service = _make_service(args)
    return _report(service.settle(args.topic, args.caller))


def cmd_show_topic(args: argparse.Namespace) -> int:
    service = _make_service(args)
    topic = service.get_topic(args.topic)
    if topic is None:
        print(f"Failed: unknown topic {args.topic}", file=sys.stderr)
        return 1
    data = topic.to_dict()
    if topic.finalized_at is not None:
        data["truth_display"] = str(from_fixed_point(topic.truth_value))
    data["vault_balance"] = service.vault_balance(args.topic)
    data["commitments"] = [c.to_dict() for c in service.list_commitments(args.topic)]
    print(json.dumps(data, indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="poworth",
        description="PoWorth — commit-reveal prediction market CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_DATA,
        help="Path to data directory (default: data/)",
    )
    parser.add_argument("--now", type=int, help="Override the clock (unix seconds)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show market status")

    # deposit
    p_dep = sub.add_parser("deposit", help="Fund a ledger account")
    p_dep.add_argument("--account", required=True)
    p_dep.add_argument("--amount", type=int, required=True, help="Base units")

    # create-topic
    p_create = sub.add_parser("create-topic", help="Create a prediction topic")
    p_create.add_argument("--id", type=int, required=True, help="Topic ID")
    p_create.add_argument("--description", required=True)
    p_create.add_argument("--symbol", required=True)
    p_create.add_argument("--commit-deadline", type=int, required=True)
    p_create.add_argument("--reveal-deadline", type=int, required=True)
    p_create.add_argument("--authority", required=True, help="Topic authority ID")
    p_create.add_argument("--oracle", required=True, help="Oracle authority ID")
    p_create.add_argument("--min-stake", type=int, help="Minimum stake (default: from config)")

    # make-commitment
    p_make = sub.add_parser("make-commitment", help="Generate and store a salt, print the hash")
    p_make.add_argument("--topic", type=int, required=True)
    p_make.add_argument("--participant", required=True)
    p_make.add_argument("--prediction", type=_fixed, required=True, help="Decimal value")

    # commit
    p_commit = sub.add_parser("commit", help="Submit a commitment with stake")
    p_commit.add_argument("--topic", type=int, required=True)
    p_commit.add_argument("--participant", required=True)
    p_commit.add_argument("--stake", type=int, required=True, help="Base units")
    p_commit.add_argument("--hash", help="Commitment hash hex (default: from stored salt)")

    # reveal
    p_reveal = sub.add_parser("reveal", help="Reveal a commitment")
    p_reveal.add_argument("--topic", type=int, required=True)
    p_reveal.add_argument("--participant", required=True)
    p_reveal.add_argument("--prediction", type=_fixed, help="Decimal value (default: stored)")
    p_reveal.add_argument("--salt", help="Salt hex (default: stored)")

    # finalize
    p_fin = sub.add_parser("finalize", help="Publish the truth value")
    p_fin.add_argument("--topic", type=int, required=True)
    p_fin.add_argument("--oracle", required=True)
    p_fin.add_argument("--truth", type=_fixed, required=True, help="Decimal value")

    # settle
    p_settle = sub.add_parser("settle", help="Distribute rewards")
    p_settle.add_argument("--topic", type=int, required=True)
    p_settle.add_argument("--caller", required=True)

    # show-topic
    p_show = sub.add_parser("show-topic", help="Show a topic and its commitments")
    p_show.add_argument("--topic", type=int, required=True)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "deposit": cmd_deposit,
        "create-topic": cmd_create_topic,
        "make-commitment": cmd_make_commitment,
        "commit": cmd_commit,
        "reveal": cmd_reveal,
        "finalize": cmd_finalize,
        "settle": cmd_settle,
        "show-topic": cmd_show_topic,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except (MarketError, ValueError) as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
