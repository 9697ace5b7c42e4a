"""CLI entry point for MilkTrack."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict

from dotenv import load_dotenv

from .aggregate import base_rate_rupees, day_of_month, group_by_month, is_manual, snf_percent
from .config import MilkTrackConfig, load_config
from .db import AIRecordDB, LocalImageBucket, ProfileDB, SQLiteReceiptStore
from .errors import MilkTrackError, ValidationViolation
from .image import ImageNormalizer
from .models import VALUE_FIELDS, CanonicalReceipt, RawCapture, Role
from .pipeline import IngestionSession
from .validate import RangeRule, RecordValidator
from .vision import create_extractor


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="milktrack",
        description="Dairy receipt tracker: read milk slips with a vision model and keep monthly records",
    )
    parser.add_argument("--config", "-c", type=str, default=None, help="config file (TOML)")
    parser.add_argument(
        "--user",
        "-u",
        type=str,
        default=os.environ.get("MILKTRACK_USER", ""),
        help="acting user ID (default: $MILKTRACK_USER)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command")

    # signup
    signup_parser = sub.add_parser("signup", help="create a profile for the acting user")
    signup_parser.add_argument("email", type=str)
    signup_parser.add_argument("--name", type=str, default=None)

    # role
    role_parser = sub.add_parser("role", help="change a user's role (admin only)")
    role_parser.add_argument("target", type=str, help="user ID")
    role_parser.add_argument("role", choices=[r.value for r in Role])
    sub.add_parser("claim-admin", help="become admin of a tenant that has none")

    # scan
    scan_parser = sub.add_parser("scan", help="read a receipt photo")
    scan_parser.add_argument("image", type=str, help="photo file")
    scan_parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="FIELD=VALUE",
        help="correct an extracted value before saving",
    )
    scan_parser.add_argument("--save", action="store_true", help="save the receipt")
    scan_parser.add_argument("--json", action="store_true", help="JSON output")

    # manual
    manual_parser = sub.add_parser("manual", help="enter a receipt by hand")
    manual_parser.add_argument("--date", required=True, help="DD/MM/YYYY or YYYY-MM-DD")
    manual_parser.add_argument("--quantity", required=True)
    manual_parser.add_argument("--fat", required=True)
    manual_parser.add_argument("--snf", required=True, help="SNF %%")
    manual_parser.add_argument("--rate", required=True)
    manual_parser.add_argument("--amount", required=True)
    manual_parser.add_argument("--save", action="store_true", help="save the receipt")
    manual_parser.add_argument("--json", action="store_true", help="JSON output")

    # records
    records_parser = sub.add_parser("records", help="show receipts grouped by month")
    records_parser.add_argument("--filter", type=str, default=None, help="search text")
    records_parser.add_argument("--json", action="store_true", help="JSON output")

    # delete
    delete_parser = sub.add_parser("delete", help="delete a receipt (admin only)")
    delete_parser.add_argument("receipt_id", type=str)

    # ai
    ai_parser = sub.add_parser("ai", help="artificial-insemination records")
    ai_sub = ai_parser.add_subparsers(dest="ai_command")
    ai_add = ai_sub.add_parser("add", help="record an insemination")
    ai_add.add_argument("animal_tag", type=str)
    ai_add.add_argument("ai_date", type=str, help="YYYY-MM-DD")
    ai_sub.add_parser("list", help="list your records")
    ai_delete = ai_sub.add_parser("delete", help="delete a record")
    ai_delete.add_argument("record_id", type=str)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s  %(name)-24s  %(levelname)-5s  %(message)s",
    )

    load_dotenv()
    config = load_config(args.config)

    if not args.user:
        print("No user given: pass --user or set MILKTRACK_USER.", file=sys.stderr)
        sys.exit(1)

    try:
        match args.command:
            case "signup":
                _cmd_signup(config, args)
            case "role":
                _cmd_role(config, args)
            case "claim-admin":
                _cmd_claim_admin(config, args)
            case "scan":
                asyncio.run(_cmd_scan(config, args))
            case "manual":
                asyncio.run(_cmd_manual(config, args))
            case "records":
                _cmd_records(config, args)
            case "delete":
                _cmd_delete(config, args)
            case "ai":
                _cmd_ai(config, args, ai_parser)
    except ValidationViolation as e:
        print("Receipt is not valid:", file=sys.stderr)
        for v in e.violations:
            print(f"  {v}", file=sys.stderr)
        sys.exit(1)
    except MilkTrackError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _open_store(config: MilkTrackConfig) -> SQLiteReceiptStore:
    bucket = LocalImageBucket(
        root=config.store.bucket_dir,
        public_base_url=config.store.public_base_url,
    )
    return SQLiteReceiptStore(
        db_path=config.store.path,
        bucket=bucket,
        validator=RecordValidator(config.validation),
    )


def _build_session(config: MilkTrackConfig, user: str, store: SQLiteReceiptStore) -> IngestionSession:
    return IngestionSession(
        owner_id=user,
        extractor=create_extractor(config),
        store=store,
        normalizer=ImageNormalizer(
            max_size=config.image.max_size,
            jpeg_quality=config.image.jpeg_quality,
        ),
        validator=RecordValidator(config.validation),
    )


def _parse_overrides(pairs: list[str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"--set expects FIELD=VALUE, got {pair!r}")
        overrides[name.strip()] = value
    return overrides


def _cmd_signup(config: MilkTrackConfig, args) -> None:
    db = ProfileDB(config.store.path)
    try:
        profile = db.ensure_profile(args.user, args.email, args.name)
    finally:
        db.close()
    print(f"{profile.display_name} ({profile.id}): {profile.role.value}")


def _cmd_role(config: MilkTrackConfig, args) -> None:
    db = ProfileDB(config.store.path)
    try:
        profile = db.set_role(args.user, args.target, args.role)
    finally:
        db.close()
    print(f"{profile.display_name} is now {profile.role.value}")


def _cmd_claim_admin(config: MilkTrackConfig, args) -> None:
    db = ProfileDB(config.store.path)
    try:
        profile = db.bootstrap_admin(args.user)
    finally:
        db.close()
    print(f"{profile.display_name} is now {profile.role.value}")


def _print_receipt(
    receipt: CanonicalReceipt,
    session: IngestionSession,
    rules: dict[str, RangeRule],
    as_json: bool,
) -> None:
    violations = session.context.violations
    if as_json:
        data = {
            "receipt": receipt.values(),
            "violations": [asdict(v) for v in violations],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    for name in VALUE_FIELDS:
        rule = rules.get(name)
        label = (rule.label if rule else None) or name
        value = getattr(receipt, name)
        print(f"  {label:<16} {value if value is not None else '-'}")
    for v in violations:
        print(f"  ! {v}")


async def _cmd_scan(config: MilkTrackConfig, args) -> None:
    store = _open_store(config)
    try:
        session = _build_session(config, args.user, store)
        capture = RawCapture.from_path(args.image)
        if not args.json:
            print("Reading receipt...")
        receipt = await session.capture(capture)
        overrides = _parse_overrides(args.overrides)
        if overrides:
            try:
                receipt = session.edit(**overrides)
            except ValueError as e:
                print(str(e), file=sys.stderr)
                sys.exit(1)
        _print_receipt(receipt, session, config.validation, args.json)

        if args.save:
            record_id = await session.save()
            print(f"Saved receipt {record_id}")
    finally:
        store.close()


async def _cmd_manual(config: MilkTrackConfig, args) -> None:
    store = _open_store(config)
    try:
        session = _build_session(config, args.user, store)
        receipt = session.enter_manually(
            date=args.date,
            quantity=args.quantity,
            fat=args.fat,
            snf=args.snf,
            rate=args.rate,
            amount=args.amount,
        )
        _print_receipt(receipt, session, config.validation, args.json)

        if args.save:
            record_id = await session.save()
            print(f"Saved receipt {record_id}")
    finally:
        store.close()


def _cmd_records(config: MilkTrackConfig, args) -> None:
    store = _open_store(config)
    try:
        receipts = store.list_receipts(args.user)
    finally:
        store.close()

    view = group_by_month(receipts, args.filter)

    if args.json:
        data = {
            "total_records": len(receipts),
            "months": [
                {
                    "month": group.label,
                    "total": group.total,
                    "receipts": [
                        {**r.values(), "id": r.id, "image_url": r.image_url}
                        for r in group.receipts
                    ],
                }
                for group in view.groups.values()
            ],
            "skipped": [r.id for r in view.skipped],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if not receipts:
        print("No receipts found. Scan your first receipt to get started!")
        return

    print(f"Total: {len(receipts)}")
    header = f"{'Date':>4} {'Qty':>7} {'Fat':>5} {'SNF':>5} {'Rate':>7} {'Amt':>10} {'CLR':>6} {'B.Rt':>7} Type"
    for group in view.groups.values():
        print(f"\n{group.label}")
        print(header)
        for r in group.receipts:
            kind = "manual" if is_manual(r) else "camera"
            print(
                f"{day_of_month(r):>4} {r.quantity or '-':>7} {r.fat or '-':>5} "
                f"{snf_percent(r) or '-':>5} {r.rate or '-':>7} {r.amount or '-':>10} "
                f"{r.clr or '-':>6} {base_rate_rupees(r) or '-':>7} {kind}"
            )
        print(f"{'Total':<32} {group.total:>10}")
    if view.skipped:
        print(f"\n{len(view.skipped)} receipt(s) with unreadable dates not shown.")


def _cmd_delete(config: MilkTrackConfig, args) -> None:
    store = _open_store(config)
    try:
        store.delete_receipt(args.user, args.receipt_id)
    finally:
        store.close()
    print(f"Deleted receipt {args.receipt_id}")


def _cmd_ai(config: MilkTrackConfig, args, ai_parser: argparse.ArgumentParser) -> None:
    db = AIRecordDB(config.store.path)
    try:
        match args.ai_command:
            case "add":
                try:
                    record_id = db.save_ai_record(args.user, args.animal_tag, args.ai_date)
                except ValueError as e:
                    print(str(e), file=sys.stderr)
                    sys.exit(1)
                print(f"Saved AI record {record_id}")
            case "list":
                records = db.list_ai_records(args.user)
                if not records:
                    print("No AI records yet.")
                    return
                for r in records:
                    print(f"  {r.ai_date}  {r.animal_tag:<12} {r.id}")
            case "delete":
                db.delete_ai_record(args.user, args.record_id)
                print(f"Deleted AI record {args.record_id}")
            case _:
                ai_parser.print_help()
                sys.exit(1)
    finally:
        db.close()
