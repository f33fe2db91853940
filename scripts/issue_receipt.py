#!/usr/bin/env python3
"""
Issue internal payment receipts from the command line.

Usage:
    python3 scripts/issue_receipt.py [--config FILE] <command> [options]

Commands:
    init-db                 Create tables and the receipt counter.
    add-member DNI NAME     Register a primary holder (setup/testing).
    peek                    Show the next receipt number (provisional).
    lookup DNI              Resolve a member by document number.
    issue --dni DNI ...     Issue one receipt.
    reconcile               Report skipped numbers and half-finished receipts.

Examples:
    python3 scripts/issue_receipt.py init-db
    python3 scripts/issue_receipt.py issue --dni 12345678
    python3 scripts/issue_receipt.py issue --dni 12345678 --amount 300 \\
        --method "BBVA Empresa" --operation 004512

Exit codes:
    0  success
    1  the command failed; for issue, any outcome other than ISSUED.
       When a receipt number was spent it is always printed.
    2  bad arguments
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from sqlalchemy.exc import IntegrityError  # noqa: E402

from receipt_config import get_active_config  # noqa: E402
from receipt_config.loader import parse_payment_method  # noqa: E402
from receipt_kernel.db.engine import create_tables  # noqa: E402
from receipt_kernel.domain.dtos import ReceiptRequest  # noqa: E402
from receipt_kernel.domain.outcomes import IssuanceOutcome, IssuanceStatus  # noqa: E402
from receipt_kernel.domain.validation import validate_document_number  # noqa: E402
from receipt_kernel.exceptions import ReceiptKernelError  # noqa: E402
from receipt_kernel.logging_config import configure_logging  # noqa: E402
from receipt_services.wiring import IssuanceServices, build_issuance_services  # noqa: E402


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"not a decimal amount: {value!r}") from exc


def _payment_method(value: str):
    try:
        return parse_payment_method(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Issue internal payment receipts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration YAML (default: packaged defaults.yaml).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Emit INFO-level JSON logs on stderr.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and the receipt counter.")

    add_member = sub.add_parser("add-member", help="Register a primary holder.")
    add_member.add_argument("dni")
    add_member.add_argument("name")

    sub.add_parser("peek", help="Show the next receipt number (not reserved).")

    lookup = sub.add_parser("lookup", help="Resolve a member by DNI.")
    lookup.add_argument("dni")

    issue = sub.add_parser("issue", help="Issue one receipt.")
    issue.add_argument("--dni", required=True, help="Member document number (8 digits).")
    issue.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Issue date YYYY-MM-DD (default: today).",
    )
    issue.add_argument("--amount", type=_decimal, default=None, help="Amount in soles.")
    issue.add_argument("--concept", default=None, help="Payment concept.")
    issue.add_argument(
        "--method",
        type=_payment_method,
        default=None,
        help="Payment method: 'BBVA Empresa', 'Efectivo' or 'Cuenta Fidel'.",
    )
    issue.add_argument(
        "--operation",
        default="",
        help="Bank operation number (required for BBVA Empresa).",
    )
    issue.add_argument(
        "--ledger-retries",
        type=int,
        default=1,
        help="Extra attempts at the ledger step after LEDGER_WRITE_FAILED (default: 1).",
    )

    sub.add_parser("reconcile", help="Report gaps and half-finished receipts.")
    return parser


def _print_outcome(outcome: IssuanceOutcome) -> None:
    if outcome.is_success:
        receipt = outcome.receipt
        print(f"Issued {receipt.correlative} to {receipt.member.legal_name}")
        print(f"  document: {receipt.artifact_handle.uri}")
        print(f"  ledger:   {receipt.ledger_entry.transaction_type.value} "
              f"{receipt.ledger_entry.amount} via {receipt.ledger_entry.account.value}")
        return

    print(f"FAILED: {outcome.status.value}", file=sys.stderr)
    if outcome.message:
        print(f"  {outcome.message}", file=sys.stderr)
    if outcome.validation is not None:
        for err in outcome.validation.errors:
            print(f"  - [{err.code}] {err.field}: {err.message}", file=sys.stderr)
    if outcome.correlative_spent:
        print(f"  Receipt number spent: {outcome.spent_correlative}", file=sys.stderr)
    print(f"  Next step: {outcome.recovery.value}", file=sys.stderr)


def _cmd_init_db(services: IssuanceServices) -> int:
    create_tables(services.engine)
    services.sequencer.initialize(services.config.correlative.last_issued)
    print(f"Database ready. Next receipt number: {services.sequencer.peek()}")
    return 0


def _cmd_add_member(services: IssuanceServices, args: argparse.Namespace) -> int:
    errors = validate_document_number(args.dni)
    if errors:
        print(f"ERROR: {errors[0].message}", file=sys.stderr)
        return 1
    try:
        member = services.directory.register(args.dni, args.name)
    except IntegrityError:
        print(f"ERROR: A member is already registered under {args.dni}", file=sys.stderr)
        return 1
    print(f"Registered {member.document_number}: {member.legal_name} ({member.id})")
    return 0


def _cmd_peek(services: IssuanceServices) -> int:
    print(services.orchestrator.peek_next_correlative().label)
    return 0


def _cmd_lookup(services: IssuanceServices, args: argparse.Namespace) -> int:
    member = services.orchestrator.lookup_member(args.dni)
    if member is None:
        print(f"No member registered under {args.dni}", file=sys.stderr)
        return 1
    print(f"{member.document_number}: {member.legal_name}")
    return 0


def _cmd_issue(services: IssuanceServices, args: argparse.Namespace) -> int:
    defaults = services.config.defaults
    request = ReceiptRequest(
        document_number=args.dni,
        issue_date=args.date or services.clock.today(),
        amount=args.amount if args.amount is not None else defaults.amount,
        concept=args.concept if args.concept is not None else defaults.concept,
        payment_method=args.method or defaults.payment_method,
        operation_reference=args.operation,
    )
    outcome = services.orchestrator.issue(request)

    retries = max(args.ledger_retries, 0)
    while outcome.status == IssuanceStatus.LEDGER_WRITE_FAILED and retries:
        retries -= 1
        print(f"Ledger step failed for {outcome.spent_correlative}; retrying...", file=sys.stderr)
        outcome = services.orchestrator.retry_ledger(outcome)

    _print_outcome(outcome)
    return 0 if outcome.is_success else 1


def _cmd_reconcile(services: IssuanceServices) -> int:
    report = services.reconciliation.scan()
    print(f"Last allocated: {report.last_allocated}")
    sections = (
        ("Skipped (no document, no ledger row)", report.skipped),
        ("Document stored, ledger missing", report.artifacts_without_ledger),
        ("Ledger row without document", report.ledger_without_artifact),
        ("Unexpected keys", report.unexpected_keys),
    )
    for title, keys in sections:
        if keys:
            print(f"{title}: {', '.join(keys)}")
    if report.is_clean:
        print("Series is clean.")
        return 0
    return 1


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        config = get_active_config(args.config)
    except (OSError, KeyError, ValueError) as exc:
        print(f"ERROR: Failed to load config: {exc}", file=sys.stderr)
        return 1

    services = build_issuance_services(config)
    try:
        if args.command == "init-db":
            return _cmd_init_db(services)
        if args.command == "add-member":
            return _cmd_add_member(services, args)
        if args.command == "peek":
            return _cmd_peek(services)
        if args.command == "lookup":
            return _cmd_lookup(services, args)
        if args.command == "issue":
            return _cmd_issue(services, args)
        return _cmd_reconcile(services)
    except ReceiptKernelError as exc:
        print(f"ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
