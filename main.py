import argparse
import asyncio
import datetime as dt
import json

from cardpoints.api.app import run as run_api
from cardpoints.config import settings
from cardpoints.domain.models import TransactionCandidate
from cardpoints.logging_config import configure_logging
from cardpoints.service import RewardsService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CardPoints unified entrypoint")
    parser.add_argument(
        "mode",
        nargs="?",
        choices=["api", "simulate"],
        default="api",
        help="Run mode: api (default) or simulate",
    )
    parser.add_argument("--amount", type=float, help="Purchase amount (simulate mode)")
    parser.add_argument("--currency", default="SGD")
    parser.add_argument("--mcc")
    parser.add_argument("--merchant", default="")
    parser.add_argument("--online", action="store_true")
    parser.add_argument("--contactless", action="store_true")
    parser.add_argument("--target-currency", default=settings.target_currency)
    return parser


def simulate(args: argparse.Namespace) -> None:
    if args.amount is None:
        raise SystemExit("--amount is required in simulate mode.")

    configure_logging(settings.log_level)
    service = RewardsService.from_settings(settings)
    candidate = TransactionCandidate(
        amount=args.amount,
        currency=args.currency,
        mcc=args.mcc,
        merchant_name=args.merchant,
        is_online=args.online,
        is_contactless=args.contactless,
        date=dt.date.today(),
        instrument_id="",
    )
    results = asyncio.run(service.simulate(candidate, target_currency=args.target_currency))

    rows = [
        {
            "rank": item.rank,
            "instrument": item.instrument.name,
            "points": item.calculation.total_points,
            "points_currency": item.calculation.points_currency,
            "converted_value": item.converted_value,
            "error": item.error,
        }
        for item in results
    ]
    print(json.dumps(rows, ensure_ascii=False, indent=2))


def main() -> None:
    args = build_parser().parse_args()

    if args.mode == "api":
        run_api()
        return

    simulate(args)


if __name__ == "__main__":
    main()
