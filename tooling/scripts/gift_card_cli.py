"""Create, approve, check or redeem a gift card from the command line.

The ledger side signs with ``SIGNER_PRIVATE_KEY`` through the configured
ledger backend; records and emails go through the running API at
``API_BASE_URL``.

Example:
    python tooling/scripts/gift_card_cli.py approve --amount 10
    python tooling/scripts/gift_card_cli.py create --amount 10 --email friend@example.com --template birthday
    python tooling/scripts/gift_card_cli.py redeem --code ABCD-EFGH-JKLM-NPQR
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Unwrap gift card operations")
    parser.add_argument(
        "--wallet",
        default=None,
        help="Wallet address to act as. Defaults to the configured signer.",
    )
    parser.add_argument(
        "--api-base-url",
        default=None,
        help="Override the API base URL used for records and email delivery.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    approve = subparsers.add_parser("approve", help="Approve the escrow contract to pull amount plus fee")
    approve.add_argument("--amount", required=True)

    create = subparsers.add_parser("create", help="Escrow a gift card and email its code")
    create.add_argument("--amount", required=True)
    create.add_argument("--email", required=True)
    create.add_argument("--message", default=None)
    create.add_argument("--template", default="default", choices=["default", "birthday", "holiday"])

    check = subparsers.add_parser("check", help="Check whether a code is redeemable")
    check.add_argument("--code", required=True)

    redeem = subparsers.add_parser("redeem", help="Redeem a code into the wallet")
    redeem.add_argument("--code", required=True)
    return parser.parse_args()


def _jsonable(result: Any) -> dict[str, Any]:
    payload = asdict(result)
    for key, value in payload.items():
        if isinstance(value, list):
            payload[key] = [getattr(item, "value", item) for item in value]
        else:
            payload[key] = getattr(value, "value", value)
    return payload


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from unwrap_api.core.settings import settings  # type: ignore import-position
    from unwrap_api.services.gift_cards import GiftCardOrchestrator, Wallet  # type: ignore import-position
    from unwrap_api.services.gift_cards.api_client import GiftCardApiClient  # type: ignore import-position
    from unwrap_api.services.ledger import build_ledger_client  # type: ignore import-position

    ledger = build_ledger_client(settings)
    api = GiftCardApiClient(args.api_base_url or settings.api_base_url)
    orchestrator = GiftCardOrchestrator.from_settings(settings, ledger=ledger, records=api, notifier=api)
    wallet = Wallet(args.wallet or getattr(ledger, "signer_address", None))

    if args.command == "approve":
        result = await orchestrator.approve(wallet, args.amount)
    elif args.command == "create":
        result = await orchestrator.create_gift_card(
            wallet,
            args.amount,
            args.email,
            message=args.message,
            template=args.template,
        )
    elif args.command == "check":
        result = await orchestrator.check_gift_card(args.code)
    else:
        result = await orchestrator.redeem_gift_card(wallet, args.code)
    return _jsonable(result)


def main() -> int:
    args = parse_args()
    payload = asyncio.run(_run(args))
    print(json.dumps(payload, indent=2))

    succeeded = payload.get("success", payload.get("valid", False))
    if not succeeded:
        logger.error("Gift card command failed", command=args.command, error=payload.get("error"))
        return 1
    logger.success("Gift card command completed", command=args.command)
    return 0


if __name__ == "__main__":
    sys.exit(main())
