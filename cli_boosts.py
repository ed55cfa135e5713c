"""Terminal client for inspecting and changing stock boosts."""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Iterable, List

from pydantic import ValidationError

from stockboost.api_client import get_api_client
from stockboost.config import settings
from stockboost.coordinator import MutationCoordinator, stale_channels, syncback_name
from stockboost.description_cache import DescriptionCache, get_description_store
from stockboost.errors import StockBoostError
from stockboost.list_cache import ListCache, filter_boosts
from stockboost.models import Boost, CreateBoostRequest
from stockboost.search_controller import DebouncedSearchController
from stockboost.text_index import get_text_index

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


def print_boosts(boosts: List[Boost], syncback_info: dict | None = None) -> None:
    if not boosts:
        print("  (no boosts)")
        return
    for boost in boosts:
        targets = ", ".join(
            f"{syncback_name(syncback_info, entry.syncback_job_id)}:{entry.sellable_quantity:g}"
            for entry in boost.target_entries
        )
        print(
            f"  #{boost.id} | {boost.sku} | amount={boost.amount:g} | {boost.status} | "
            f"{boost.created_at:%Y-%m-%d %H:%M}" + (f" | {targets}" if targets else "")
        )


async def run_active(coordinator: MutationCoordinator, term: str | None) -> None:
    boosts = await coordinator.get_active()
    info = await coordinator.api.get_syncback_info()
    print(f"Active boosts: {len(boosts)}")
    print_boosts(filter_boosts(boosts, term), info)


async def run_historical(coordinator: MutationCoordinator, page: int, limit: int, term: str | None) -> None:
    result = await coordinator.get_historical(page, limit)
    pagination = result.pagination
    if pagination:
        print(f"Historical boosts: page {pagination.page}/{pagination.total_pages or 1} (total {pagination.total})")
    print_boosts(filter_boosts(result.boosts, term))


async def run_create(coordinator: MutationCoordinator, sku: str, amount: float) -> None:
    boost = await coordinator.create(CreateBoostRequest(sku=sku, amount=amount))
    descriptions = DescriptionCache(coordinator.api.sku_lookup, get_description_store())
    description = await descriptions.get_detail(boost.sku)
    print(f"{GREEN}Created boost #{boost.id}{RESET} for {boost.sku} ({description or 'no description'})")


async def run_deactivate(coordinator: MutationCoordinator, boost_id: str, reason: str) -> None:
    boost = await coordinator.deactivate(boost_id, reason)
    print(f"Boost #{boost.id} is now {boost.status}")


async def run_sync(coordinator: MutationCoordinator, boost_id: str) -> None:
    report = await coordinator.sync_now(boost_id)
    print(report.message or "Sync triggered")
    stale = {channel.name for channel in stale_channels(report)}
    for channel in report.channels:
        color = RED if channel.name in stale else GREEN
        synced = f"{channel.last_synced_at:%Y-%m-%d %H:%M:%S}" if channel.last_synced_at else "never"
        print(f"  {color}{channel.name}{RESET} | {channel.last_synced_status or '-'} | {synced}")


async def run_skus(coordinator: MutationCoordinator, query: str, limit: int) -> None:
    details = await coordinator.api.search_skus(query, limit)
    print(f"SKUs matching {query!r}: {len(details)}")
    for detail in details:
        print(f"  {detail.code} | {detail.description or '-'}")


async def run_search(query: str, pages: int) -> None:
    controller = DebouncedSearchController(get_text_index(), debounce_ms=0)
    controller.set_query(query)
    await controller.wait_idle()
    for _ in range(pages - 1):
        await controller.load_more()
    if controller.error:
        print(f"{RED}{controller.error}{RESET}")
        return
    print(f"Query: {query} | showing {len(controller.documents)} of {controller.total_found}")
    for idx, doc in enumerate(controller.documents, start=1):
        rank = f"{doc.rank:.2f}" if isinstance(doc.rank, (int, float)) else "-"
        print(f"  {idx:02d}. rank={rank} | {doc.primary_code} | {doc.secondary_code or '-'} | {doc.description}")


async def dispatch(args: argparse.Namespace) -> None:
    if args.command == "search":
        await run_search(args.query, args.pages)
        return
    api = get_api_client()
    coordinator = MutationCoordinator(api, ListCache())
    try:
        if args.command == "active":
            await run_active(coordinator, args.filter)
        elif args.command == "historical":
            await run_historical(coordinator, args.page, args.limit, args.filter)
        elif args.command == "create":
            await run_create(coordinator, args.sku, args.amount)
        elif args.command == "deactivate":
            await run_deactivate(coordinator, args.id, args.reason)
        elif args.command == "sync":
            await run_sync(coordinator, args.id)
        elif args.command == "skus":
            await run_skus(coordinator, args.query, args.limit)
    finally:
        coordinator.close()
        await api.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CLI client for stock boosts")
    sub = parser.add_subparsers(dest="command", required=True)

    active = sub.add_parser("active", help="List active boosts")
    active.add_argument("--filter", help="Substring filter on SKUs")

    historical = sub.add_parser("historical", help="List inactive and completed boosts")
    historical.add_argument("--page", type=int, default=1)
    historical.add_argument("--limit", type=int, default=settings.historical_page_size)
    historical.add_argument("--filter", help="Substring filter on SKUs")

    create = sub.add_parser("create", help="Create a boost")
    create.add_argument("sku")
    create.add_argument("amount", type=float)

    deactivate = sub.add_parser("deactivate", help="Deactivate a boost")
    deactivate.add_argument("id")
    deactivate.add_argument("--reason", default="manual")

    sync = sub.add_parser("sync", help="Push a boost to its sales channels now")
    sync.add_argument("id")

    skus = sub.add_parser("skus", help="Look up SKUs through the boost API")
    skus.add_argument("query")
    skus.add_argument("--limit", type=int, default=10)

    search = sub.add_parser("search", help="Search the product index")
    search.add_argument("query")
    search.add_argument("--pages", type=int, default=1, help="Number of result pages to load")
    return parser


def main(argv: Iterable[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=logging.getLevelName(settings.log_level.upper()), format=LOG_FORMAT, force=True)
    try:
        asyncio.run(dispatch(args))
    except ValidationError as exc:
        print(f"{RED}Invalid input:{RESET} {exc}")
        return 2
    except StockBoostError as exc:
        print(f"{RED}Error:{RESET} {exc.message}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
