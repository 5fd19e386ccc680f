"""``catalogcache`` console script: inspect, clear and force-reload the cache."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

from catalogcache.config import Settings
from catalogcache.errors import CatalogError
from catalogcache.resources import ResourceState
from catalogcache.state import open_app

if TYPE_CHECKING:
    from collections.abc import Sequence

    from catalogcache.state import AppState

_KINDS = ("products", "weekly-pdfs", "images")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalogcache")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Print cache statistics as JSON")
    sub.add_parser("clear", help="Remove every cached entry")
    refresh = sub.add_parser("refresh", help="Drop the cache for a kind and reload it")
    refresh.add_argument("kind", choices=_KINDS)
    return parser


async def _run(args: argparse.Namespace, state: AppState) -> int:
    if args.command == "status":
        stats = await state.store.stats()
        print(stats.model_dump_json(indent=2))
        return 0

    if args.command == "clear":
        removed = await state.store.clear_namespace()
        print(f"Removed {removed} cached entries")
        return 0

    factories = {
        "products": state.products,
        "weekly-pdfs": state.weekly_pdfs,
        "images": state.product_images,
    }
    controller = factories[args.kind]()
    await controller.refresh(force=True)
    if controller.state is ResourceState.ERROR:
        print(f"Refresh failed: {controller.error}", file=sys.stderr)
        return 1
    print(f"{args.kind}: {len(controller.data)} items")
    if controller.error:
        print(f"Warning: {controller.error}", file=sys.stderr)
    return 0


async def _main(argv: Sequence[str] | None, settings: Settings | None) -> int:
    args = _build_parser().parse_args(argv)
    settings = settings or Settings()
    async with open_app(settings, setup_logging=True) as state:
        return await _run(args, state)


def main(argv: Sequence[str] | None = None, settings: Settings | None = None) -> int:
    try:
        return asyncio.run(_main(argv, settings))
    except CatalogError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
