"""Two-phase optimistic update.

Phase one applies the change to local state and returns whatever is needed
to undo it. Phase two awaits the remote write. If the write fails the
rollback runs (controllers discard local state and reload from the origin)
and the original ``CatalogError`` is re-raised.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from catalogcache.errors import CatalogError

log = structlog.get_logger()

S = TypeVar("S")
R = TypeVar("R")


async def apply_optimistically(
    *,
    apply: Callable[[], S],
    commit: Callable[[], Awaitable[R]],
    rollback: Callable[[S, CatalogError], Awaitable[None]],
    label: str = "mutation",
) -> R:
    snapshot = apply()
    try:
        result = await commit()
    except CatalogError as exc:
        log.warning("optimistic_commit_failed", label=label, code=exc.code, error=exc.message)
        await rollback(snapshot, exc)
        raise
    log.debug("optimistic_commit_ok", label=label)
    return result
