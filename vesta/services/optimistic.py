"""
Optimistic apply helper.

Three phases for list mutations whose outcome is only known per item:

    1. snapshot  remember each item's position in the visible list
    2. apply     drop the targeted items from the visible list at once
    3. reconcile run the real operation per item; failures are put back
                 at their previous position, successes stay applied

Usage:
    result = optimistic_apply(reports, ids, delete_one, key=lambda r: r["id"])
    result.visible   # list after reconcile
    result.failed    # {id: error message}
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class OptimisticResult(Generic[T]):
    visible: list[T]
    succeeded: list[Hashable] = field(default_factory=list)
    failed: dict[Hashable, str] = field(default_factory=dict)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


def snapshot(items: list[T]) -> list[T]:
    return list(items)


def apply(items: list[T], ids: set, key: Callable[[T], Hashable]) -> list[T]:
    return [item for item in items if key(item) not in ids]


def restore(original: list[T], visible: list[T], failed_ids, key: Callable[[T], Hashable]) -> list[T]:
    """Put failed items back where they were relative to the surviving items."""
    keep = {key(item) for item in visible} | set(failed_ids)
    restored = [item for item in original if key(item) in keep]
    known = {key(item) for item in original}
    restored.extend(item for item in visible if key(item) not in known)
    return restored


def optimistic_apply(
    items: list[T],
    ids,
    operation: Callable[[Hashable], Any],
    *,
    key: Callable[[T], Hashable],
    max_workers: int = 8,
    run: Callable[[Callable[[], Any]], Any] | None = None,
) -> OptimisticResult[T]:
    """
    Remove ``ids`` from ``items`` speculatively, then confirm each with ``operation``.

    Operations run on a bounded thread pool; one failing item never
    aborts its siblings.

    Args:
        items: Currently visible list.
        ids: Identifiers to remove.
        operation: Called once per id; raising marks that id failed.
        key: Extracts an item's identifier.
        max_workers: Fan-out limit; 1 runs every operation in the calling
                     thread, in order.
        run: Optional wrapper each worker call goes through (e.g. to push
             an application context in the worker thread).

    Returns:
        OptimisticResult with the reconciled visible list.
    """
    id_set = set(ids)
    snap = snapshot(items)
    visible = apply(items, id_set, key)

    def _one(item_id):
        call = (lambda: operation(item_id))
        return run(call) if run else call()

    result: OptimisticResult[T] = OptimisticResult(visible=visible)
    ordered_ids = list(dict.fromkeys(ids))
    if not ordered_ids:
        return result

    def _settle(item_id, outcome: Callable[[], Any]):
        try:
            outcome()
            result.succeeded.append(item_id)
        except Exception as exc:
            logger.warning("Optimistic operation failed for %s: %s", item_id, exc)
            result.failed[item_id] = str(exc)

    workers = max(1, min(max_workers, len(ordered_ids)))
    if workers == 1:
        for item_id in ordered_ids:
            _settle(item_id, lambda: _one(item_id))
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {item_id: pool.submit(_one, item_id) for item_id in ordered_ids}
            for item_id, future in futures.items():
                _settle(item_id, future.result)

    result.visible = restore(snap, visible, result.failed, key)
    return result
