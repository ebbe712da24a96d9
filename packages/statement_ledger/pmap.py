"""Order-preserving parallel map over a bounded thread pool.

Statement text extraction is I/O and C-extension heavy, so files are read
concurrently while results keep the caller's input order. The first mapper
error propagates and any work that has not started yet is cancelled.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` workers."""

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    items = list(iterable)
    if not items:
        return []

    with ThreadPoolExecutor(
        max_workers=min(concurrency, len(items)), thread_name_prefix="statement-ledger"
    ) as pool:
        futures: list[Future[OutT]] = [pool.submit(mapper, item) for item in items]
        try:
            return [fut.result() for fut in futures]
        except Exception:
            for fut in futures:
                fut.cancel()
            raise


__all__ = ["p_map"]
