"""Chunked, keyset-paged iteration with explicit stage hooks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterator, TypeVar

T = TypeVar("T")
K = TypeVar("K")


@dataclass
class StageCounters:
    """Mutable per-stage counters accumulated while a stage runs."""

    read: int = 0
    written: int = 0
    skipped: int = 0
    failures: int = 0


class ChunkHooks(Generic[T]):
    """Observer for chunk processing; subclasses override what they need."""

    def on_item(self, item: T) -> None:
        """Called once for every item read."""

    def on_skip(self, item: T, error: Exception) -> None:
        """Called once for every item rejected and skipped."""

    def on_complete(self, counters: StageCounters) -> None:
        """Called once after the last chunk has been written."""


def iter_keyset_chunks(
    fetch_page: Callable[[K | None, int], list[T]],
    key_of: Callable[[T], K],
    chunk_size: int,
) -> Iterator[list[T]]:
    """Yield pages from ``fetch_page`` until a short page is returned.

    ``fetch_page(after_key, limit)`` must return at most ``limit`` items
    ordered by key, all strictly after ``after_key`` (or from the start when
    ``after_key`` is None).
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    after: K | None = None
    while True:
        page = fetch_page(after, chunk_size)
        if not page:
            return
        yield page
        if len(page) < chunk_size:
            return
        after = key_of(page[-1])
