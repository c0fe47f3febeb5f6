"""Per-slug advisory locks for lifecycle operations."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from extensions.errors import OperationInProgressError


class SlugLocks:
    """Non-blocking per-slug locks.

    A second operation on a slug that is already held fails immediately;
    operations on different slugs never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, slug: str) -> Iterator[None]:
        """Hold the lock for ``slug`` for the duration of the block.

        Raises:
            OperationInProgressError: If the slug is already held.
        """
        with self._guard:
            if slug in self._held:
                raise OperationInProgressError(slug)
            self._held.add(slug)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(slug)

    def is_held(self, slug: str) -> bool:
        with self._guard:
            return slug in self._held
