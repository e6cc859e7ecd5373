"""
Run-scoped natural-key -> surrogate-id caches.

One `RegistryCache` lives for exactly one run. It is preloaded from the store
at start, updated in memory as rows are created, and thrown away at the end.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from alphasync.common.errors import DuplicateKeyError

logger = logging.getLogger(__name__)

AUTHOR = "author"
SOURCE = "source"
TOPIC = "topic"
SYMBOL = "symbol"

KINDS: tuple[str, ...] = (AUTHOR, SOURCE, TOPIC, SYMBOL)


class RegistrySource(Protocol):
    def load_registry(self, kind: str) -> dict[str, int]: ...


class RegistryCache:
    def __init__(self) -> None:
        self._maps: dict[str, dict[str, Any]] = {k: {} for k in KINDS}

    def _map(self, kind: str) -> dict[str, Any]:
        try:
            return self._maps[kind]
        except KeyError:
            raise ValueError(f"unknown registry kind: {kind!r}") from None

    def get_or_create(self, kind: str, key: str, create_fn: Callable[[], Any]) -> Any:
        """
        Return the id for (kind, key), calling `create_fn` only on the first miss.

        A `DuplicateKeyError` carrying the existing id resolves to that id. Any
        other error from `create_fn` propagates and nothing is cached, so a
        later call for the same key may try again.
        """
        m = self._map(kind)
        if key in m:
            return m[key]
        try:
            new_id = create_fn()
        except DuplicateKeyError as e:
            if e.existing_id is None:
                raise
            new_id = e.existing_id
        m[key] = new_id
        return new_id

    def mark_seen_or_skip(self, symbol: str) -> bool:
        """False when `symbol` was already registered this run; otherwise record it."""
        m = self._map(SYMBOL)
        if symbol in m:
            return False
        m[symbol] = None
        return True

    def lookup(self, kind: str, key: str) -> Optional[Any]:
        return self._map(kind).get(key)

    def register(self, kind: str, key: str, id_: Any) -> None:
        self._map(kind)[key] = id_

    def preload(self, kind: str, mapping: Mapping[str, Any]) -> None:
        self._map(kind).update(mapping)

    def load_from(self, store: RegistrySource, kinds: Iterable[str] = KINDS) -> None:
        for kind in kinds:
            self._map(kind)
            rows = store.load_registry(kind)
            self.preload(kind, rows)
            logger.debug("registry.preloaded", extra={"kind": kind, "count": len(rows)})

    def size(self, kind: str) -> int:
        return len(self._map(kind))
