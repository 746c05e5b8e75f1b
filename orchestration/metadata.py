# orchestration/metadata.py
"""Deep merge for persisted metadata and a serialized per-record writer."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

from core.errors import MetadataPersistenceError

if TYPE_CHECKING:  # pragma: no cover - for type hints only
    from agents.protocols import MetadataStore

logger = structlog.get_logger(__name__)


class _Absent:
    """Marker for a key that should leave the existing value untouched."""

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return "ABSENT"


ABSENT: Any = _Absent()


def _is_document(value: Any) -> bool:
    return isinstance(value, Mapping)


def _merge_into(target: dict[str, Any], update: Mapping[str, Any]) -> None:
    for key, value in update.items():
        if value is ABSENT:
            continue
        current = target.get(key)
        if _is_document(value) and _is_document(current):
            merged = dict(current)
            _merge_into(merged, value)
            target[key] = merged
        elif _is_document(value):
            fresh: dict[str, Any] = {}
            _merge_into(fresh, value)
            target[key] = fresh
        else:
            # Lists and scalars replace wholesale; None is an explicit value.
            target[key] = copy.deepcopy(value)


def deep_merge(existing: Any, update: Any) -> dict[str, Any]:
    """Return ``existing`` with ``update`` merged in. Neither input is mutated.

    Nested mappings merge key by key. Lists are replaced, never concatenated.
    ``None`` replaces the prior value. :data:`ABSENT` values and keys missing
    from ``update`` leave the existing value alone.
    """
    if _is_document(existing):
        base = copy.deepcopy(dict(existing))
    else:
        if existing is not None:
            logger.warning(
                "Existing metadata is not a document; treating as empty.",
                existing_type=type(existing).__name__,
            )
        base = {}
    if not _is_document(update):
        logger.error(
            "Metadata update is not a document; skipping merge.",
            update_type=type(update).__name__,
        )
        return base
    _merge_into(base, update)
    return base


class MetadataWriter:
    """Owns one content record's metadata document.

    Updates are merged locally and the whole document is upserted through the
    store. Writes for the record never overlap.
    """

    def __init__(
        self,
        store: MetadataStore,
        content_id: str,
        *,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.content_id = content_id
        self.timeout = timeout
        self._document: dict[str, Any] = {}
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def document(self) -> dict[str, Any]:
        return copy.deepcopy(self._document)

    async def initialize(self, initial: Mapping[str, Any]) -> dict[str, Any]:
        """Create the record, merging over anything already stored.

        Raises:
            MetadataPersistenceError: The initial record could not be written.
        """
        async with self._lock:
            try:
                existing = await self._call(self.store.load(self.content_id))
            except Exception as exc:
                logger.warning(
                    "Could not load existing metadata; starting fresh.",
                    content_id=self.content_id,
                    error=str(exc),
                )
                existing = None
            document = deep_merge(existing, initial)
            try:
                await self._call(
                    self.store.upsert(self.content_id, copy.deepcopy(document))
                )
            except Exception as exc:
                raise MetadataPersistenceError(
                    f"Failed to create metadata record '{self.content_id}': {exc}",
                    stage="metadata",
                    details={"content_id": self.content_id},
                ) from exc
            self._document = document
            self._initialized = True
            return copy.deepcopy(document)

    async def update(self, update: Mapping[str, Any]) -> dict[str, Any]:
        """Merge ``update`` and persist the whole document.

        The local document keeps the merged state even when the write fails,
        so a later successful write carries every update.

        Raises:
            MetadataPersistenceError: The store rejected the write.
        """
        async with self._lock:
            document = deep_merge(self._document, update)
            self._document = document
            try:
                await self._call(
                    self.store.upsert(self.content_id, copy.deepcopy(document))
                )
            except Exception as exc:
                raise MetadataPersistenceError(
                    f"Failed to update metadata record '{self.content_id}': {exc}",
                    stage="metadata",
                    details={"content_id": self.content_id},
                ) from exc
            return copy.deepcopy(document)

    async def _call(self, awaitable: Any) -> Any:
        if self.timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.timeout)
