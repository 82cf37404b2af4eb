"""QuarantineStore — hand-off point for files the scanner wants isolated.

The scanner only *recommends* quarantine.  When a
:class:`~uploadguard.core.pipeline.ScanPipeline` is constructed with a
:class:`QuarantineStore`, every result with ``quarantine_recommended=True`` is
passed to :meth:`QuarantineStore.store` together with the scanned bytes.
Where and how the payload is isolated (encrypted object storage, a holding
directory, a ticketing system) is the host application's concern.

Store failures never change a scan result: :meth:`QuarantineHandoff.submit`
logs :class:`QuarantineError` and any other error raised by the store and
returns ``None``.

:class:`InMemoryQuarantineStore` keeps payloads in a dict and is intended for
tests and single-process development setups.

Usage::

    from uploadguard.services.quarantine import InMemoryQuarantineStore

    store = InMemoryQuarantineStore()
    pipeline = ScanPipeline(quarantine_store=store)
    result = await pipeline.scan(data, "invoice.pdf.exe", "application/pdf")
    if result.quarantine_recommended:
        print(store.get(result.metadata.scan_id))
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from prometheus_client import Counter

from uploadguard.schemas.scan_result import ScanResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------

_QUARANTINE_OPS = Counter(
    "uploadguard_quarantine_operations_total",
    "Total quarantine hand-offs by outcome",
    ["outcome"],  # stored | failed
)


class QuarantineError(Exception):
    """Raised by a :class:`QuarantineStore` that could not isolate a payload."""


class QuarantineStore(ABC):
    """Abstract destination for quarantined payloads."""

    @abstractmethod
    async def store(self, result: ScanResult, data: bytes) -> str:
        """Isolate *data* and return an opaque quarantine reference.

        Raises:
            QuarantineError: If the payload could not be stored.
        """


@dataclass(frozen=True)
class QuarantinedItem:
    """A payload held by :class:`InMemoryQuarantineStore`."""

    quarantine_id: str
    result: ScanResult
    data: bytes


class InMemoryQuarantineStore(QuarantineStore):
    """Dict-backed quarantine store keyed by quarantine id."""

    def __init__(self) -> None:
        self._items: dict[str, QuarantinedItem] = {}

    async def store(self, result: ScanResult, data: bytes) -> str:
        quarantine_id = result.metadata.scan_id or str(uuid.uuid4())
        self._items[quarantine_id] = QuarantinedItem(
            quarantine_id=quarantine_id, result=result, data=data
        )
        logger.info(
            "Payload quarantined: quarantine_id=%s file_name=%s size=%d",
            quarantine_id,
            result.metadata.file_name,
            len(data),
        )
        return quarantine_id

    def get(self, quarantine_id: str) -> QuarantinedItem | None:
        return self._items.get(quarantine_id)

    def release(self, quarantine_id: str) -> QuarantinedItem:
        """Remove and return a quarantined item.

        Raises:
            QuarantineError: If *quarantine_id* is unknown.
        """
        try:
            return self._items.pop(quarantine_id)
        except KeyError:
            raise QuarantineError(
                f"Quarantined item {quarantine_id!r} not found"
            ) from None

    def __len__(self) -> int:
        return len(self._items)


class QuarantineHandoff:
    """Best-effort wrapper that submits results to a :class:`QuarantineStore`.

    Args:
        store: The destination store.
    """

    def __init__(self, store: QuarantineStore) -> None:
        self._store = store

    async def submit(self, result: ScanResult, data: bytes) -> str | None:
        """Store *data* if *result* recommends quarantine.

        Returns:
            The quarantine reference, or ``None`` when quarantine was not
            recommended or the store failed.
        """
        if not result.quarantine_recommended:
            return None
        try:
            reference = await self._store.store(result, data)
        except QuarantineError as exc:
            _QUARANTINE_OPS.labels(outcome="failed").inc()
            logger.error(
                "Quarantine store rejected payload: scan_id=%s error=%s",
                result.metadata.scan_id,
                exc,
            )
            return None
        except Exception as exc:
            _QUARANTINE_OPS.labels(outcome="failed").inc()
            logger.exception(
                "Unexpected quarantine store failure: scan_id=%s error=%r",
                result.metadata.scan_id,
                exc,
            )
            return None
        _QUARANTINE_OPS.labels(outcome="stored").inc()
        return reference
