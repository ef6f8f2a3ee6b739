"""
Registry Core for qcap-registry.

Holds capability records keyed by id in an in-memory table guarded by a
single lock. Records carry their own TTL; a record is live while
``now - last_renewed_at < ttl`` and is never returned once it has expired,
whether or not a sweep has reclaimed it yet.

Design Principles:
- Explicit instances: the API layer receives a registry at startup
- Copies out: callers never hold references into the table
- Bounded critical sections: O(1) per operation, O(n) for list and sweep
"""

import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import InvalidArgumentError, NotFoundError

logger = logging.getLogger("qcap_registry.registry")

Clock = Callable[[], datetime]

MIN_SWEEP_INTERVAL = 1.0

# Keeps last_renewed_at + ttl representable as a datetime
MAX_TTL = 100 * 365 * 24 * 3600.0


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class CapabilityRecord:
    """
    A registered capability.

    Instances are immutable; renewal produces a new record. The registry
    hands out copies with their own metadata dict, so mutating a returned
    record's metadata never touches stored state.
    """

    id: str
    metadata: Dict[str, str]
    registered_at: datetime
    last_renewed_at: datetime
    ttl: float

    @property
    def expires_at(self) -> datetime:
        return self.last_renewed_at + timedelta(seconds=self.ttl)

    def is_live(self, now: datetime) -> bool:
        return now - self.last_renewed_at < timedelta(seconds=self.ttl)

    def copy(self) -> "CapabilityRecord":
        return replace(self, metadata=dict(self.metadata))

    def matches(self, metadata_filter: Mapping[str, str]) -> bool:
        """True if every filter pair is present with an equal value."""
        return all(self.metadata.get(k) == v for k, v in metadata_filter.items())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON field layout used by the HTTP adapter."""
        return {
            "id": self.id,
            "metadata": dict(self.metadata),
            "registeredAt": self.registered_at.isoformat(),
            "lastRenewedAt": self.last_renewed_at.isoformat(),
            "ttl": self.ttl,
            "expiresAt": self.expires_at.isoformat(),
        }


class RecordSnapshot:
    """
    Live records captured at ``list()`` time.

    Iteration is lazy (filtering and copying happen per item) and
    restartable: every ``iter()`` walks the same captured records.
    """

    def __init__(self, records: List[CapabilityRecord], metadata_filter: Optional[Mapping[str, str]] = None):
        self._records = tuple(records)
        self._filter = dict(metadata_filter or {})

    def __iter__(self) -> Iterator[CapabilityRecord]:
        return (record.copy() for record in self._records if record.matches(self._filter))

    def __repr__(self) -> str:
        return f"RecordSnapshot(records={len(self._records)}, filter={self._filter!r})"


def _validate_id(capability_id: Any) -> str:
    if not isinstance(capability_id, str) or not capability_id.strip():
        raise InvalidArgumentError("Capability id must be a non-empty string")
    return capability_id


def _validate_ttl(ttl: Any) -> float:
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise InvalidArgumentError(f"TTL must be a number, got {type(ttl).__name__}")
    if not math.isfinite(ttl) or ttl <= 0:
        raise InvalidArgumentError(f"TTL must be a positive number of seconds, got {ttl}")
    if ttl > MAX_TTL:
        raise InvalidArgumentError(f"TTL must not exceed {MAX_TTL:g} seconds, got {ttl:g}")
    return float(ttl)


def _validate_metadata(metadata: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if metadata is None:
        return {}
    if not isinstance(metadata, Mapping):
        raise InvalidArgumentError("Metadata must be a mapping of strings to strings")
    for key, value in metadata.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise InvalidArgumentError(
                f"Metadata must map strings to strings, got {key!r}: {value!r}"
            )
    return dict(metadata)


class CapabilityRegistry:
    """
    In-memory capability registry with TTL expiry.

    Re-registering a live id renews it and keeps ``registered_at``.
    Re-registering an expired id (swept or not) starts a fresh record.
    """

    def __init__(self, clock: Clock = utc_now):
        """
        Initialize registry.

        Args:
            clock: Returns the current time as an aware UTC datetime.
                Tests inject a controllable clock.
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, CapabilityRecord] = {}
        self._counters = {
            "registrations": 0,
            "renewals": 0,
            "deregistrations": 0,
            "expirations": 0,
        }

    def _pop_if_expired(self, capability_id: str, now: datetime) -> Optional[CapabilityRecord]:
        """Return the live record for id, reclaiming it if it has expired. Caller holds the lock."""
        record = self._records.get(capability_id)
        if record is None:
            return None
        if record.is_live(now):
            return record
        del self._records[capability_id]
        self._counters["expirations"] += 1
        logger.debug(f"Reclaimed expired capability {capability_id}")
        return None

    def register(
        self,
        capability_id: str,
        metadata: Optional[Mapping[str, str]] = None,
        ttl: float = 60,
    ) -> CapabilityRecord:
        """
        Insert a new record or renew an existing live one.

        Args:
            capability_id: Unique record key
            metadata: String-to-string attributes; replaces any previous metadata
            ttl: Seconds the record stays live without renewal

        Returns:
            Copy of the stored record

        Raises:
            InvalidArgumentError: Empty id, non-positive ttl or bad metadata
        """
        record, _ = self.upsert(capability_id, metadata, ttl)
        return record

    def upsert(
        self,
        capability_id: str,
        metadata: Optional[Mapping[str, str]] = None,
        ttl: float = 60,
    ) -> Tuple[CapabilityRecord, bool]:
        """Same as register(), also reporting whether a new record was created."""
        capability_id = _validate_id(capability_id)
        ttl = _validate_ttl(ttl)
        metadata = _validate_metadata(metadata)

        with self._lock:
            now = self._clock()
            existing = self._pop_if_expired(capability_id, now)
            if existing is not None:
                record = replace(existing, metadata=metadata, last_renewed_at=now, ttl=ttl)
                self._counters["renewals"] += 1
                created = False
            else:
                record = CapabilityRecord(
                    id=capability_id,
                    metadata=metadata,
                    registered_at=now,
                    last_renewed_at=now,
                    ttl=ttl,
                )
                self._counters["registrations"] += 1
                created = True
            self._records[capability_id] = record

        if created:
            logger.info(f"Registered capability {capability_id} (TTL: {ttl}s)")
        else:
            logger.debug(f"Re-registered capability {capability_id} (TTL: {ttl}s)")
        return record.copy(), created

    def renew(self, capability_id: str) -> CapabilityRecord:
        """
        Reset the expiry clock of a live record.

        Raises:
            NotFoundError: If id is absent or expired
        """
        with self._lock:
            now = self._clock()
            existing = self._pop_if_expired(capability_id, now)
            if existing is None:
                raise NotFoundError(capability_id)
            record = replace(existing, last_renewed_at=now)
            self._records[capability_id] = record
            self._counters["renewals"] += 1

        logger.debug(f"Renewed capability {capability_id}")
        return record.copy()

    def deregister(self, capability_id: str) -> CapabilityRecord:
        """
        Remove a record.

        Returns:
            Copy of the removed record

        Raises:
            NotFoundError: If id is absent or already expired
        """
        with self._lock:
            existing = self._pop_if_expired(capability_id, self._clock())
            if existing is None:
                raise NotFoundError(capability_id)
            del self._records[capability_id]
            self._counters["deregistrations"] += 1

        logger.info(f"Deregistered capability {capability_id}")
        return existing.copy()

    def lookup(self, capability_id: str) -> CapabilityRecord:
        """
        Return a live record.

        Raises:
            NotFoundError: If id is absent or expired
        """
        with self._lock:
            record = self._pop_if_expired(capability_id, self._clock())
        if record is None:
            logger.debug(f"Lookup miss for capability {capability_id}")
            raise NotFoundError(capability_id)
        return record.copy()

    def list(self, metadata_filter: Optional[Mapping[str, str]] = None) -> RecordSnapshot:
        """
        Snapshot all live records, optionally filtered by metadata equality.

        The lock is held only to capture references; iteration of the
        returned snapshot never blocks writers.
        """
        metadata_filter = _validate_metadata(metadata_filter)
        with self._lock:
            now = self._clock()
            live = [r for r in self._records.values() if r.is_live(now)]
        live.sort(key=lambda r: r.id)
        return RecordSnapshot(live, metadata_filter)

    def sweep(self) -> List[CapabilityRecord]:
        """
        Remove every expired record.

        Returns:
            Copies of the reclaimed records
        """
        with self._lock:
            now = self._clock()
            expired = [r for r in self._records.values() if not r.is_live(now)]
            for record in expired:
                del self._records[record.id]
            self._counters["expirations"] += len(expired)

        if expired:
            logger.info(f"Sweep reclaimed {len(expired)} expired capabilities")
        return [r.copy() for r in expired]

    def health_check(self, timeout: float = 1.0) -> bool:
        """True if the table can be serviced, i.e. the lock is acquirable within timeout."""
        acquired = self._lock.acquire(timeout=timeout)
        if acquired:
            self._lock.release()
        return acquired

    def suggested_sweep_interval(self, default: float) -> float:
        """Half the shortest live TTL, capped by default and floored at one second."""
        with self._lock:
            now = self._clock()
            ttls = [r.ttl for r in self._records.values() if r.is_live(now)]
        interval = min([default] + [t / 2 for t in ttls])
        return max(MIN_SWEEP_INTERVAL, interval)

    def stats(self) -> Dict[str, int]:
        """Live and stored record counts plus cumulative operation counters."""
        with self._lock:
            now = self._clock()
            live = sum(1 for r in self._records.values() if r.is_live(now))
            stats = {"live": live, "stored": len(self._records)}
            stats.update(self._counters)
        return stats

    def __len__(self) -> int:
        return self.stats()["live"]

    def __contains__(self, capability_id: object) -> bool:
        if not isinstance(capability_id, str):
            return False
        with self._lock:
            record = self._records.get(capability_id)
            return record is not None and record.is_live(self._clock())
