"""Phase names, phase statistics and the per-request completion record."""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple


class Phase(str, Enum):
    """Well-known phase names.

    The set is open: any string is a valid phase name. Members are stored
    under their plain string value.
    """

    DATABASE = "database"
    CACHE = "cache"
    VIEW = "view"
    EXTERNAL = "external"
    SERIALIZATION = "serialization"


def phase_name(phase: "Phase | str") -> str:
    """Normalise a phase to the plain string used as ledger key."""
    if isinstance(phase, Phase):
        return phase.value
    return str(phase)


class PhaseStats(NamedTuple):
    """Cumulative time and call count for one phase."""

    duration_ms: float
    calls: int


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class CompletionRecord:
    """Immutable summary of one request's outcome and timing breakdown.

    Mappings passed in are copied, so later changes to the source accumulator
    or annotation dicts never reach an emitted record.

    Attributes:
        request_id: Trace identifier of the request.
        label: Human label built from configured request fields.
        status: Final status; the synthetic failure status when the handler raised.
        total_ms: Wall-clock duration of the request in milliseconds.
        phases: Phase name -> PhaseStats snapshot.
        counters: Counter name -> count snapshot.
        annotations: Request fields and custom annotations.
        error_type: Qualified class name of the handler error, if any.
        started_at: UTC wall-clock start time, for indexing only.
    """

    request_id: str
    label: str
    status: int
    total_ms: float
    phases: Mapping[str, PhaseStats] = field(default_factory=dict)
    counters: Mapping[str, int] = field(default_factory=dict)
    annotations: Mapping[str, Any] = field(default_factory=dict)
    error_type: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:  # noqa: D105
        if self.total_ms < 0 or math.isnan(self.total_ms):
            raise ValueError(f"total_ms must be non-negative, got {self.total_ms}")
        object.__setattr__(
            self,
            "phases",
            MappingProxyType({name: PhaseStats(*stats) for name, stats in self.phases.items()}),
        )
        object.__setattr__(self, "counters", _frozen(self.counters))
        object.__setattr__(self, "annotations", _frozen(self.annotations))

    @property
    def failed(self) -> bool:
        """True when the handler raised."""
        return self.error_type is not None

    @property
    def phase_total_ms(self) -> float:
        """Sum of phase durations; may differ from total_ms."""
        return sum(stats.duration_ms for stats in self.phases.values())

    def to_log_fields(self) -> dict[str, Any]:
        """Flatten the record into structlog keyword arguments."""
        fields: dict[str, Any] = {
            "request_id": self.request_id,
            "label": self.label,
            "status": self.status,
            "total_ms": round(self.total_ms, 2),
            "phases": {
                name: {"duration_ms": round(stats.duration_ms, 2), "calls": stats.calls}
                for name, stats in self.phases.items()
            },
        }
        if self.counters:
            fields["counters"] = dict(self.counters)
        if self.annotations:
            fields["annotations"] = dict(self.annotations)
        if self.error_type:
            fields["error_type"] = self.error_type
        return fields

    def to_document(self) -> dict[str, Any]:
        """Export the record as a JSON-ready dict for Elasticsearch indexing."""
        doc = self.to_log_fields()
        doc["@timestamp"] = self.started_at.isoformat()
        doc["phase_total_ms"] = round(self.phase_total_ms, 2)
        doc["failed"] = self.failed
        doc["phases"] = [
            {"phase": name, **values} for name, values in sorted(doc["phases"].items())
        ]
        return doc
