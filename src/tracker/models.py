"""Data models for the tracker package."""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class WatchRow:
    """
    A desired watch, as persisted in the store.

    Attributes:
        dir: Absolute path of the watched directory (primary key)
        label: Label recorded with every tick produced by this watch
        last_write: Unix time of the most recent write observed under dir
    """
    dir: str
    label: str
    last_write: int = 0


@dataclass(frozen=True)
class TickRow:
    """
    A single recorded instant of activity.

    Attributes:
        time: Unix time of the tick (primary key)
        label: The activity the tick belongs to
    """
    time: int
    label: str


@dataclass(frozen=True)
class Interval:
    """
    A period of continuous activity, clipped to the query window.

    Attributes:
        start: Unix time the interval starts
        end: Unix time the interval ends (always greater than start)
        label: The activity, or "" for the union of all activities
    """
    start: int
    end: int
    label: str = ""

    @property
    def duration(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"start": self.start, "end": self.end, "label": self.label}

    @classmethod
    def from_dict(cls, data: dict) -> "Interval":
        """Create from dictionary."""
        return cls(
            start=int(data["start"]),
            end=int(data["end"]),
            label=data.get("label", ""),
        )


@dataclass(frozen=True)
class WatchInfo:
    """A live watch as reported to API callers."""
    dir: str
    label: str
    last_write: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"dir": self.dir, "label": self.label, "last_write": self.last_write}

    @classmethod
    def from_dict(cls, data: dict) -> "WatchInfo":
        """Create from dictionary."""
        return cls(
            dir=data["dir"],
            label=data.get("label", ""),
            last_write=int(data.get("last_write", 0)),
        )


@dataclass
class IntervalReport:
    """
    Result of an interval query.

    Attributes:
        intervals: Union timeline (every tick, regardless of label)
        end_gap: Seconds the last interval was speculatively extended to reach
            "now" (0 if it was not extended)
        by_label: Intervals for each label seen in the query window
    """
    intervals: List[Interval] = field(default_factory=list)
    end_gap: int = 0
    by_label: Dict[str, List[Interval]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "intervals": [i.to_dict() for i in self.intervals],
            "end_gap": self.end_gap,
            "by_label": {
                label: [i.to_dict() for i in intervals]
                for label, intervals in self.by_label.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IntervalReport":
        """Create from dictionary."""
        return cls(
            intervals=[Interval.from_dict(i) for i in data.get("intervals", [])],
            end_gap=int(data.get("end_gap", 0)),
            by_label={
                label: [Interval.from_dict(i) for i in intervals]
                for label, intervals in data.get("by_label", {}).items()
            },
        )
