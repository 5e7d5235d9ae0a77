"""Conversion of recorded ticks into activity intervals."""

from typing import Dict, Iterable, List, Optional

from .models import Interval, IntervalReport, TickRow


class IntervalCollector:
    """
    Converts an ordered sequence of tick times into intervals.

    Ticks no more than `max_gap` seconds apart belong to the same interval.
    Every emitted interval is clipped to [lower, upper], and intervals that are
    empty after clipping are dropped.
    """

    def __init__(self, lower: int, upper: int, max_gap: int, label: str = ""):
        self.lower = lower
        self.upper = upper
        self.max_gap = max_gap
        self.label = label
        self._start: Optional[int] = None
        self._end: Optional[int] = None
        self._intervals: List[Interval] = []

    def add(self, t: int) -> bool:
        """
        Add a tick at unix time `t`.

        Returns:
            False once the interval under construction starts after `upper`
            (later ticks cannot produce output), True otherwise
        """
        if self._start is not None and self._start > self.upper:
            return False
        if self._end is not None and t - self._end <= self.max_gap:
            self._end = t
            return True
        self._emit()
        self._start, self._end = t, t
        return True

    def finish(self) -> List[Interval]:
        """Close the last interval and return everything collected."""
        self._emit()
        self._start = self._end = None
        return self._intervals

    def _emit(self) -> None:
        if self._start is None:
            return
        start = max(self.lower, self._start)
        end = min(self.upper, self._end)
        if end > start:
            self._intervals.append(Interval(start=start, end=end, label=self.label))


def collect_intervals(
    ticks: Iterable[TickRow],
    lower: int,
    upper: int,
    max_gap: int,
    now: int,
) -> IntervalReport:
    """
    Build the union timeline and the per-label timelines for `ticks`.

    When the label changes between consecutive ticks, the new label's interval
    starts at the previous tick, so that labeled intervals touch instead of
    leaving a hole the size of the switch. If the last tick is recent enough to
    still be part of an interval at `now`, the last interval is extended to
    `now` and the extension is reported as `end_gap`.

    Args:
        ticks: Ticks sorted by time
        lower: Start of the query window
        upper: End of the query window
        max_gap: Maximum seconds between ticks of one interval
        now: Current unix time
    """
    union = IntervalCollector(lower, upper, max_gap)
    collectors: Dict[str, IntervalCollector] = {}
    prev_label: Optional[str] = None
    prev_time: Optional[int] = None

    for tick in ticks:
        collector = collectors.get(tick.label)
        if collector is None:
            collector = collectors[tick.label] = IntervalCollector(
                lower, upper, max_gap, label=tick.label
            )
        if tick.label != prev_label:
            if prev_time is not None:
                collector.add(prev_time)
            prev_label = tick.label
        collector.add(tick.time)
        union.add(tick.time)
        prev_time = tick.time

    end_gap = 0
    if prev_time is not None and 0 <= now - prev_time < max_gap:
        collectors[prev_label].add(now)
        union.add(now)
        end_gap = now - prev_time

    by_label = {}
    for label, collector in collectors.items():
        intervals = collector.finish()
        if intervals:
            by_label[label] = intervals

    return IntervalReport(intervals=union.finish(), end_gap=end_gap, by_label=by_label)
