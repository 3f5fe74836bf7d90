"""
Prometheus metrics for LockMint

Every series the scanner exports is declared in MetricNames.REGISTRY with
its type, help text and, for the rejections counter, its label.  The
collector only accepts declared names, and the exposition walks the
registry so a scrape always lists the same families in the same order.
"""

import time
from collections import defaultdict, deque
from typing import Deque, Dict, NamedTuple, Optional, Tuple

from lockmint.lib import util

LabelSet = Tuple[Tuple[str, str], ...]

# Latency observations kept for the quantile estimates
SUMMARY_WINDOW = 1000
QUANTILES = ('0.5', '0.9', '0.99')


class Metric(NamedTuple):
    name: str
    kind: str                   # counter, gauge or summary
    help: str
    label: Optional[str] = None


class MetricNames:
    """Metric names for LockMint, with their exposition metadata."""

    # Candidate validation
    CANDIDATES_TOTAL = 'lockmint_candidates_total'
    RESOLUTION_FAILURES = 'lockmint_resolution_failures_total'
    REJECTIONS = 'lockmint_rejections_total'
    MINTS_FOUND = 'lockmint_mints_found_total'
    VALIDATION_TIME = 'lockmint_validation_seconds'

    # Persistence
    MINTS_SAVED = 'lockmint_mints_saved_total'
    MINTS_DUPLICATE = 'lockmint_mints_duplicate_total'
    MINTS_SAVE_ERRORS = 'lockmint_mints_save_errors_total'
    MINTS_UNMINED = 'lockmint_mints_unmined_total'

    # Stream
    BLOCKS_PROCESSED = 'lockmint_blocks_processed_total'
    BLOCK_HEIGHT = 'lockmint_block_height'
    REORGS = 'lockmint_reorgs_total'
    STREAM_ERRORS = 'lockmint_stream_errors_total'

    REGISTRY = (
        Metric(CANDIDATES_TOTAL, 'counter',
               'Transactions checked as lock-like-mint candidates'),
        Metric(RESOLUTION_FAILURES, 'counter',
               'Candidates dropped because an output lookup failed'),
        Metric(REJECTIONS, 'counter',
               'Candidates rejected, by validation stage', label='stage'),
        Metric(MINTS_FOUND, 'counter',
               'Candidates that passed the lock, like and mint checks'),
        Metric(VALIDATION_TIME, 'summary',
               'Seconds spent resolving and validating one candidate'),
        Metric(MINTS_SAVED, 'counter',
               'Mint records inserted into the mints table'),
        Metric(MINTS_DUPLICATE, 'counter',
               'Mint records already present in the mints table'),
        Metric(MINTS_SAVE_ERRORS, 'counter',
               'Mint records the store failed to insert'),
        Metric(MINTS_UNMINED, 'counter',
               'Valid mints skipped because the transaction is not mined'),
        Metric(BLOCKS_PROCESSED, 'counter',
               'Block-done control messages received from the stream'),
        Metric(BLOCK_HEIGHT, 'gauge',
               'Height of the last block the stream finished'),
        Metric(REORGS, 'counter',
               'Reorg control messages received from the stream'),
        Metric(STREAM_ERRORS, 'counter',
               'Stream errors and error control messages'),
    )


def _label_set(labels: Optional[Dict[str, str]]) -> LabelSet:
    return tuple(sorted(labels.items())) if labels else ()


def _render_labels(labels: LabelSet, extra: str = '') -> str:
    parts = [f'{key}="{value}"' for key, value in labels]
    if extra:
        parts.insert(0, extra)
    return '{' + ','.join(parts) + '}' if parts else ''


def _render_value(value) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f'{value:.6f}'
    return str(int(value))


class MetricsCollector:
    """In-process store for the scanner's counters, gauge and latency summary."""

    def __init__(self):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.start_time = time.time()
        self.metrics: Dict[str, Metric] = {m.name: m for m in MetricNames.REGISTRY}
        self.series: Dict[str, Dict[LabelSet, float]] = defaultdict(dict)
        self.observations: Dict[str, Deque[float]] = {}

    def _lookup(self, name: str, kind: str, labels: Optional[Dict[str, str]]) -> Metric:
        metric = self.metrics.get(name)
        if metric is None or metric.kind != kind:
            raise ValueError(f'{name} is not a registered {kind}')
        expected = {metric.label} if metric.label else set()
        if set(labels or ()) != expected:
            raise ValueError(f'{name} takes labels {sorted(expected)}, '
                             f'got {sorted(labels or ())}')
        return metric

    def inc_counter(self, name: str, value: int = 1, labels: Dict[str, str] = None):
        self._lookup(name, 'counter', labels)
        series = self.series[name]
        key = _label_set(labels)
        series[key] = series.get(key, 0) + value

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        return self.series.get(name, {}).get(_label_set(labels), 0)

    def set_gauge(self, name: str, value: float):
        self._lookup(name, 'gauge', None)
        self.series[name][()] = value

    def get_gauge(self, name: str) -> Optional[float]:
        return self.series.get(name, {}).get(())

    def observe(self, name: str, value: float):
        """Record one latency sample; only the last SUMMARY_WINDOW are kept."""
        self._lookup(name, 'summary', None)
        window = self.observations.get(name)
        if window is None:
            window = self.observations[name] = deque(maxlen=SUMMARY_WINDOW)
        window.append(value)

    # ========================================================================
    # Exposition
    # ========================================================================

    def generate_metrics(self) -> str:
        """Prometheus text exposition of every registered metric."""
        lines = [
            '# HELP lockmint_uptime_seconds Seconds since the scanner started',
            '# TYPE lockmint_uptime_seconds gauge',
            f'lockmint_uptime_seconds {time.time() - self.start_time:.2f}',
        ]
        for metric in MetricNames.REGISTRY:
            lines.append(f'# HELP {metric.name} {metric.help}')
            lines.append(f'# TYPE {metric.name} {metric.kind}')
            if metric.kind == 'summary':
                lines.extend(self._summary_lines(metric.name))
                continue
            series = self.series.get(metric.name, {})
            # Unlabelled counters are exported as 0 before their first event
            if not series and metric.kind == 'counter' and not metric.label:
                series = {(): 0}
            for labels, value in sorted(series.items()):
                lines.append(f'{metric.name}{_render_labels(labels)} {_render_value(value)}')
        return '\n'.join(lines) + '\n'

    def _summary_lines(self, name: str):
        values = sorted(self.observations.get(name, ()))
        count = len(values)
        if values:
            for quantile in QUANTILES:
                value = values[min(int(count * float(quantile)), count - 1)]
                yield f'{name}{{quantile="{quantile}"}} {value:.6f}'
        yield f'{name}_sum {sum(values):.6f}'
        yield f'{name}_count {count}'
