"""Prometheus metrics for the assistant gateway.

Counters and histograms are kept in-process behind a lock and rendered in
the Prometheus text format at ``/metrics``.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field

from fastapi import APIRouter, Response

_lock = threading.Lock()

LabelKey = tuple[tuple[str, str], ...]

# Upstream calls are long-running model requests, hence the wide upper range.
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


@dataclass
class _Series:
    total: float = 0.0
    count: int = 0
    # Cumulative: bucket i counts observations <= LATENCY_BUCKETS[i].
    buckets: list[int] = field(default_factory=lambda: [0] * len(LATENCY_BUCKETS))


_counters: dict[str, dict[LabelKey, float]] = defaultdict(lambda: defaultdict(float))
_histograms: dict[str, dict[LabelKey, _Series]] = defaultdict(lambda: defaultdict(_Series))


def _label_key(labels: dict[str, str]) -> LabelKey:
    return tuple(sorted(labels.items()))


def inc_counter(name: str, labels: dict[str, str], value: float = 1.0) -> None:
    with _lock:
        _counters[name][_label_key(labels)] += value


def observe_histogram(name: str, labels: dict[str, str], value: float) -> None:
    with _lock:
        series = _histograms[name][_label_key(labels)]
        series.total += value
        series.count += 1
        for i, bound in enumerate(LATENCY_BUCKETS):
            if value <= bound:
                series.buckets[i] += 1


def counter_value(name: str, labels: dict[str, str]) -> float:
    with _lock:
        return _counters.get(name, {}).get(_label_key(labels), 0.0)


def reset_metrics() -> None:
    with _lock:
        _counters.clear()
        _histograms.clear()


def _format_labels(label_pairs: LabelKey, **extra: str) -> str:
    pairs = sorted((*label_pairs, *extra.items()))
    if not pairs:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"


def render_metrics() -> str:
    lines: list[str] = []
    with _lock:
        for name, label_map in sorted(_counters.items()):
            lines.append(f"# TYPE {name} counter")
            for label_pairs, value in sorted(label_map.items()):
                lines.append(f"{name}{_format_labels(label_pairs)} {value}")

        for name, series_map in sorted(_histograms.items()):
            lines.append(f"# TYPE {name} histogram")
            for label_pairs, series in sorted(series_map.items()):
                for bound, cumulative in zip(LATENCY_BUCKETS, series.buckets):
                    labels = _format_labels(label_pairs, le=str(bound))
                    lines.append(f"{name}_bucket{labels} {cumulative}")
                lines.append(f"{name}_bucket{_format_labels(label_pairs, le='+Inf')} {series.count}")
                lines.append(f"{name}_sum{_format_labels(label_pairs)} {series.total}")
                lines.append(f"{name}_count{_format_labels(label_pairs)} {series.count}")

    lines.append("")
    return "\n".join(lines)


def record_upstream_call(backend: str, mode: str, status_code: int, latency_s: float) -> None:
    labels = {"backend": backend, "mode": mode}
    inc_counter("aigw_upstream_requests_total", {**labels, "status": str(status_code)})
    observe_histogram("aigw_upstream_duration_seconds", labels, latency_s)


def record_token_refresh(outcome: str) -> None:
    inc_counter("aigw_token_refresh_total", {"outcome": outcome})


def record_stream_events(mode: str, outcome: str, event_count: int) -> None:
    inc_counter("aigw_streams_total", {"mode": mode, "outcome": outcome})
    if event_count > 0:
        inc_counter("aigw_stream_events_total", {"mode": mode}, float(event_count))


metrics_router = APIRouter()


@metrics_router.get("/metrics")
def prometheus_metrics() -> Response:
    return Response(
        content=render_metrics(),
        media_type="text/plain; charset=utf-8",
    )
