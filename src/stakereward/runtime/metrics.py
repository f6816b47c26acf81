# src/stakereward/runtime/metrics.py
from __future__ import annotations

"""Claim metrics.

In-process counters fed by the claim callers once a claim is committed (or
has definitively failed), exposed as Prometheus text at /v1/metrics.
Noop reasons and failure codes are broken out as labelled series.
"""

import os
import threading
import time
from typing import Any, Dict

Json = Dict[str, Any]

_TOTALS = (
    "claims_total",
    "claims_paid_total",
    "claims_noop_total",
    "claims_failed_total",
    "rewards_paid_total",
    "seconds_credited_total",
    "supply_clamped_total",
    "balance_clamped_total",
)

_lock = threading.Lock()
_totals: Dict[str, int] = dict.fromkeys(_TOTALS, 0)
_noop_reasons: Dict[str, int] = {}
_failure_codes: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)


def metrics_enabled() -> bool:
    v = (os.environ.get("STAKEREWARD_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def record_claim_paid(amount: int, seconds: int, *, supply_clamped: bool = False, balance_clamped: bool = False) -> None:
    with _lock:
        _totals["claims_total"] += 1
        _totals["claims_paid_total"] += 1
        _totals["rewards_paid_total"] += int(amount)
        _totals["seconds_credited_total"] += int(seconds)
        if supply_clamped:
            _totals["supply_clamped_total"] += 1
        if balance_clamped:
            _totals["balance_clamped_total"] += 1


def record_claim_noop(reason: str) -> None:
    with _lock:
        _totals["claims_total"] += 1
        _totals["claims_noop_total"] += 1
        _noop_reasons[str(reason)] = _noop_reasons.get(str(reason), 0) + 1


def record_claim_failed(code: str) -> None:
    with _lock:
        _totals["claims_total"] += 1
        _totals["claims_failed_total"] += 1
        _failure_codes[str(code)] = _failure_codes.get(str(code), 0) + 1


def reset() -> None:
    with _lock:
        for k in _TOTALS:
            _totals[k] = 0
        _noop_reasons.clear()
        _failure_codes.clear()


def snapshot() -> Json:
    now_ms = int(time.time() * 1000)
    with _lock:
        return {
            "uptime_ms": now_ms - _started_ms,
            "totals": dict(_totals),
            "noop_reasons": dict(_noop_reasons),
            "failure_codes": dict(_failure_codes),
        }


def _label(v: str) -> str:
    return str(v).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_prometheus(prefix: str = "stakereward_") -> str:
    pre = str(prefix or "").strip() or "stakereward_"
    snap = snapshot()
    lines = [f"# TYPE {pre}uptime_ms gauge", f"{pre}uptime_ms {snap['uptime_ms']}"]

    for name in _TOTALS:
        lines.append(f"# TYPE {pre}{name} counter")
        lines.append(f"{pre}{name} {snap['totals'][name]}")

    if snap["noop_reasons"]:
        lines.append(f"# TYPE {pre}claims_noop_by_reason_total counter")
        for reason, n in sorted(snap["noop_reasons"].items()):
            lines.append(f'{pre}claims_noop_by_reason_total{{reason="{_label(reason)}"}} {n}')

    if snap["failure_codes"]:
        lines.append(f"# TYPE {pre}claims_failed_by_code_total counter")
        for code, n in sorted(snap["failure_codes"].items()):
            lines.append(f'{pre}claims_failed_by_code_total{{code="{_label(code)}"}} {n}')

    return "\n".join(lines) + "\n"
