"""
escrow.metrics — Prometheus counters & histograms for the escrow engine.

Design goals
------------
* Centralized registry: consumers call `get_registry()` and `generate_latest_text()`
  to expose metrics via HTTP from whatever service embeds the engine.
* Simple helpers: `observe_created(...)`, `observe_settlement(...)`,
  `observe_stake(...)` and `observe_revert(...)` cover the engine's paths.
* Metrics never break a call: label/observe failures are swallowed and logged.
* Each helper takes `enabled=`; the engine passes its host chain's feature flag
  so a chain built with metrics off records nothing. Without it the global
  `get_config()` decides.

Exposed metrics (names are prefixed with `escrow_`):
  - trades_created_total{asset_kind,mode}   : Counter
  - settlements_total{kind}                 : Counter
  - dispute_stakes_total{outcome}           : Counter
  - call_reverts_total{error}               : Counter
  - settlement_payout{asset_kind}           : Histogram — principal+fee moved per settlement

Labels:
  - asset_kind ∈ {native, token}
  - mode       ∈ {funded, automatic}
  - kind       ∈ {release, buyer_cancel, seller_cancel, resolve}
  - outcome    ∈ {staked, refunded, forfeited}
"""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

log = logging.getLogger(__name__)

_PREFIX = "escrow_"


def _buckets_from_env(name: str, default: Iterable[float]) -> Iterable[float]:
    raw = os.getenv(name)
    if not raw:
        return default
    out = []
    for tok in raw.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            out.append(float(tok))
        except ValueError:
            continue
    return out or default


_PAYOUT_BUCKETS = tuple(_buckets_from_env(
    "ESCROW_METRICS_PAYOUT_BUCKETS",
    # base units, log-scale
    (1e2, 1e3, 1e4, 1e6, 1e9, 1e12, 1e15, 1e18, 1e21, 1e24),
))


# ------------------------------ registry & ctor ------------------------------

_registry: Optional[CollectorRegistry] = None

TRADES_CREATED: Counter
SETTLEMENTS: Counter
DISPUTE_STAKES: Counter
CALL_REVERTS: Counter
SETTLEMENT_PAYOUT: Histogram


def set_registry(registry: CollectorRegistry) -> None:
    """
    Inject a custom CollectorRegistry (e.g., an app-global one).
    Must be called before the first metric is observed.
    """
    global _registry
    if _registry is not None:
        return
    _registry = registry
    _build_metrics(registry)


def get_registry() -> CollectorRegistry:
    """Return the metrics registry, creating one on first use."""
    global _registry
    if _registry is None:
        _registry = CollectorRegistry()
        _build_metrics(_registry)
    return _registry


def _build_metrics(reg: CollectorRegistry) -> None:
    global TRADES_CREATED, SETTLEMENTS, DISPUTE_STAKES, CALL_REVERTS, SETTLEMENT_PAYOUT

    TRADES_CREATED = Counter(
        _PREFIX + "trades_created_total",
        "Escrow trades created (by asset kind and funding mode).",
        labelnames=("asset_kind", "mode"),
        registry=reg,
    )
    SETTLEMENTS = Counter(
        _PREFIX + "settlements_total",
        "Terminal settlements (by transition kind).",
        labelnames=("kind",),
        registry=reg,
    )
    DISPUTE_STAKES = Counter(
        _PREFIX + "dispute_stakes_total",
        "Dispute stakes placed, refunded or forfeited.",
        labelnames=("outcome",),
        registry=reg,
    )
    CALL_REVERTS = Counter(
        _PREFIX + "call_reverts_total",
        "Public calls reverted (by error code).",
        labelnames=("error",),
        registry=reg,
    )
    SETTLEMENT_PAYOUT = Histogram(
        _PREFIX + "settlement_payout",
        "Principal plus fee distributed per settlement (base units).",
        labelnames=("asset_kind",),
        buckets=_PAYOUT_BUCKETS,
        registry=reg,
    )


def _enabled(enabled: Optional[bool]) -> bool:
    if enabled is not None:
        return enabled
    from .config import get_config

    return get_config().features.metrics


# ------------------------------ helpers -------------------------------------


def observe_created(*, asset_kind: str, automatic: bool, enabled: Optional[bool] = None) -> None:
    if not _enabled(enabled):
        return
    get_registry()
    try:
        TRADES_CREATED.labels(
            asset_kind=asset_kind, mode="automatic" if automatic else "funded"
        ).inc()
    except ValueError:
        log.debug("metrics: bad labels for trades_created", exc_info=True)


def observe_settlement(
    *, kind: str, asset_kind: str, amount: int, enabled: Optional[bool] = None
) -> None:
    if not _enabled(enabled):
        return
    get_registry()
    try:
        SETTLEMENTS.labels(kind=kind).inc()
        SETTLEMENT_PAYOUT.labels(asset_kind=asset_kind).observe(float(amount))
    except ValueError:
        log.debug("metrics: bad labels for settlement", exc_info=True)


def observe_stake(outcome: str, count: int = 1, *, enabled: Optional[bool] = None) -> None:
    if not _enabled(enabled) or count <= 0:
        return
    get_registry()
    DISPUTE_STAKES.labels(outcome=outcome).inc(count)


def observe_revert(code: str, *, enabled: Optional[bool] = None) -> None:
    if not _enabled(enabled):
        return
    get_registry()
    CALL_REVERTS.labels(error=code or "unknown").inc()


def generate_latest_text() -> bytes:
    """Prometheus text exposition of the escrow registry."""
    return generate_latest(get_registry())


__all__ = [
    "set_registry",
    "get_registry",
    "observe_created",
    "observe_settlement",
    "observe_stake",
    "observe_revert",
    "generate_latest_text",
]
