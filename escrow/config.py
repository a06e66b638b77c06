"""
escrow.config — runtime configuration for the escrow engine.

This module centralizes knobs for:
  • Economic defaults (protocol fee bps, dispute stake amount)
  • Seller waiting-time bounds and the per-trade factory default
  • Feature flags (metrics)

Configuration may be provided via environment variables. Safe defaults are chosen so a
local run and the test-suite work out of the box.

Environment variables (all optional):
  ESCROW_FEE_BPS              -> protocol fee in basis points (default: 30)
  ESCROW_DISPUTE_STAKE        -> stake in native base units, e.g. "1e18" (default: 10**18)
  ESCROW_MIN_WAIT_SECS        -> minimum seller waiting time (default: 900 = 15 min)
  ESCROW_MAX_WAIT_SECS        -> maximum seller waiting time (default: 86400 = 24 h)
  ESCROW_SELLER_WAIT_SECS     -> waiting time used by per-trade deployments (default: 86400)
  ESCROW_METRICS              -> 0/1/true/false (default: 1)

Programmatic usage:
    from escrow.config import get_config
    cfg = get_config()
    if cfg.limits.min_waiting_time <= wait <= cfg.limits.max_waiting_time:
        ...
"""

from __future__ import annotations

import os
import re
from dataclasses import asdict, dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Dict, Mapping, Optional, Union

# ----------------------------- helpers -------------------------------------


_BOOL_TRUE = {"1", "true", "t", "yes", "y", "on"}
_BOOL_FALSE = {"0", "false", "f", "no", "n", "off"}


def _bool_env(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    v = value.strip().lower()
    if v in _BOOL_TRUE:
        return True
    if v in _BOOL_FALSE:
        return False
    return bool(v) if v != "" else default


_AMOUNT_RE = re.compile(r"^\s*[0-9_]+(\.[0-9]+)?([eE][0-9]+)?\s*$")


def _parse_amount(s: Union[str, int]) -> int:
    """
    Parse an integer amount in base units:
      "1000", "1_000", "1e18", "2.5e3", 10**18 -> int

    Fractional results are rejected; amounts are always whole base units.
    """
    if isinstance(s, bool):
        raise ValueError("amount must be an integer, not bool")
    if isinstance(s, int):
        if s < 0:
            raise ValueError("amount must be non-negative")
        return s
    raw = str(s)
    if not _AMOUNT_RE.match(raw):
        raise ValueError(f"invalid amount: {s!r}")
    try:
        d = Decimal(raw.strip().replace("_", ""))
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {s!r}") from e
    if d != d.to_integral_value():
        raise ValueError(f"amount must be whole base units: {s!r}")
    return int(d)


# ------------------------------ dataclasses ---------------------------------


@dataclass(frozen=True)
class FeatureFlags:
    metrics: bool = True


@dataclass(frozen=True)
class Limits:
    min_waiting_time: int = 15 * 60  # 15 minutes
    max_waiting_time: int = 24 * 60 * 60  # 24 hours
    default_seller_waiting_time: int = 24 * 60 * 60


@dataclass(frozen=True)
class Economics:
    fee_bps: int = 30
    dispute_stake: int = 10**18


@dataclass(frozen=True)
class EscrowConfig:
    economics: Economics
    limits: Limits
    features: FeatureFlags

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


# ------------------------------ loader --------------------------------------


def _validate(cfg: EscrowConfig) -> EscrowConfig:
    e, l = cfg.economics, cfg.limits
    if not (0 <= e.fee_bps <= 10_000):
        raise ValueError("fee_bps must be in [0, 10000]")
    if e.dispute_stake <= 0:
        raise ValueError("dispute_stake must be > 0")
    if l.min_waiting_time <= 0:
        raise ValueError("min_waiting_time must be > 0")
    if l.max_waiting_time < l.min_waiting_time:
        raise ValueError("max_waiting_time must be ≥ min_waiting_time")
    if not (l.min_waiting_time <= l.default_seller_waiting_time <= l.max_waiting_time):
        raise ValueError("default_seller_waiting_time must be within waiting-time bounds")
    return cfg


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    overrides: Optional[Mapping[str, Union[str, int, bool]]] = None,
) -> EscrowConfig:
    """
    Build an EscrowConfig from environment and optional overrides.

    Args:
        env: mapping to read variables from (default: os.environ)
        overrides: explicit field overrides; keys support:
          'fee_bps', 'dispute_stake', 'min_waiting_time', 'max_waiting_time',
          'default_seller_waiting_time', 'metrics'
    """
    env = os.environ if env is None else env
    overrides = dict(overrides or {})

    economics = Economics(
        fee_bps=int(overrides.get("fee_bps", env.get("ESCROW_FEE_BPS", 30))),
        dispute_stake=_parse_amount(
            overrides.get("dispute_stake", env.get("ESCROW_DISPUTE_STAKE", 10**18))
        ),
    )

    limits = Limits(
        min_waiting_time=int(
            overrides.get("min_waiting_time", env.get("ESCROW_MIN_WAIT_SECS", 15 * 60))
        ),
        max_waiting_time=int(
            overrides.get("max_waiting_time", env.get("ESCROW_MAX_WAIT_SECS", 24 * 60 * 60))
        ),
        default_seller_waiting_time=int(
            overrides.get(
                "default_seller_waiting_time",
                env.get("ESCROW_SELLER_WAIT_SECS", 24 * 60 * 60),
            )
        ),
    )

    if "metrics" in overrides:
        metrics = _bool_env(str(overrides["metrics"]), True)
    else:
        metrics = _bool_env(env.get("ESCROW_METRICS"), True)
    features = FeatureFlags(metrics=metrics)

    return _validate(EscrowConfig(economics=economics, limits=limits, features=features))


@lru_cache(maxsize=1)
def get_config() -> EscrowConfig:
    """
    Cached global config. Suitable for application bootstraps and module-level consumers.
    """
    return load_config()


# ----------------------------- pretty-print ---------------------------------


def summary(cfg: Optional[EscrowConfig] = None) -> str:
    """
    Return a human-friendly one-line summary of the most important escrow knobs.
    """
    cfg = cfg or get_config()
    e, l, f = cfg.economics, cfg.limits, cfg.features
    return (
        "escrow{"
        f"fee_bps={e.fee_bps}, stake={e.dispute_stake}, "
        f"wait=[{l.min_waiting_time}s..{l.max_waiting_time}s], "
        f"default_wait={l.default_seller_waiting_time}s, "
        f"metrics={int(f.metrics)}"
        "}"
    )


__all__ = [
    "FeatureFlags",
    "Limits",
    "Economics",
    "EscrowConfig",
    "load_config",
    "get_config",
    "summary",
]
