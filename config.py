# config.py — env/secrets lookup + staking policy defaults
from __future__ import annotations

import os
import streamlit as st

from engine import (
    FIXED_STAKE_FRACTION,
    INITIAL_BANKROLL,
    LOW_ODD_THRESHOLD,
    MIN_STAKE,
    MINIMUM_VIABLE_ODD,
    WIN_RATE,
    StakingPolicyConfig,
)
from replay import AVERAGE_ODD, FLAT_STAKE_UNITS

__all__ = [
    "get_secret",
    "app_env",
    "load_policy_config",
    "average_odd",
    "results_feed_url",
    "signals_feed_url",
    "AVERAGE_ODD",
    "FLAT_STAKE_UNITS",
    "INITIAL_BANKROLL",
    "MIN_STAKE",
]

# Secret names for policy overrides. Unset -> engine defaults.
POLICY_SECRETS = {
    "win_rate": ("STAKING_WIN_RATE", WIN_RATE),
    "low_odd_threshold": ("STAKING_LOW_ODD_THRESHOLD", LOW_ODD_THRESHOLD),
    "fixed_stake_fraction": ("STAKING_FIXED_STAKE_FRACTION", FIXED_STAKE_FRACTION),
    "minimum_viable_odd": ("STAKING_MINIMUM_VIABLE_ODD", MINIMUM_VIABLE_ODD),
}


def get_secret(name: str, default: str | None = None) -> str | None:
    """Environment first, then .streamlit/secrets.toml, then default."""
    v = os.getenv(name)
    if v:
        return v
    try:
        if name in st.secrets:
            v2 = st.secrets[name]
            if v2:
                return str(v2)
    except Exception:
        # no secrets file outside a Streamlit deployment
        pass
    return default


def app_env() -> str:
    return (get_secret("APP_ENV", "prod") or "prod").lower().strip()


def _float_secret(name: str, default: float) -> float:
    raw = get_secret(name)
    if raw is None:
        return float(default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_policy_config() -> StakingPolicyConfig:
    """
    Build the policy from STAKING_* secrets. Thresholds are business policy
    and have changed between releases (1.27 vs 1.24), so they stay tunable.
    """
    kwargs = {field: _float_secret(name, default) for field, (name, default) in POLICY_SECRETS.items()}
    return StakingPolicyConfig(**kwargs)


def average_odd() -> float:
    return _float_secret("STAKING_AVERAGE_ODD", AVERAGE_ODD)


def results_feed_url() -> str | None:
    return get_secret("RESULTS_FEED_URL")


def signals_feed_url() -> str | None:
    return get_secret("SIGNALS_FEED_URL")
