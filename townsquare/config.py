"""
townsquare.config — YAML Configuration Loader
==============================================

**Why this file exists:**
This module reads ``config.yaml`` for soft settings: access-policy toggles
for the ambiguous product rules, hierarchy guards, election defaults, and
the maintenance loop cadence.  Secrets (``DATABASE_URL``, ``JWT_SECRET``)
stay in the environment.

Usage::

    from townsquare.config import load_config

    cfg = load_config()                       # ./config.yaml, or defaults
    cfg.policy.city_scope_includes_ancestors  # False
    cfg.default_round_hours                   # 72
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from townsquare.constants import DEFAULT_MAX_HIERARCHY_DEPTH, DEFAULT_ROUND_HOURS


# ---------------------------------------------------------------------------
# Access policy — the product toggles with no single obvious answer
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AccessPolicy:
    """Rules that shape authorization decisions.

    ``city_scope_includes_ancestors``
        When False (default) a ``city`` post is readable only by members of
        its exact owning community.  When True, members of any community on
        the owning community's ancestor chain may read it as well.
    ``allow_self_follow``
        Whether a user may follow themselves.
    """

    city_scope_includes_ancestors: bool = False
    allow_self_follow: bool = False
    max_hierarchy_depth: int = DEFAULT_MAX_HIERARCHY_DEPTH


DEFAULT_POLICY = AccessPolicy()


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TownsquareConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    service_name: str = "townsquare"

    # Elections
    default_round_hours: int = DEFAULT_ROUND_HOURS

    # Background maintenance (expired-round sweep + counter reconciliation)
    maintenance_interval_seconds: int = 60
    reconcile_every_n_sweeps: int = 60

    policy: AccessPolicy = field(default_factory=AccessPolicy)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> TownsquareConfig:
    """Read *path* and return a :class:`TownsquareConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to the
        ``TOWNSQUARE_CONFIG`` env var, then ``config.yaml`` in the current
        working directory.  A missing file yields the defaults.

    Raises
    ------
    ValueError
        If a numeric setting is not a positive integer.
    """
    config_path = Path(path or os.getenv("TOWNSQUARE_CONFIG", "config.yaml"))
    if not config_path.exists():
        return TownsquareConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    policy_raw: dict = raw.get("policy") or {}
    policy = AccessPolicy(
        city_scope_includes_ancestors=bool(
            policy_raw.get("city_scope_includes_ancestors", False)
        ),
        allow_self_follow=bool(policy_raw.get("allow_self_follow", False)),
        max_hierarchy_depth=_positive_int(
            policy_raw, "max_hierarchy_depth", DEFAULT_MAX_HIERARCHY_DEPTH
        ),
    )

    return TownsquareConfig(
        service_name=str(raw.get("service_name", "townsquare")),
        default_round_hours=_positive_int(raw, "default_round_hours", DEFAULT_ROUND_HOURS),
        maintenance_interval_seconds=_positive_int(raw, "maintenance_interval_seconds", 60),
        reconcile_every_n_sweeps=_positive_int(raw, "reconcile_every_n_sweeps", 60),
        policy=policy,
    )


def _positive_int(raw: dict, key: str, default: int) -> int:
    value = int(raw.get(key, default))
    if value <= 0:
        raise ValueError(f"config key {key!r} must be a positive integer, got {value}")
    return value
