"""
townsquare.api.tasks — Periodic Background Maintenance
========================================================

One loop started from the API lifespan:

- **Expired-round sweep** — every ``maintenance_interval_seconds``,
  resolves election rounds whose ``end_time`` has passed.
- **Counter reconciliation** — every ``reconcile_every_n_sweeps`` sweeps,
  recounts cached counters against their edge tables.

Both run via ``run_db()`` to avoid blocking the event loop.  A failed
pass is logged and the loop carries on with the next one.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import Engine

from townsquare.config import TownsquareConfig
from townsquare.database.engine import run_db
from townsquare.services import election_service, reconciliation_service

logger = logging.getLogger(__name__)


async def run_maintenance_pass(engine: Engine, cfg: TownsquareConfig, sweep_no: int) -> None:
    """Run one sweep; reconcile as well when *sweep_no* lands on the cadence."""
    try:
        closed = await run_db(election_service.close_expired_rounds, engine)
        if closed:
            logger.info("Maintenance: closed expired rounds %s", closed)
    except Exception:
        logger.exception("Expired-round sweep failed", extra={"task": "election_sweep"})

    if sweep_no % cfg.reconcile_every_n_sweeps != 0:
        return
    try:
        result = await run_db(reconciliation_service.reconcile_counters, engine)
        logger.info(
            "Maintenance: reconciliation checked=%d corrected=%d skipped=%d",
            result["checked"], result["corrected"], result["skipped"],
        )
    except Exception:
        logger.exception("Reconciliation task failed", extra={"task": "reconciliation"})


async def maintenance_loop(engine: Engine, cfg: TownsquareConfig) -> None:
    """Run forever until cancelled by the lifespan on shutdown."""
    sweep_no = 0
    while True:
        await asyncio.sleep(cfg.maintenance_interval_seconds)
        sweep_no += 1
        await run_maintenance_pass(engine, cfg, sweep_no)
