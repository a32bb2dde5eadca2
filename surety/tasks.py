"""tasks.py – APScheduler schedule for the oracle agent.

• every ``ORACLE_POLL_INTERVAL_S`` seconds – answer new ``OracleRequest`` events
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from .oracle_agent import OracleAgent

logger = logging.getLogger(__name__)


def build_scheduler(agent: OracleAgent, interval_s: int) -> BlockingScheduler:
    sched = BlockingScheduler(timezone="UTC")

    def poll_job() -> None:
        """Answer pending oracle requests."""
        try:
            handled = agent.poll()
        except Exception:
            logger.exception("oracle poll failed")
            return
        if handled:
            logger.info("Handled %d oracle requests", handled)

    sched.add_job(poll_job, "interval", seconds=interval_s, id="oracle_poll")
    return sched


__all__ = ["build_scheduler"]
