#!/usr/bin/env python3
"""SDS automation jobs.

Runs email monitoring, supplier catalog polling or the hazard registry sync
across every active tenant. Schedule each job separately (e.g. email hourly,
suppliers daily, registry weekly) or run them all in sequence.

Usage:
    python -m scripts.run_sds_jobs --job email
    python -m scripts.run_sds_jobs --job suppliers
    python -m scripts.run_sds_jobs --job registry
    python -m scripts.run_sds_jobs --job all
"""
from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from sds_lifecycle.core.config import settings
from sds_lifecycle.core.database import async_session, engine
from sds_lifecycle.core.logging import configure_logging
from sds_lifecycle.core.resilience import StopSignal
from sds_lifecycle.modules.automation.jobs import run_job
from sds_lifecycle.modules.automation.models import (
    EMAIL_MONITORING,
    REGISTRY_SYNC,
    SUPPLIER_POLLING,
)

logger = structlog.get_logger()

JOB_ALIASES = {
    "email": [EMAIL_MONITORING],
    "suppliers": [SUPPLIER_POLLING],
    "registry": [REGISTRY_SYNC],
    "all": [EMAIL_MONITORING, SUPPLIER_POLLING, REGISTRY_SYNC],
}


async def run_jobs(names: list[str]) -> bool:
    """Run the jobs in order. Returns False if any job was halted."""
    stop = StopSignal()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    ok = True
    try:
        for name in names:
            if stop.requested:
                logger.warning("job_not_started", job=name, reason="stop requested")
                break
            summary = await run_job(name, async_session, settings, stop_signal=stop)
            logger.info(
                "job_summary",
                job=name,
                tenants=len(summary.tenants),
                halted=summary.halted,
                **summary.totals.as_dict(),
            )
            if summary.halted:
                ok = False
                break
    finally:
        await engine.dispose()
    return ok


def main() -> None:
    parser = argparse.ArgumentParser(description="Run SDS automation jobs")
    parser.add_argument(
        "--job",
        choices=list(JOB_ALIASES.keys()),
        default="all",
        help="Which job to run (default: all)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override LOG_LEVEL for this run",
    )
    args = parser.parse_args()

    configure_logging(level=args.log_level)
    ok = asyncio.run(run_jobs(JOB_ALIASES[args.job]))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
