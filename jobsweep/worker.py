from __future__ import annotations

import asyncio
import logging
import random
import time

from opentelemetry import trace

from jobsweep.core.config import get_settings
from jobsweep.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobsweep.jobs.runner import build_orchestrator, build_stale_checker, get_source_adapters
from jobsweep.services.repository import get_repository

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_worker() -> None:
    settings = get_settings()
    configure_logging()
    telemetry_runtime = setup_telemetry(settings)
    repository = get_repository()
    adapters = get_source_adapters()
    orchestrator = build_orchestrator(settings, repository, adapters)
    stale_checker = build_stale_checker(settings, repository, adapters)
    logger.info("worker started sources=%s", len(adapters))

    backoff = settings.poll_interval_seconds
    last_crawl_at: float | None = None
    last_stale_check_at: float | None = None

    try:
        while True:
            try:
                with tracer.start_as_current_span("worker.cycle"):
                    now = time.monotonic()
                    if last_crawl_at is None or now - last_crawl_at >= settings.crawl_interval_seconds:
                        results = await orchestrator.run_crawl()
                        logger.info(
                            "scheduled crawl finished sources=%s new=%s",
                            len(results),
                            sum(result.jobs_new for result in results),
                        )
                        last_crawl_at = now

                    if last_stale_check_at is None or now - last_stale_check_at >= settings.stale_check_interval_seconds:
                        summary = await stale_checker.run_stale_check()
                        logger.info(
                            "scheduled stale check finished checked=%s taken_down=%s",
                            summary.total_checked,
                            summary.marked_taken_down,
                        )
                        last_stale_check_at = now

                backoff = settings.poll_interval_seconds
                await asyncio.sleep(settings.poll_interval_seconds)
            except Exception as exc:  # pragma: no cover - bootstrap robustness
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("worker iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        await repository.close()
        shutdown_telemetry(telemetry_runtime)


def main() -> None:
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
