"""
Replenishment Worker — nightly sweep over every shelf stock row.

Runs the same sweep as POST /api/v1/replenishment/trigger-all, outside the
API process, then publishes the alerts it raised on the Redis channel.

The sweep commits pair by pair, so it is never re-run because Redis was
down. Alerts that could not be published are handed to
publish_raised_alerts, which retries the fan-out on its own.

Schedule: crontab(hour=settings.sweep_hour_utc) — nightly
Queue: replenishment
"""

import asyncio
from datetime import datetime

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def sweep_and_publish(session_factory) -> dict:
    """Run the sweep in a fresh session and fan out newly raised alerts."""
    from alerts.engine import publish_alerts
    from inventory.replenishment import trigger_full_replenishment

    async with session_factory() as db:
        run = await trigger_full_replenishment(db)

    summary = run.to_dict()
    raised = summary.pop("raised_alerts")
    try:
        subscribers = await publish_alerts(raised)
    except (RedisError, OSError) as exc:
        logger.warning("replenishment.publish_failed", alerts=len(raised), error=str(exc))
        summary.update(alerts_published=0, subscribers_notified=0, unpublished_alerts=raised)
        return summary

    summary.update(alerts_published=len(raised), subscribers_notified=subscribers, unpublished_alerts=[])
    return summary


@celery_app.task(
    name="workers.replenishment.run_replenishment_sweep",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def run_replenishment_sweep(self):
    """
    Nightly job: raise alerts, file stock requests, and assign restock tasks.

    Per-pair failures are reported in the summary; only a failure of the
    run itself (database unreachable) is retried. A failed alert fan-out is
    queued as publish_raised_alerts instead.
    """
    run_id = self.request.id or "manual"
    logger.info("replenishment.worker_started", run_id=run_id)

    async def _sweep():
        from core.config import get_settings
        from db.session import build_engine

        settings = get_settings()
        engine = build_engine(settings.database_url)
        try:
            session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            summary = await sweep_and_publish(session_factory)
        finally:
            await engine.dispose()

        summary.update(
            status="success",
            run_id=run_id,
            completed_at=datetime.utcnow().isoformat(),
        )
        logger.info(
            "replenishment.worker_completed",
            **{k: v for k, v in summary.items() if k not in ("errors", "unpublished_alerts")},
            error_count=len(summary["errors"]),
            unpublished_count=len(summary["unpublished_alerts"]),
        )
        return summary

    try:
        summary = asyncio.run(_sweep())
    except Exception as exc:
        logger.error("replenishment.worker_failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    # Enqueued outside the retried block so a broker error never re-runs the sweep
    if summary["unpublished_alerts"]:
        publish_raised_alerts.delay(summary["unpublished_alerts"])
    return summary


@celery_app.task(
    name="workers.replenishment.publish_raised_alerts",
    bind=True,
    max_retries=5,
    default_retry_delay=60,
    acks_late=True,
)
def publish_raised_alerts(self, alerts: list[dict]):
    """Fan out alert payloads a sweep could not publish. Retries without touching the database."""
    from alerts.engine import publish_alerts

    try:
        subscribers = asyncio.run(publish_alerts(alerts))
    except (RedisError, OSError) as exc:
        logger.warning("replenishment.publish_retry", alerts=len(alerts), error=str(exc))
        raise self.retry(exc=exc)

    logger.info("replenishment.publish_recovered", alerts=len(alerts), subscribers=subscribers)
    return {"alerts_published": len(alerts), "subscribers_notified": subscribers}
