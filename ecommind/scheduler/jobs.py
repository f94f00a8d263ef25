"""ECOMMIND — Scheduler Jobs.

APScheduler interval job running an incremental sync for every
integration with sync enabled. Integrations run one after another; a
failing integration is logged and never stops the others.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from ecommind.config import settings
from ecommind.core.errors import EcommindError
from ecommind.core.logging import get_logger
from ecommind.database import engine
from ecommind.etl.service import EtlService
from ecommind.services.token_vault import TokenVault

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def incremental_sync_job(db_engine=None, adapter_kwargs=None) -> dict:
    """Sync all resources of every enabled integration from its checkpoint."""
    logger.info("Scheduled incremental sync starting...")
    summary = {"integrations": 0, "succeeded": 0, "failed": 0}
    with Session(db_engine or engine) as session:
        service = EtlService(session, adapter_kwargs=adapter_kwargs)
        targets = [(i.company_id, i.vendor) for i in TokenVault(session).list_sync_enabled()]
        for company_id, vendor in targets:
            summary["integrations"] += 1
            try:
                result = await service.trigger(company_id, vendor, "all", triggered_by="scheduler")
            except EcommindError as e:
                summary["failed"] += 1
                logger.error(
                    f"Scheduled {vendor} sync could not start: {e}",
                    extra={"company_id": company_id, "vendor": vendor},
                )
                continue
            except Exception as e:
                session.rollback()
                summary["failed"] += 1
                logger.error(
                    f"Scheduled {vendor} sync crashed: {e}",
                    extra={"company_id": company_id, "vendor": vendor},
                )
                continue
            if result.success:
                summary["succeeded"] += 1
            else:
                summary["failed"] += 1
    logger.info(
        f"Scheduled incremental sync complete: {summary['succeeded']}/{summary['integrations']} ok"
    )
    return summary


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        incremental_sync_job,
        "interval",
        minutes=settings.sync_interval_minutes,
        id="incremental_sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Incremental sync every {settings.sync_interval_minutes} min")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
