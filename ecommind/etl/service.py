"""ECOMMIND — ETL Orchestrator.

Drives extractors through a strictly sequential page loop:
  create run → read checkpoint → fetch → map → upsert → … → finalize run

The checkpoint advances only after a fully successful extraction and
never moves backwards. A failed run keeps the partial counters of pages
already committed; upserts make the next (overlapping) run safe.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session, select

from ecommind.config import settings
from ecommind.connectors.base import BaseAdapter, as_utc
from ecommind.core.errors import IntegrationDisabledError
from ecommind.core.logging import create_timer, get_logger
from ecommind.etl.extractors import Extractor, SyncFilters, build_extractors, expand_resources
from ecommind.etl.loader import upsert_rows
from ecommind.models.etl_models import (
    EtlCheckpoint,
    EtlResult,
    EtlRun,
    ResourceResult,
    TriggerResult,
)
from ecommind.models.integration_models import Integration
from ecommind.services.token_vault import TokenVault

logger = get_logger("etl.service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Progress:
    pages: int = 0
    rows: int = 0
    inserted: int = 0
    updated: int = 0

    def add(self, other: "Progress") -> None:
        self.pages += other.pages
        self.rows += other.rows
        self.inserted += other.inserted
        self.updated += other.updated


class EtlService:
    """Checkpointed, idempotent extraction runs for one DB session."""

    def __init__(
        self,
        session: Session,
        vault: Optional[TokenVault] = None,
        overlap_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
        adapter_kwargs: Optional[Dict[str, Any]] = None,
    ):
        self.session = session
        self.vault = vault or TokenVault(session)
        self.adapter_kwargs = adapter_kwargs or {}
        self.overlap = timedelta(
            minutes=settings.sync_overlap_minutes if overlap_minutes is None else overlap_minutes
        )
        self.clock = clock

    # ── Checkpoints ──

    def get_checkpoint(self, company_id: str, source: str) -> Optional[EtlCheckpoint]:
        return self.session.exec(
            select(EtlCheckpoint).where(
                EtlCheckpoint.company_id == company_id,
                EtlCheckpoint.source == source,
            )
        ).first()

    def compute_since(self, company_id: str, source: str) -> Optional[datetime]:
        """checkpoint - overlap, or None (full extraction) when never synced."""
        checkpoint = self.get_checkpoint(company_id, source)
        if checkpoint is None:
            return None
        return as_utc(checkpoint.last_run_at) - self.overlap

    def advance_checkpoint(self, company_id: str, source: str, at: datetime) -> EtlCheckpoint:
        at = as_utc(at)
        checkpoint = self.get_checkpoint(company_id, source)
        if checkpoint is None:
            checkpoint = EtlCheckpoint(company_id=company_id, source=source, last_run_at=at)
        elif as_utc(checkpoint.last_run_at) < at:
            checkpoint.last_run_at = at
        self.session.add(checkpoint)
        self.session.commit()
        return checkpoint

    # ── Run bookkeeping ──

    def start_run(self, company_id: str, source: str, triggered_by: str = "manual") -> EtlRun:
        run = EtlRun(
            company_id=company_id,
            source=source,
            status="running",
            started_at=self.clock(),
            triggered_by=triggered_by,
        )
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run

    def finish_run(
        self,
        run: EtlRun,
        ok: bool,
        progress: Progress,
        error: Optional[str] = None,
        summary: Optional[List[ResourceResult]] = None,
    ) -> EtlRun:
        run.finished_at = self.clock()
        run.ok = ok
        run.status = "completed" if ok else "failed"
        run.pages = progress.pages
        run.rows = progress.rows
        run.inserted = progress.inserted
        run.updated = progress.updated
        run.error = error
        if summary is not None:
            run.summary = [r.model_dump() for r in summary]
        self.session.add(run)
        self.session.commit()
        self.session.refresh(run)
        return run

    # ── Page Loop ──

    async def _extract(
        self,
        company_id: str,
        extractor: Extractor,
        since: Optional[datetime],
        progress: Progress,
    ) -> None:
        """Fetch → map → upsert, one page at a time, until has_more is false."""
        cursor = extractor.start_cursor
        while True:
            page = await extractor.fetch(cursor, since)
            if not page.items:
                break
            for model, rows in extractor.map(page.items, company_id):
                stats = upsert_rows(self.session, model, rows)
                progress.inserted += stats.inserted
                progress.updated += stats.updated
            progress.pages += 1
            progress.rows += len(page.items)
            if not page.has_more or page.next_cursor is None or page.next_cursor == cursor:
                break
            cursor = page.next_cursor

    # ── Single-source sync ──

    async def sync(
        self,
        company_id: str,
        source: str,
        extractor: Extractor,
        force: bool = False,
        triggered_by: str = "manual",
    ) -> EtlResult:
        timer = create_timer(f"etl_sync {source}")
        run = self.start_run(company_id, source, triggered_by)
        since = None if force else self.compute_since(company_id, source)
        progress = Progress()
        logger.info(
            f"ETL run {run.id} started for {source} "
            f"({'full' if since is None else f'since {since.isoformat()}'})",
            extra={"company_id": company_id, "source": source, "etl_run_id": run.id},
        )

        try:
            await self._extract(company_id, extractor, since, progress)
        except Exception as e:
            self.finish_run(run, ok=False, progress=progress, error=str(e))
            duration = timer.end(company_id=company_id, source=source, etl_run_id=run.id)
            logger.error(
                f"ETL run {run.id} failed after {progress.pages} pages: {e}",
                extra={"company_id": company_id, "source": source, "etl_run_id": run.id},
            )
            return EtlResult(
                success=False,
                etl_run_id=run.id,
                source=source,
                duration_ms=duration,
                error=str(e),
                **asdict(progress),
            )

        self.advance_checkpoint(company_id, source, self.clock())
        self.finish_run(run, ok=True, progress=progress)
        duration = timer.end(company_id=company_id, source=source, etl_run_id=run.id)
        logger.info(
            f"ETL run {run.id} completed: {progress.pages} pages, {progress.rows} rows",
            extra={"company_id": company_id, "source": source, "etl_run_id": run.id,
                   "pages": progress.pages, "rows": progress.rows},
        )
        return EtlResult(
            success=True,
            etl_run_id=run.id,
            source=source,
            duration_ms=duration,
            **asdict(progress),
        )

    # ── Multi-resource trigger ──

    def _record_integration(
        self, integration: Integration, resource: Optional[str] = None, error: Optional[str] = None
    ) -> None:
        now = self.clock()
        if error is not None:
            integration.error_count = (integration.error_count or 0) + 1
            integration.last_error = error[:500]
            integration.last_error_at = now
        if resource is not None:
            integration.last_sync = {**(integration.last_sync or {}), resource: now.isoformat()}
        integration.updated_at = now
        self.session.add(integration)
        self.session.commit()

    async def trigger(
        self,
        company_id: str,
        vendor: str,
        resource: str,
        force: bool = False,
        filters: Optional[SyncFilters] = None,
        triggered_by: str = "manual",
        adapter: Optional[BaseAdapter] = None,
    ) -> TriggerResult:
        """Sync one or all resources of a vendor under a single ETL run.

        Each resource keeps its own checkpoint ("{vendor}.{resource}").
        On failure the resources completed so far are returned as partial
        results and the failing resource's checkpoint is left untouched.
        """
        filters = filters or SyncFilters()
        resources = expand_resources(vendor, resource)
        integration = self.vault.get(company_id, vendor)
        if not integration.sync_enabled:
            raise IntegrationDisabledError(f"{vendor} sync is disabled for this company")

        owns_adapter = adapter is None
        adapter = adapter or self.vault.build_adapter(integration, **self.adapter_kwargs)
        run = self.start_run(company_id, f"{vendor}.{resource}", triggered_by)
        timer = create_timer(f"sync_trigger {vendor}.{resource}")
        totals = Progress()
        results: List[ResourceResult] = []
        current = Progress()

        try:
            await self.vault.refresh_if_needed(adapter)
            extractors = build_extractors(vendor, adapter, filters)
            for res in resources:
                source = f"{vendor}.{res}"
                if filters.date_from:
                    since = as_utc(filters.date_from)
                else:
                    since = None if force else self.compute_since(company_id, source)
                current = Progress()
                await self._extract(company_id, extractors[res], since, current)
                self.advance_checkpoint(company_id, source, self.clock())
                self._record_integration(integration, resource=res)
                results.append(
                    ResourceResult(
                        resource=res,
                        processed=current.rows,
                        inserted=current.inserted,
                        updated=current.updated,
                    )
                )
                totals.add(current)
                current = Progress()
        except Exception as e:
            totals.add(current)
            self.finish_run(run, ok=False, progress=totals, error=str(e), summary=results)
            self._record_integration(integration, error=str(e))
            timer.end(company_id=company_id, vendor=vendor, etl_run_id=run.id)
            logger.error(
                f"Sync trigger {vendor}.{resource} failed (run {run.id}): {e}",
                extra={"company_id": company_id, "vendor": vendor, "etl_run_id": run.id},
            )
            return TriggerResult(
                success=False, etl_run_id=run.id, results=results, error=str(e)
            )
        finally:
            if owns_adapter:
                await adapter.close()

        self.finish_run(run, ok=True, progress=totals, summary=results)
        timer.end(company_id=company_id, vendor=vendor, etl_run_id=run.id)
        return TriggerResult(success=True, etl_run_id=run.id, results=results)
