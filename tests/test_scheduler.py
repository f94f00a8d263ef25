"""Tests for the scheduled incremental sync."""

import httpx
import pytest
from sqlmodel import Session, select

from ecommind.models.etl_models import EtlRun
from ecommind.scheduler.jobs import incremental_sync_job


@pytest.mark.asyncio
async def test_syncs_every_enabled_integration(engine, make_integration, sleeper):
    make_integration("bling", company_id="company-1")
    make_integration("bling", company_id="company-2")
    make_integration("bling", company_id="company-3", sync_enabled=False)

    def handler(request):
        return httpx.Response(200, json={"data": [], "pagina": 1, "totalPaginas": 1})

    summary = await incremental_sync_job(
        db_engine=engine,
        adapter_kwargs={"transport": httpx.MockTransport(handler), "sleep": sleeper},
    )

    assert summary == {"integrations": 2, "succeeded": 2, "failed": 0}
    with Session(engine) as session:
        runs = session.exec(select(EtlRun)).all()
    assert {r.company_id for r in runs} == {"company-1", "company-2"}
    assert all(r.triggered_by == "scheduler" for r in runs)


@pytest.mark.asyncio
async def test_vendor_failure_is_counted(engine, make_integration, sleeper):
    make_integration("bling", company_id="company-1")

    summary = await incremental_sync_job(
        db_engine=engine,
        adapter_kwargs={
            "transport": httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "bad"})),
            "sleep": sleeper,
        },
    )
    assert summary == {"integrations": 1, "succeeded": 0, "failed": 1}


@pytest.mark.asyncio
async def test_unexpected_error_does_not_stop_other_integrations(engine, make_integration, sleeper):
    make_integration("bling", company_id="company-1", expires_at="not-a-date")
    make_integration("bling", company_id="company-2")

    def handler(request):
        return httpx.Response(200, json={"data": [], "pagina": 1, "totalPaginas": 1})

    summary = await incremental_sync_job(
        db_engine=engine,
        adapter_kwargs={"transport": httpx.MockTransport(handler), "sleep": sleeper},
    )

    assert summary == {"integrations": 2, "succeeded": 1, "failed": 1}
    with Session(engine) as session:
        runs = session.exec(select(EtlRun)).all()
    assert [r.company_id for r in runs] == ["company-2"]
