"""Tests for mission creation, seeding and status transitions."""

from datetime import datetime, timezone

import pytest

from ecommind.core.errors import NotFoundError, ValidationFailedError
from ecommind.services.missions import CreateMission, MissionService

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def missions(session) -> MissionService:
    return MissionService(session, clock=lambda: NOW)


def _create(missions, company_id="company-1", **overrides):
    data = {"module": "market", "title": "Revisar preço: CAM-01", "priority": "P2"}
    data.update(overrides)
    return missions.create(company_id, CreateMission(**data), created_by="user-1")


def test_new_missions_start_in_backlog(missions):
    mission = _create(missions)
    assert mission.status == "backlog"
    assert mission.created_by == "user-1"


def test_invalid_priority_rejected(missions):
    with pytest.raises(ValidationFailedError):
        _create(missions, priority="P9")


def test_seed_creates_onboarding_set(missions):
    seeded = missions.create_seed_missions("company-1", assignee_id="user-1")
    assert [m.title for m in seeded] == [
        "Configurar metas do mês",
        "Rodar backfill de pedidos",
        "Revisar margem alvo por canal",
    ]
    assert seeded[1].due_date.isoformat() == "2026-03-13"
    assert all("onboarding" in m.tags for m in seeded)


def test_seeded_missions_serialize_fully(missions):
    seeded = missions.create_seed_missions("company-1", assignee_id="user-1")
    dumped = [m.model_dump(mode="json") for m in seeded]
    assert all(d["id"] is not None for d in dumped)
    assert [d["status"] for d in dumped] == ["backlog"] * 3
    assert len({d["id"] for d in dumped}) == 3


def test_transition_to_done_sets_completed_at(missions):
    mission = _create(missions)
    missions.transition("company-1", mission.id, "in_progress")
    done = missions.transition("company-1", mission.id, "done")
    assert done.status == "done"
    assert done.completed_at is not None


def test_disallowed_transition_rejected(missions):
    mission = _create(missions)
    with pytest.raises(ValidationFailedError):
        missions.transition("company-1", mission.id, "done")


def test_done_is_terminal(missions):
    mission = _create(missions)
    missions.transition("company-1", mission.id, "in_progress")
    missions.transition("company-1", mission.id, "done")
    with pytest.raises(ValidationFailedError):
        missions.transition("company-1", mission.id, "backlog")


def test_unknown_status_rejected(missions):
    mission = _create(missions)
    with pytest.raises(ValidationFailedError):
        missions.transition("company-1", mission.id, "archived")


def test_other_company_cannot_see_mission(missions):
    mission = _create(missions)
    with pytest.raises(NotFoundError):
        missions.get("company-2", mission.id)


def test_list_filters_and_stats(missions):
    _create(missions, module="market")
    _create(missions, module="bi", priority="P1")
    _create(missions, company_id="company-2")

    assert len(missions.list("company-1")) == 2
    assert [m.module for m in missions.list("company-1", module="bi")] == ["bi"]

    stats = missions.stats("company-1")
    assert stats["total"] == 2
    assert stats["by_status"] == {"backlog": 2}
    assert stats["by_priority"] == {"P2": 1, "P1": 1}
