"""ECOMMIND — Mission Service.

Creates, lists and transitions missions for one company. Missions come
from market insights (see analyzer.insight_pipeline) or from the
onboarding seed set.
"""

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlmodel import Session, select

from ecommind.core.errors import NotFoundError, ValidationFailedError
from ecommind.core.logging import get_logger
from ecommind.models.insight_models import MISSION_STATUSES, PRIORITIES, Mission

logger = get_logger("services.missions")

ALLOWED_TRANSITIONS: Dict[str, tuple] = {
    "backlog": ("planned", "in_progress", "dismissed"),
    "planned": ("backlog", "in_progress", "dismissed"),
    "in_progress": ("planned", "done", "dismissed"),
    "done": (),
    "dismissed": ("backlog",),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CreateMission(BaseModel):
    module: str
    title: str
    summary: str = ""
    priority: str = "P2"
    origin_insight_id: Optional[int] = None
    assignee_id: Optional[str] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = None
    payload: Dict[str, Any] = {}
    tags: List[str] = []


# Onboarding set: (module, title, summary, priority, due in days, hours, payload, tags)
SEED_MISSIONS = (
    (
        "planning",
        "Configurar metas do mês",
        "Definir metas de vendas por canal e produto para o mês atual. Acesse o módulo "
        "de Planejamento e configure suas metas baseadas no histórico de vendas.",
        "P1",
        7,
        2,
        {
            "type": "onboarding_seed",
            "category": "planning",
            "steps": [
                "Analisar histórico de vendas",
                "Definir metas por canal",
                "Configurar alertas de acompanhamento",
            ],
        },
        ["onboarding", "planning", "metas"],
    ),
    (
        "bi",
        "Rodar backfill de pedidos",
        "Sincronizar histórico de pedidos dos últimos 90 dias para análise completa. Esta "
        "tarefa irá importar dados históricos dos seus canais de venda.",
        "P1",
        3,
        1,
        {"type": "onboarding_seed", "category": "data_sync", "backfill_days": 90, "channels": ["all"]},
        ["onboarding", "bi", "sync"],
    ),
    (
        "bi",
        "Revisar margem alvo por canal",
        "Analisar e ajustar as margens alvo configuradas para cada canal de venda baseado "
        "na performance histórica e concorrência.",
        "P2",
        14,
        3,
        {"type": "onboarding_seed", "category": "optimization", "focus": "margin_analysis"},
        ["onboarding", "bi", "margem"],
    ),
)


class MissionService:
    def __init__(self, session: Session, clock: Callable[[], datetime] = _utcnow):
        self.session = session
        self.clock = clock

    def create(
        self, company_id: str, data: CreateMission, created_by: Optional[str] = None
    ) -> Mission:
        if data.priority not in PRIORITIES:
            raise ValidationFailedError(f"Invalid priority '{data.priority}'")
        now = self.clock()
        mission = Mission(
            company_id=company_id,
            origin_insight_id=data.origin_insight_id,
            module=data.module,
            title=data.title,
            summary=data.summary,
            status="backlog",
            priority=data.priority,
            tags=list(data.tags),
            payload=dict(data.payload),
            due_date=data.due_date,
            assignee_id=data.assignee_id,
            estimated_hours=data.estimated_hours,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(mission)
        self.session.commit()
        self.session.refresh(mission)
        logger.info(
            f"Mission {mission.id} created: {mission.title}",
            extra={"company_id": company_id},
        )
        return mission

    def create_seed_missions(self, company_id: str, assignee_id: Optional[str] = None) -> List[Mission]:
        today = self.clock().date()
        created = []
        for module, title, summary, priority, days, hours, payload, tags in SEED_MISSIONS:
            created.append(
                self.create(
                    company_id,
                    CreateMission(
                        module=module,
                        title=title,
                        summary=summary,
                        priority=priority,
                        assignee_id=assignee_id,
                        due_date=today + timedelta(days=days),
                        estimated_hours=hours,
                        payload=payload,
                        tags=tags,
                    ),
                    created_by=assignee_id,
                )
            )
        # each create() commits, expiring the missions created before it
        for mission in created:
            self.session.refresh(mission)
        logger.info(f"🌱 Seeded {len(created)} onboarding missions", extra={"company_id": company_id})
        return created

    def list(
        self,
        company_id: str,
        status: Optional[str] = None,
        module: Optional[str] = None,
        assignee_id: Optional[str] = None,
    ) -> List[Mission]:
        query = select(Mission).where(Mission.company_id == company_id)
        if status:
            query = query.where(Mission.status == status)
        if module:
            query = query.where(Mission.module == module)
        if assignee_id:
            query = query.where(Mission.assignee_id == assignee_id)
        return list(self.session.exec(query.order_by(Mission.created_at.desc(), Mission.id.desc())).all())

    def get(self, company_id: str, mission_id: int) -> Mission:
        mission = self.session.get(Mission, mission_id)
        if mission is None or mission.company_id != company_id:
            raise NotFoundError(f"Mission {mission_id} not found")
        return mission

    def transition(self, company_id: str, mission_id: int, status: str) -> Mission:
        if status not in MISSION_STATUSES:
            raise ValidationFailedError(f"Invalid status '{status}'")
        mission = self.get(company_id, mission_id)
        if status == mission.status:
            return mission
        if status not in ALLOWED_TRANSITIONS[mission.status]:
            raise ValidationFailedError(
                f"Cannot move mission from {mission.status} to {status}"
            )

        now = self.clock()
        mission.status = status
        mission.updated_at = now
        mission.completed_at = now if status == "done" else None
        self.session.add(mission)
        self.session.commit()
        self.session.refresh(mission)
        logger.info(f"Mission {mission_id} → {status}", extra={"company_id": company_id})
        return mission

    def stats(self, company_id: str) -> Dict[str, Any]:
        missions = self.list(company_id)
        return {
            "total": len(missions),
            "by_status": dict(Counter(m.status for m in missions)),
            "by_module": dict(Counter(m.module for m in missions)),
            "by_priority": dict(Counter(m.priority for m in missions)),
        }
