import logging
from typing import Dict

from sqlalchemy.orm import Session

from paperstats.core.auth import CallerIdentity
from paperstats.core.config import settings
from paperstats.core.database import get_or_create
from paperstats.core.errors import PlanLimitError, ValidationError
from paperstats.models.orm import PlanType, UserPlan

logger = logging.getLogger(__name__)

PREMIUM_PLANS = (PlanType.PREMIUM.value, PlanType.PRO.value)


def plan_quotas() -> Dict[str, int]:
    return {
        PlanType.FREE.value: settings.FREE_PLAN_MAX_PAPERS,
        PlanType.PREMIUM.value: settings.PREMIUM_PLAN_MAX_PAPERS,
        PlanType.PRO.value: settings.PRO_PLAN_MAX_PAPERS,
    }


def load_plan(db: Session, user_id: int) -> UserPlan:
    """Plan row inside the caller's transaction; new users start on ``free``."""
    return get_or_create(
        db, UserPlan, user_id,
        plan_type=PlanType.FREE.value, max_papers=settings.FREE_PLAN_MAX_PAPERS, papers_submitted=0,
    )


def get_plan(db: Session, caller: CallerIdentity) -> UserPlan:
    plan = load_plan(db, caller.user_id)
    db.commit()
    return plan


def upgrade_plan(db: Session, caller: CallerIdentity, plan_type: str) -> UserPlan:
    if plan_type not in PREMIUM_PLANS:
        raise ValidationError("Plan type must be 'premium' or 'pro'", field="planType")

    plan = load_plan(db, caller.user_id)
    plan.plan_type = plan_type
    plan.max_papers = plan_quotas()[plan_type]
    db.commit()
    logger.info("User %s upgraded to %s", caller.user_id, plan_type)
    return plan


def require_premium(db: Session, caller: CallerIdentity) -> None:
    plan = load_plan(db, caller.user_id)
    if plan.plan_type not in PREMIUM_PLANS:
        raise PlanLimitError("This feature requires a premium plan")
