"""Progress roll-up along the OKR tree: initiative → key result → goal.

A key result's progress is the mean progress of its non-cancelled
initiatives; a goal's progress is the mean of its non-cancelled key results.
Parents without children keep their stored value. A key result that reaches
100 % is marked completed unless it is already completed or cancelled.

These helpers flush but never commit; callers own the transaction.
"""
import logging

from sqlalchemy import func

from app.models import db
from app.models.okr import Goal, Initiative, KeyResult
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

CLOSED_STATUSES = {"completed", "cancelled"}


def recalculate_key_result_progress(key_result_id: int) -> KeyResult | None:
    """Recompute a key result's progress from its initiatives.

    Returns:
        The KeyResult, or None if it does not exist.
    """
    kr = db.session.get(KeyResult, key_result_id)
    if kr is None:
        return None

    db.session.flush()
    avg = (
        db.session.query(func.avg(func.coalesce(Initiative.progress, 0)))
        .filter(Initiative.key_result_id == key_result_id, Initiative.status != "cancelled")
        .scalar()
    )
    if avg is None:
        return kr

    kr.progress = round_half_up(avg)
    if kr.progress >= 100 and kr.status not in CLOSED_STATUSES:
        logger.info("Key result %s reached 100%%, marking completed", kr.id)
        kr.status = "completed"
    db.session.flush()
    return kr


def recalculate_goal_progress(goal_id: int) -> Goal | None:
    """Recompute a goal's progress from its key results."""
    goal = db.session.get(Goal, goal_id)
    if goal is None:
        return None

    db.session.flush()
    avg = (
        db.session.query(func.avg(func.coalesce(KeyResult.progress, 0)))
        .filter(KeyResult.goal_id == goal_id, KeyResult.status != "cancelled")
        .scalar()
    )
    if avg is None:
        return goal

    goal.progress = round_half_up(avg)
    db.session.flush()
    return goal


def cascade_from_key_result(key_result_id: int | None) -> None:
    if not key_result_id:
        return
    kr = recalculate_key_result_progress(key_result_id)
    if kr is not None:
        recalculate_goal_progress(kr.goal_id)


def cascade_from_initiative(initiative: Initiative) -> None:
    """Roll an initiative's progress up to its key result and goal."""
    cascade_from_key_result(initiative.key_result_id)


def cascade_many(key_result_ids) -> None:
    """Recalculate a set of key results, then each affected goal once."""
    goal_ids = set()
    for kr_id in sorted({k for k in key_result_ids if k}):
        kr = recalculate_key_result_progress(kr_id)
        if kr is not None:
            goal_ids.add(kr.goal_id)
    for goal_id in sorted(goal_ids):
        recalculate_goal_progress(goal_id)
