from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import Select, delete, or_, select
from sqlalchemy.orm import Session

from presensi.audit import log_audit
from presensi.context import AppContext
from presensi.errors import ApiError
from presensi.models import AuditActorType, LeaveType, PolicyScope, TukinLeaveRule, TukinPolicy
from presensi.schemas import TukinLeaveRuleItem, TukinPolicyCreateRequest, TukinPolicyUpdateRequest
from presensi.security import AuthContext

logger = logging.getLogger("presensi.tukin_policy")


def _policy_in_effect_stmt(scope: PolicyScope, period_start: date) -> Select[tuple[TukinPolicy]]:
    return (
        select(TukinPolicy)
        .where(
            TukinPolicy.scope == scope,
            TukinPolicy.effective_from <= period_start,
            or_(TukinPolicy.effective_to.is_(None), TukinPolicy.effective_to >= period_start),
        )
        .order_by(
            TukinPolicy.effective_from.desc(),
            TukinPolicy.created_at.desc(),
            TukinPolicy.id.desc(),
        )
        .limit(1)
    )


def active_policy(db: Session, *, satker_id: int, period_start: date) -> TukinPolicy:
    satker_policy = db.scalar(
        _policy_in_effect_stmt(PolicyScope.SATKER, period_start).where(TukinPolicy.satker_id == satker_id)
    )
    if satker_policy is not None:
        return satker_policy

    global_policy = db.scalar(_policy_in_effect_stmt(PolicyScope.GLOBAL, period_start))
    if global_policy is not None:
        return global_policy

    raise ApiError(
        status_code=404,
        code="POLICY_NOT_FOUND",
        message=f"No tukin policy is active for satker {satker_id} on {period_start.isoformat()}.",
    )


def list_leave_rules(db: Session, *, policy_id: int) -> list[TukinLeaveRule]:
    stmt = (
        select(TukinLeaveRule)
        .where(TukinLeaveRule.policy_id == policy_id)
        .order_by(TukinLeaveRule.leave_type.asc())
    )
    return list(db.scalars(stmt).all())


def leave_credit_map(rules: list[TukinLeaveRule]) -> dict[LeaveType, float]:
    return {rule.leave_type: float(rule.credit) for rule in rules}


def list_policies(db: Session, *, auth: AuthContext, satker_id: int | None = None) -> list[TukinPolicy]:
    stmt = select(TukinPolicy).order_by(TukinPolicy.effective_from.desc(), TukinPolicy.id.desc())
    if not auth.is_superadmin:
        satker_id = auth.satker_id
    if satker_id is not None:
        stmt = stmt.where(or_(TukinPolicy.scope == PolicyScope.GLOBAL, TukinPolicy.satker_id == satker_id))
    return list(db.scalars(stmt).all())


def _get_policy(db: Session, policy_id: int) -> TukinPolicy:
    policy = db.get(TukinPolicy, policy_id)
    if policy is None:
        raise ApiError(status_code=404, code="POLICY_NOT_FOUND", message="Tukin policy not found.")
    return policy


def _ensure_can_manage(auth: AuthContext, policy: TukinPolicy) -> None:
    if auth.is_superadmin:
        return
    if policy.scope == PolicyScope.GLOBAL or policy.satker_id != auth.satker_id:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Only superadmin may manage this policy.")


def create_policy(ctx: AppContext, *, auth: AuthContext, payload: TukinPolicyCreateRequest) -> TukinPolicy:
    scope = payload.scope
    satker_id = payload.satker_id
    if not auth.is_superadmin:
        # Satker roles can only own policies of their own satker.
        scope = PolicyScope.SATKER
        satker_id = auth.satker_id

    if scope == PolicyScope.SATKER and satker_id is None:
        raise ApiError(status_code=422, code="VALIDATION_ERROR", message="satker_id is required for SATKER scope.")
    if scope == PolicyScope.GLOBAL:
        satker_id = None

    policy = TukinPolicy(
        scope=scope,
        satker_id=satker_id,
        effective_from=payload.effective_from,
        effective_to=payload.effective_to,
        missing_checkout_penalty_pct=payload.missing_checkout_penalty_pct,
        late_tolerance_minutes=payload.late_tolerance_minutes,
        late_penalty_per_minute_pct=payload.late_penalty_per_minute_pct,
        max_daily_penalty_pct=payload.max_daily_penalty_pct,
        out_of_geofence_penalty_pct=payload.out_of_geofence_penalty_pct,
    )
    ctx.db.add(policy)
    ctx.db.commit()
    ctx.db.refresh(policy)

    log_audit(
        ctx.db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="tukin_policy_created",
        entity_type="tukin_policy",
        entity_id=policy.id,
        details={"scope": scope.value, "satker_id": satker_id},
    )
    return policy


def update_policy(
    ctx: AppContext,
    *,
    auth: AuthContext,
    policy_id: int,
    payload: TukinPolicyUpdateRequest,
) -> TukinPolicy:
    policy = _get_policy(ctx.db, policy_id)
    _ensure_can_manage(auth, policy)

    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field != "effective_to":
            continue
        setattr(policy, field, value)
    if policy.effective_to is not None and policy.effective_to < policy.effective_from:
        raise ApiError(
            status_code=422,
            code="INVALID_RANGE",
            message="effective_to must be greater than or equal to effective_from.",
        )
    ctx.db.commit()
    ctx.db.refresh(policy)

    log_audit(
        ctx.db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="tukin_policy_updated",
        entity_type="tukin_policy",
        entity_id=policy.id,
        details={key: str(value) for key, value in changes.items()},
    )
    return policy


def delete_policy(ctx: AppContext, *, auth: AuthContext, policy_id: int) -> None:
    policy = _get_policy(ctx.db, policy_id)
    _ensure_can_manage(auth, policy)
    ctx.db.delete(policy)
    ctx.db.commit()

    log_audit(
        ctx.db,
        actor_type=AuditActorType.ADMIN,
        actor_id=auth.user_id,
        action="tukin_policy_deleted",
        entity_type="tukin_policy",
        entity_id=policy_id,
    )


def replace_leave_rules(
    ctx: AppContext,
    *,
    auth: AuthContext,
    policy_id: int,
    rules: list[TukinLeaveRuleItem],
) -> list[TukinLeaveRule]:
    db = ctx.db
    policy = _get_policy(db, policy_id)
    _ensure_can_manage(auth, policy)

    seen: set[LeaveType] = set()
    for item in rules:
        if item.leave_type in seen:
            raise ApiError(
                status_code=422,
                code="DUPLICATE_LEAVE_RULE",
                message=f"Duplicate rule for leave type {item.leave_type.value}.",
            )
        if not 0.0 <= item.credit <= 1.0:
            raise ApiError(status_code=422, code="VALIDATION_ERROR", message="credit must be within 0..1.")
        seen.add(item.leave_type)

    try:
        db.execute(delete(TukinLeaveRule).where(TukinLeaveRule.policy_id == policy_id))
        for item in rules:
            db.add(
                TukinLeaveRule(
                    policy_id=policy_id,
                    leave_type=item.leave_type,
                    credit=item.credit,
                    counts_as_present=item.counts_as_present,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("tukin_leave_rules_replaced", extra={"policy_id": policy_id, "rule_count": len(rules)})
    return list_leave_rules(db, policy_id=policy_id)
