from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import select
from basketledger.api.deps import db, require_operator
from basketledger.models.audit_log import AuditLog
from basketledger.schemas.audit import AuditOut
from basketledger.services.audit import ledger_events
from basketledger.services.ledgers import get_ledger

router = APIRouter(tags=["audit"])


@router.get("/audit", response_model=list[AuditOut])
def list_audit(
    s: Session = Depends(db),
    operator=Depends(require_operator),
    ledger_id: int | None = Query(default=None),
    actor: str | None = Query(default=None),
    entity_type: str | None = Query(default=None),
    entity_id: int | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
):
    q = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

    if ledger_id is not None:
        q = q.where(AuditLog.ledger_id == ledger_id)
    if actor:
        q = q.where(AuditLog.actor == actor)
    if entity_type:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.where(AuditLog.entity_id == entity_id)
    if action:
        q = q.where(AuditLog.action == action)

    q = q.limit(limit)
    return s.execute(q).scalars().all()


@router.get("/ledgers/{ledger_id}/history", response_model=list[AuditOut])
def ledger_history(
    ledger_id: int,
    s: Session = Depends(db),
    operator=Depends(require_operator),
    action: list[str] | None = Query(default=None),
):
    get_ledger(s, ledger_id)
    return ledger_events(s, ledger_id, action)
