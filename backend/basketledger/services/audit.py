from sqlalchemy import select
from sqlalchemy.orm import Session
from basketledger.models.audit_log import AuditLog


def log_event(
    s: Session,
    ledger_id: int,
    actor: str,
    action: str,
    entity_type: str = "ledger",
    entity_id: int | None = None,
    details: dict | None = None,
):
    # committed together with the operation it records
    if entity_type == "ledger" and entity_id is None:
        entity_id = ledger_id
    row = AuditLog(
        ledger_id=ledger_id,
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details={k: (str(v) if isinstance(v, int) and not isinstance(v, bool) else v) for k, v in (details or {}).items()},
    )
    s.add(row)
    s.flush()
    return row


def ledger_events(s: Session, ledger_id: int, actions: list[str] | None = None) -> list[AuditLog]:
    q = select(AuditLog).where(AuditLog.ledger_id == ledger_id)
    if actions:
        q = q.where(AuditLog.action.in_(actions))
    return s.execute(q.order_by(AuditLog.id.asc())).scalars().all()
