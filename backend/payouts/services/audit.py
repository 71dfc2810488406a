"""Append-only audit log.

Entries are written by the same session, inside the same transaction, as the
change they describe, so audit and balances cannot disagree.
"""

from collections.abc import Mapping
from decimal import Decimal

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.enums import AuditAction
from db.models import AuditLog
from payouts.services._helpers import dump_json, load_json, now_iso
from payouts.services._types import AuditEntryDict


class AuditLogService:
    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def record(
        self,
        action: AuditAction,
        actor_id: str,
        target_id: str,
        *,
        creator_id: str | None = None,
        amount: Decimal | None = None,
        before: Mapping[str, object] | None = None,
        after: Mapping[str, object] | None = None,
    ) -> AuditLog:
        entry: AuditLog = AuditLog(
            action=action.value,
            actor_id=actor_id,
            target_id=target_id,
            creator_id=creator_id,
            amount=amount,
            before_state=dump_json(before) if before is not None else None,
            after_state=dump_json(after) if after is not None else None,
            timestamp=now_iso(),
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def trail(
        self,
        target_id: str | None = None,
        creator_id: str | None = None,
        limit: int = 200,
    ) -> list[AuditEntryDict]:
        stmt: Select[tuple[AuditLog]] = select(AuditLog)
        if target_id:
            stmt = stmt.where(AuditLog.target_id == target_id)
        if creator_id:
            stmt = stmt.where(AuditLog.creator_id == creator_id)
        stmt = stmt.order_by(AuditLog.id).limit(limit)
        return [
            AuditEntryDict(
                id=e.id,
                action=e.action,
                actor_id=e.actor_id,
                target_id=e.target_id,
                creator_id=e.creator_id,
                amount=str(e.amount) if e.amount is not None else None,
                before_state=load_json(e.before_state),
                after_state=load_json(e.after_state),
                timestamp=e.timestamp,
            )
            for e in self.session.scalars(stmt).all()
        ]
