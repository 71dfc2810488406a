"""Notification outbox.

Services queue a row in the same transaction as the state change it announces;
delivery is somebody else's job. Only the outbox row is written here.
"""

from collections.abc import Mapping

import structlog
from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.enums import NotificationKind, NotificationStatus
from db.models import NotificationRequests
from payouts.services._helpers import JsonDict, dump_json, load_json, new_id, now_iso

logger = structlog.get_logger(__name__)


class NotificationOutbox:
    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def notify(
        self, creator_id: str, kind: NotificationKind, params: Mapping[str, object]
    ) -> None:
        self.session.add(
            NotificationRequests(
                id=new_id(),
                creator_id=creator_id,
                kind=kind.value,
                params=dump_json(params),
                status=NotificationStatus.QUEUED.value,
                created_at=now_iso(),
            )
        )
        self.session.flush()
        logger.debug("Notification queued", creator_id=creator_id, kind=kind.value)

    def pending(self, creator_id: str | None = None, limit: int = 100) -> list[JsonDict]:
        stmt: Select[tuple[NotificationRequests]] = select(NotificationRequests).where(
            NotificationRequests.status == NotificationStatus.QUEUED.value
        )
        if creator_id:
            stmt = stmt.where(NotificationRequests.creator_id == creator_id)
        stmt = stmt.order_by(NotificationRequests.created_at).limit(limit)
        return [
            {
                "id": n.id,
                "creator_id": n.creator_id,
                "kind": n.kind,
                "params": load_json(n.params) or {},
                "created_at": n.created_at,
            }
            for n in self.session.scalars(stmt).all()
        ]
