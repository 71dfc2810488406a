"""Creator accounts. Registering a creator opens their ledger."""

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.enums import SYSTEM_ACTOR, CreatorRole, CreatorStatus
from db.models import Creators
from payouts.services._helpers import new_id, now_iso
from payouts.services._tx import atomic
from payouts.services._types import CreatorDict
from payouts.services.errors import InvalidWithdrawalError, NotFoundError
from payouts.services.ledger import LedgerService


def creator_to_dict(c: Creators) -> CreatorDict:
    return CreatorDict(
        id=c.id,
        name=c.name,
        email=c.email,
        role=c.role,
        status=c.status,
        created_at=c.created_at,
    )


class CreatorService:
    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def register_creator(
        self,
        name: str,
        email: str | None = None,
        creator_id: str | None = None,
        role: CreatorRole = CreatorRole.CREATOR,
        actor_id: str = SYSTEM_ACTOR,
    ) -> Creators:
        cid: str = creator_id or new_id()
        with atomic(self.session):
            existing: Creators | None = self.session.get(Creators, cid)
            if existing is not None:
                return existing
            ts: str = now_iso()
            creator: Creators = Creators(
                id=cid,
                name=name,
                email=email,
                role=role.value,
                status=CreatorStatus.ACTIVE.value,
                created_at=ts,
                updated_at=ts,
            )
            self.session.add(creator)
            self.session.flush()
            if role == CreatorRole.CREATOR:
                LedgerService(self.session).open_ledger(cid, actor_id=actor_id)
        return creator

    def get_creator(self, creator_id: str) -> Creators:
        creator: Creators | None = self.session.get(Creators, creator_id)
        if creator is None:
            raise NotFoundError(f"Creator {creator_id} not found")
        return creator

    def list_creators(
        self, role: CreatorRole | None = CreatorRole.CREATOR, status: CreatorStatus | None = None
    ) -> list[Creators]:
        stmt: Select[tuple[Creators]] = select(Creators)
        if role is not None:
            stmt = stmt.where(Creators.role == role.value)
        if status is not None:
            stmt = stmt.where(Creators.status == status.value)
        return list(self.session.scalars(stmt.order_by(Creators.id)).all())

    def set_status(self, creator_id: str, status: CreatorStatus) -> Creators:
        with atomic(self.session):
            creator: Creators = self.get_creator(creator_id)
            creator.status = status.value
            creator.updated_at = now_iso()
            self.session.flush()
        return creator

    def require_active_creator(self, creator_id: str) -> Creators:
        creator: Creators = self.get_creator(creator_id)
        if creator.role != CreatorRole.CREATOR.value:
            raise InvalidWithdrawalError(f"Account {creator_id} is not a creator")
        if creator.status != CreatorStatus.ACTIVE.value:
            raise InvalidWithdrawalError(f"Creator {creator_id} is {creator.status}")
        return creator
