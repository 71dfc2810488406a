"""Transaction scoping shared by every balance-affecting operation."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """All-or-nothing unit of work on ``session``.

    Inside an open transaction this is a SAVEPOINT, so a failing unit rolls
    back alone and the caller's transaction stays usable. Otherwise it is a
    top-level transaction that commits on exit.
    """
    if session.in_transaction():
        with session.begin_nested():
            yield session
    else:
        with session.begin():
            yield session
