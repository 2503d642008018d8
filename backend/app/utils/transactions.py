from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session


@contextmanager
def smart_transaction(session: Session) -> Iterator[Session]:
    """
    Run a block as one unit of work on the given Session.

    Reads issued earlier autobegin a transaction; when one is already active
    it is adopted and committed when the block exits cleanly. Otherwise a new
    transaction is started. Any exception rolls the whole unit back.
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    if not session.in_transaction():
        with session.begin():
            yield session
        return
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
