from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .exceptions import handle_database_error
from .logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """
    Transaction boundary for startup seeding and scripts.

    The block's session is committed when it exits cleanly and rolled back
    otherwise. Driver errors raised by the commit itself surface as
    ``DatabaseError``.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    @contextmanager
    def begin(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            logger.warning("Unit of work rolled back")
            raise
        else:
            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise handle_database_error(e, "unit_of_work.commit") from e
        finally:
            session.close()
