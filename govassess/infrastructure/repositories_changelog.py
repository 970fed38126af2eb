# govassess/infrastructure/repositories_changelog.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..domain.models import ChangeLogEntry
from .logging import log_database_operation as log_op
from .models import ChangeLogORM
from .repositories_base import BaseRepository as GenericBaseRepository


class ChangeLogRepo(GenericBaseRepository[ChangeLogORM]):
    model = ChangeLogORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("changelog.record")
    def record(
        self,
        user: str,
        department_name: str,
        description: str,
        period: str,
        timestamp: datetime | None = None,
    ) -> ChangeLogEntry:
        row = self.add(
            ChangeLogORM(
                timestamp=timestamp or datetime.now(timezone.utc),
                user=user,
                department_name=department_name,
                change_description=description,
                period=period,
            )
        )
        return self._to_domain(row)

    @log_op("changelog.list_for_department")
    def list_for_department(self, department_name: str) -> list[ChangeLogEntry]:
        """Newest first."""
        rows = self.list(
            ChangeLogORM.department_name == department_name,
            order_by=[ChangeLogORM.timestamp.desc(), ChangeLogORM.id.desc()],
        )
        return [self._to_domain(r) for r in rows]

    @log_op("changelog.list_all")
    def list_all(
        self, user: str | None = None, period: str | None = None, search: str = ""
    ) -> list[ChangeLogEntry]:
        """
        The audit log, newest first.

        ``user`` and ``period`` match exactly; ``"all"`` or ``None`` disables them.
        ``search`` is a case-insensitive substring of the description, user or period.
        """
        filters = []
        if user and user != "all":
            filters.append(ChangeLogORM.user == user)
        if period and period != "all":
            filters.append(ChangeLogORM.period == period)
        needle = search.strip()
        if needle:
            filters.append(
                or_(
                    *(
                        column.icontains(needle, autoescape=True)
                        for column in (
                            ChangeLogORM.change_description,
                            ChangeLogORM.user,
                            ChangeLogORM.period,
                        )
                    )
                )
            )
        rows = self.list(
            *filters, order_by=[ChangeLogORM.timestamp.desc(), ChangeLogORM.id.desc()]
        )
        return [self._to_domain(r) for r in rows]

    def distinct_users(self) -> list[str]:
        return sorted(u for (u,) in self.s.query(ChangeLogORM.user).distinct())

    def distinct_periods(self) -> list[str]:
        return [p for (p,) in self.s.query(ChangeLogORM.period).distinct()]

    @staticmethod
    def _to_domain(row: ChangeLogORM) -> ChangeLogEntry:
        ts = row.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ChangeLogEntry(
            id=row.id,
            timestamp=ts,
            user=row.user,
            change_description=row.change_description,
            period=row.period,
        )
