# govassess/infrastructure/repositories_template.py
from __future__ import annotations

from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session, selectinload

from ..domain.models import AssessmentTemplate, Dimension, SubQuestion
from .exceptions import TemplateInUseError, TemplateNotFoundError, handle_database_error
from .logging import get_logger, log_database_operation as log_op
from .models import AssessmentORM, SubQuestionORM, TemplateDimensionORM, TemplateORM
from .repositories_base import BaseRepository as GenericBaseRepository

logger = get_logger(__name__)


def template_to_domain(row: TemplateORM) -> AssessmentTemplate:
    return AssessmentTemplate(
        id=row.id,
        name=row.name,
        description=row.description or "",
        dimensions=[
            Dimension(
                id=d.dimension_id,
                name=d.name,
                sub_questions=[SubQuestion(sq.sub_question_id, sq.text) for sq in d.sub_questions],
            )
            for d in row.dimensions
        ],
    )


def _dimensions_to_orm(template: AssessmentTemplate) -> list[TemplateDimensionORM]:
    return [
        TemplateDimensionORM(
            dimension_id=dim.id,
            name=dim.name,
            position=pos,
            sub_questions=[
                SubQuestionORM(sub_question_id=sq.id, text=sq.text, position=sq_pos)
                for sq_pos, sq in enumerate(dim.sub_questions)
            ],
        )
        for pos, dim in enumerate(template.dimensions)
    ]


class TemplateRepo(GenericBaseRepository[TemplateORM]):
    """Assessment template versions and their dimension/sub-question schema."""

    model = TemplateORM

    def __init__(self, session: Session):
        super().__init__(session)

    def _query(self):
        return self.s.query(TemplateORM).options(
            selectinload(TemplateORM.dimensions).selectinload(TemplateDimensionORM.sub_questions)
        )

    @log_op("template.get")
    def get_domain(self, template_id: str) -> AssessmentTemplate | None:
        row = self._query().filter(TemplateORM.id == template_id).one_or_none()
        return template_to_domain(row) if row is not None else None

    def get_required(self, template_id: str) -> AssessmentTemplate:
        template = self.get_domain(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    @log_op("template.list")
    def list_domain(self) -> list[AssessmentTemplate]:
        rows = self._query().order_by(TemplateORM.created_at, TemplateORM.id).all()
        return [template_to_domain(r) for r in rows]

    def default(self) -> AssessmentTemplate | None:
        """The oldest template; new departments start on it."""
        templates = self.list_domain()
        return templates[0] if templates else None

    def usage_count(self, template_id: str) -> int:
        return self.s.query(AssessmentORM).filter(AssessmentORM.template_id == template_id).count()

    @log_op("template.save")
    def save(self, template: AssessmentTemplate) -> AssessmentTemplate:
        """
        Insert a template version, or replace one nothing is assessed against yet.

        A template in use keeps its dimensions and sub-questions; only its name
        and description may change.

        Raises:
            TemplateInUseError: If the schema of a template in use would change
        """
        row = self.get(template.id)
        try:
            if row is None:
                row = TemplateORM(
                    id=template.id,
                    name=template.name,
                    description=template.description,
                    dimensions=_dimensions_to_orm(template),
                )
                self.s.add(row)
            else:
                schema_changed = template_to_domain(row).dimensions != template.dimensions
                in_use = self.usage_count(template.id)
                if schema_changed and in_use:
                    raise TemplateInUseError(template.id, in_use, action="change")
                row.name = template.name
                row.description = template.description
                if schema_changed:
                    row.dimensions.clear()
                    # Flush the orphan deletes first so the unique keys are free again.
                    self.s.flush()
                    row.dimensions.extend(_dimensions_to_orm(template))
            self.s.flush()
        except SQLIntegrityError as e:
            raise handle_database_error(e, "template.save") from e
        logger.info("Saved template %s with %d dimensions", template.id, len(template.dimensions))
        return template

    @log_op("template.delete")
    def delete_by_id(self, template_id: str) -> None:
        row = self.get(template_id)
        if row is None:
            raise TemplateNotFoundError(template_id)
        in_use = self.usage_count(template_id)
        if in_use:
            raise TemplateInUseError(template_id, in_use)
        self.delete(row)
