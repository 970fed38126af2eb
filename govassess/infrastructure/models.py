from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TemplateORM(Base):
    __tablename__ = "templates"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    dimensions: Mapped[list[TemplateDimensionORM]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="TemplateDimensionORM.position",
    )


class TemplateDimensionORM(Base):
    __tablename__ = "template_dimensions"
    pk: Mapped[int] = mapped_column("id", primary_key=True, autoincrement=True)
    template_id: Mapped[str] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("template_id", "dimension_id", name="uq_template_dimension_id"),
        UniqueConstraint("template_id", "name", name="uq_template_dimension_name"),
    )

    template: Mapped[TemplateORM] = relationship(back_populates="dimensions")
    sub_questions: Mapped[list[SubQuestionORM]] = relationship(
        back_populates="dimension",
        cascade="all, delete-orphan",
        order_by="SubQuestionORM.position",
    )


class SubQuestionORM(Base):
    __tablename__ = "sub_questions"
    pk: Mapped[int] = mapped_column("id", primary_key=True, autoincrement=True)
    dimension_pk: Mapped[int] = mapped_column(
        ForeignKey("template_dimensions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sub_question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("dimension_pk", "sub_question_id", name="uq_dimension_sub_question"),
    )

    dimension: Mapped[TemplateDimensionORM] = relationship(back_populates="sub_questions")


class AssessmentORM(Base):
    __tablename__ = "assessments"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    department_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Draft")
    last_saved: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    template_id: Mapped[str] = mapped_column(
        ForeignKey("templates.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    submission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("department_name", "period", name="uq_department_period"),
        CheckConstraint(
            "status IN ('Draft', 'Submitted', 'Locked')", name="ck_assessment_status"
        ),
    )

    scores: Mapped[list[DimensionScoreORM]] = relationship(
        back_populates="assessment",
        cascade="all, delete-orphan",
        order_by="DimensionScoreORM.pk",
    )


class DimensionScoreORM(Base):
    __tablename__ = "dimension_scores"
    pk: Mapped[int] = mapped_column("id", primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(
        ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    dimension_id: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str] = mapped_column(Text, default="", nullable=False)
    overridden_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("assessment_id", "dimension_id", name="uq_assessment_dimension"),
        CheckConstraint(
            "overridden_score IS NULL OR (overridden_score >= 0 AND overridden_score <= 100)",
            name="ck_override_range",
        ),
    )

    assessment: Mapped[AssessmentORM] = relationship(back_populates="scores")
    responses: Mapped[list[ResponseORM]] = relationship(
        back_populates="dimension_score",
        cascade="all, delete-orphan",
        order_by="ResponseORM.pk",
    )


class ResponseORM(Base):
    __tablename__ = "responses"
    pk: Mapped[int] = mapped_column("id", primary_key=True, autoincrement=True)
    dimension_score_pk: Mapped[int] = mapped_column(
        ForeignKey("dimension_scores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sub_question_id: Mapped[int] = mapped_column(Integer, nullable=False)
    response: Mapped[str] = mapped_column(String(32), nullable=False, default="Unanswered")

    __table_args__ = (
        UniqueConstraint("dimension_score_pk", "sub_question_id", name="uq_score_sub_question"),
    )

    dimension_score: Mapped[DimensionScoreORM] = relationship(back_populates="responses")


class ChangeLogORM(Base):
    __tablename__ = "changelog"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False, index=True
    )
    user: Mapped[str] = mapped_column(String(255), nullable=False)
    department_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    change_description: Mapped[str] = mapped_column(Text, nullable=False)
    period: Mapped[str] = mapped_column(String(32), nullable=False)
