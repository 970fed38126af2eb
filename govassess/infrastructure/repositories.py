"""
Repository entry point.

Re-exports the per-entity repositories so callers can write
``from govassess.infrastructure.repositories import AssessmentRepo``.
"""

from __future__ import annotations

from .repositories_assessment import AssessmentRepo
from .repositories_changelog import ChangeLogRepo
from .repositories_template import TemplateRepo

__all__ = [
    "AssessmentRepo",
    "ChangeLogRepo",
    "TemplateRepo",
]
