from __future__ import annotations

from quizcraft.models.schemas import (
    ComprehensiveRequest,
    GenerationRequest,
    ParagraphRequest,
    VocabularyRequest,
)
from quizcraft.workflows.base import GenerationWorkflow
from quizcraft.workflows.comprehensive import ComprehensiveWorkflow
from quizcraft.workflows.paragraph import ParagraphWorkflow
from quizcraft.workflows.vocabulary import VocabularyWorkflow

WORKFLOWS: dict[str, tuple[type[GenerationWorkflow], type[GenerationRequest]]] = {
    VocabularyWorkflow.name: (VocabularyWorkflow, VocabularyRequest),
    ParagraphWorkflow.name: (ParagraphWorkflow, ParagraphRequest),
    ComprehensiveWorkflow.name: (ComprehensiveWorkflow, ComprehensiveRequest),
}


def get_workflow(name: str) -> tuple[type[GenerationWorkflow], type[GenerationRequest]]:
    try:
        return WORKFLOWS[name]
    except KeyError:
        raise KeyError(f"Unknown workflow: {name}") from None
