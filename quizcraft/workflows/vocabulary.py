from __future__ import annotations

from quizcraft.config import settings
from quizcraft.models.jobs import JobDescriptor
from quizcraft.models.schemas import VocabularyRequest
from quizcraft.workflows.base import GenerationWorkflow, distinct_keys


def term_name(term: str) -> str:
    """`"photosynthesis: how plants make food"` -> `"photosynthesis"`."""
    return term.split(":", 1)[0].strip()


class VocabularyWorkflow(GenerationWorkflow):
    """One job per selected term and question type."""

    name = "vocabulary"
    items_key = "vocabularyQuestions"
    stream_path = settings.vocabulary_stream_path

    def build_descriptors(self, request: VocabularyRequest) -> list[JobDescriptor]:
        model = self.model_for(request)
        jobs: list[tuple[str, str, str]] = []
        for term in request.terms:
            name = term_name(term)
            if not name:
                raise ValueError(f"Empty vocabulary term: {term!r}")
            for question_type in request.question_types:
                jobs.append((name, term.strip(), question_type))

        keys = distinct_keys([f"{name}_{question_type}" for name, _, question_type in jobs])
        return [
            JobDescriptor(
                key=key,
                params={
                    "terms": [term],
                    "passage": request.passage,
                    "division": request.division,
                    "questionType": question_type,
                    "model": model,
                },
                group_key=name,
            )
            for key, (name, term, question_type) in zip(keys, jobs)
        ]
