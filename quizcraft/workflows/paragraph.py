from __future__ import annotations

from quizcraft.config import settings
from quizcraft.models.jobs import JobDescriptor
from quizcraft.models.schemas import ParagraphRequest
from quizcraft.workflows.base import GenerationWorkflow, distinct_keys


class ParagraphWorkflow(GenerationWorkflow):
    """One job per selected paragraph and question type."""

    name = "paragraph"
    items_key = "paragraphQuestions"
    stream_path = settings.paragraph_stream_path

    def build_descriptors(self, request: ParagraphRequest) -> list[JobDescriptor]:
        model = self.model_for(request)
        jobs = [
            (number, question_type)
            for number in request.selected_paragraphs
            for question_type in request.question_types
        ]
        keys = distinct_keys([f"{number}_{question_type}" for number, question_type in jobs])
        return [
            JobDescriptor(
                key=key,
                params={
                    "paragraphs": list(request.paragraphs),
                    "selectedParagraphs": [number],
                    "questionType": question_type,
                    "division": request.division,
                    "title": request.title,
                    "model": model,
                },
                group_key=str(number),
            )
            for key, (number, question_type) in zip(keys, jobs)
        ]
