from __future__ import annotations

from fastapi import APIRouter

from quizcraft.api.deps import get_available_models
from quizcraft.config import settings
from quizcraft.models.schemas import ModelsResponse

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("", response_model=ModelsResponse)
async def list_models():
    """List the generation models a request may select."""
    return ModelsResponse(models=get_available_models(), default=settings.default_model)
