from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizcraft.api.deps import close_http_client
from quizcraft.api.routes import generation, models
from quizcraft.config import settings
from quizcraft.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.log_event(
        event_type="app_started",
        message="Quizcraft API started",
        backend=settings.generation_base_url,
        max_parallel_jobs=settings.max_parallel_jobs,
        job_timeout_seconds=settings.job_timeout_seconds,
    )
    yield
    # The shared backend client outlives individual requests
    await close_http_client()


app = FastAPI(
    title="Quizcraft",
    description="Concurrent streaming generation of vocabulary, paragraph and comprehensive questions",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(generation.router)
app.include_router(models.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "quizcraft"}
