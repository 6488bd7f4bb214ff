from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from promptsite.config import Settings, get_settings
from promptsite.llm import build_provider
from promptsite.models import ChatTurn
from promptsite.orchestrator import GenerationOrchestrator
from promptsite.project_names import generate_project_name
from promptsite.stores import (
    InMemoryChatStore,
    InMemoryJobStore,
    InMemoryProfileStore,
    InMemoryProjectStore,
)
from promptsite.usage import UsageService
from promptsite.worker import JobQueue


def build_orchestrator(settings: Settings) -> GenerationOrchestrator:
    """Wire provider, stores and queue. Falls back to in-memory stores without Supabase."""
    provider = build_provider(settings)
    if settings.supabase_enabled:
        from promptsite.database import (
            SupabaseChatStore,
            SupabaseJobStore,
            SupabaseProfileStore,
            SupabaseProjectStore,
            create_supabase_client,
        )
        client = create_supabase_client(settings)
        jobs, projects = SupabaseJobStore(client), SupabaseProjectStore(client)
        chat, profiles = SupabaseChatStore(client), SupabaseProfileStore(client)
    else:
        print("[startup] Supabase not configured, using in-memory stores")
        jobs, projects = InMemoryJobStore(), InMemoryProjectStore()
        chat, profiles = InMemoryChatStore(), InMemoryProfileStore()

    return GenerationOrchestrator(
        provider=provider,
        jobs=jobs,
        projects=projects,
        chat=chat,
        usage=UsageService(profiles),
        queue=JobQueue(settings.worker_count),
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: job workers
    orchestrator = build_orchestrator(get_settings())
    orchestrator.queue.start(orchestrator.run_job)
    app.state.orchestrator = orchestrator
    yield
    await orchestrator.queue.stop()


app = FastAPI(title="Promptsite API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_orchestrator(request: Request) -> GenerationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Generation service is not ready")
    return orchestrator


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    prompt: str
    messages: list[ChatTurn] = Field(default_factory=list)


class ProjectNameRequest(BaseModel):
    prompt: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/projects/{project_id}/generate")
async def start_generation_endpoint(
    project_id: str,
    body: GenerateRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Create a generation job and queue it. Poll /jobs/{id} for progress."""
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="prompt is required")

    result = await orchestrator.start_generation(body.prompt, project_id, user_id, body.messages)
    if result.get("limitReached"):
        return JSONResponse(status_code=402, content=result)
    return result


@app.get("/jobs/{job_id}")
async def get_job_status(
    job_id: str,
    user_id: str = Depends(get_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    status = await orchestrator.get_generation_status(job_id, user_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@app.get("/projects/{project_id}/active-job")
async def get_active_job(
    project_id: str,
    user_id: str = Depends(get_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    return {"job": await orchestrator.get_active_job_for_project(project_id, user_id)}


@app.get("/usage")
async def get_usage(
    user_id: str = Depends(get_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    limits = await orchestrator.usage.get_limits(user_id)
    data = limits.model_dump()
    if data["max_pages_per_site"] == float("inf"):
        data["max_pages_per_site"] = None
    return data


@app.post("/project-name")
async def project_name_endpoint(
    body: ProjectNameRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    if not body.prompt.strip():
        raise HTTPException(status_code=400, detail="prompt is required")
    return {"name": await generate_project_name(orchestrator.provider, body.prompt)}
