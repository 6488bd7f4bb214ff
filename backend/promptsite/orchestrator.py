"""
Generation orchestrator — owns the job lifecycle.

  start_generation  quota gate, duplicate-job check, pending row, enqueue
  run_job           (worker) choose a strategy and drive it to completed/error
  status reads      poll payloads, with stale non-terminal jobs force-errored

Strategies:
  saved files + literal "change A to B"   -> quick edit (no model call)
  existing site                            -> streamed modification
  new site                                 -> agent workflow (or one streamed build
                                              when the workflow is disabled)
"""

import math
import time

from promptsite.agent import run_agent_workflow
from promptsite.config import Settings
from promptsite.heuristics import PromptHeuristics, RegexHeuristics
from promptsite.llm import ChatProvider
from promptsite.models import (
    ChatTurn,
    GenerationJob,
    JobRequest,
    JobStatus,
    new_job_id,
    strip_reasoning,
)
from promptsite.modification import run_streamed_generation
from promptsite.progress import JobContext, JobReporter
from promptsite.quick_edit import QuickEdit, apply_quick_edit, has_site_files, has_substantial_content
from promptsite.stores import ChatStore, JobStore, ProjectStore
from promptsite.usage import UsageService
from promptsite.worker import JobQueue


TIMED_OUT_MESSAGE = "Job timed out"


class GenerationOrchestrator:
    def __init__(
        self,
        provider: ChatProvider,
        jobs: JobStore,
        projects: ProjectStore,
        chat: ChatStore,
        usage: UsageService,
        queue: JobQueue,
        settings: Settings,
        heuristics: PromptHeuristics | None = None,
    ):
        self.provider = provider
        self.jobs = jobs
        self.projects = projects
        self.chat = chat
        self.usage = usage
        self.queue = queue
        self.settings = settings
        self.heuristics = heuristics or RegexHeuristics()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def start_generation(
        self,
        prompt: str,
        project_id: str,
        user_id: str,
        history: list[ChatTurn] | None = None,
    ) -> dict:
        prompt = (prompt or "").strip()
        if not prompt:
            return {"success": False, "error": "Prompt is required"}

        decision = await self.usage.can_user_generate(user_id)
        if not decision.allowed:
            print(f"[orchestrator] Quota denied for {user_id}: {decision.reason}")
            return {"success": False, "limitReached": True, "error": decision.reason}

        active = await self.get_active_job_for_project(project_id, user_id)
        if active:
            return {
                "success": False,
                "error": "A generation is already running for this project",
                "jobId": active["id"],
            }

        job = GenerationJob(id=new_job_id(), project_id=project_id, user_id=user_id, prompt=prompt)
        await self.jobs.insert(job.to_row())
        await self.queue.enqueue(JobRequest(
            job_id=job.id,
            project_id=project_id,
            user_id=user_id,
            prompt=prompt,
            history=history or [],
        ))
        print(f"[orchestrator] Created {job.id} for project {project_id}")
        return {"success": True, "jobId": job.id}

    # ------------------------------------------------------------------
    # Background execution
    # ------------------------------------------------------------------

    async def run_job(self, request: JobRequest) -> None:
        row = await self.jobs.get(request.job_id)
        if not row:
            print(f"[orchestrator] Job {request.job_id} vanished before it started")
            return
        job = GenerationJob.from_row(row)
        if job.status.is_terminal:
            print(f"[orchestrator] Job {job.id} already {job.status.value}, skipping")
            return

        reporter = JobReporter(job, self.jobs)
        ctx = JobContext(
            request=request,
            reporter=reporter,
            provider=self.provider,
            projects=self.projects,
            chat=self.chat,
            usage=self.usage,
            heuristics=self.heuristics,
            settings=self.settings,
        )
        t0 = time.time()
        try:
            await self._run_strategy(ctx)
            print(f"[orchestrator] {job.id} completed in {time.time() - t0:.1f}s")
        except Exception as e:
            message = str(e) or e.__class__.__name__
            print(f"[orchestrator] {job.id} FAILED after {time.time() - t0:.1f}s: {message}")
            if not reporter.job.status.is_terminal:
                await reporter.fail(message)
            await self.chat.append(request.project_id, "ai", f"❌ Sorry, generation failed: {message}")

    async def _run_strategy(self, ctx: JobContext) -> None:
        request = ctx.request
        existing = await self.projects.get_files(request.project_id, request.user_id) or {}

        # Literal replacements apply to any saved files, even a tiny site
        if has_site_files(existing):
            edit = self.heuristics.detect_quick_edit(request.prompt)
            if edit:
                await self._run_quick_edit(ctx, existing, edit)
                return

        if has_substantial_content(existing):
            await run_streamed_generation(ctx, existing, is_new_site=False)
            return

        if self.settings.agent_workflow_enabled:
            await run_agent_workflow(ctx, await self._max_pages(request.user_id))
        else:
            await run_streamed_generation(ctx, existing, is_new_site=True)

    async def _max_pages(self, user_id: str) -> int:
        limits = await self.usage.get_limits(user_id)
        plan_cap = limits.max_pages_per_site
        if math.isinf(plan_cap):
            return self.settings.max_pages
        return max(1, min(self.settings.max_pages, int(plan_cap)))

    async def _run_quick_edit(self, ctx: JobContext, existing: dict[str, str], edit: QuickEdit) -> None:
        await ctx.reporter.update(progress=30, step=f'Replacing "{edit.old_text}" with "{edit.new_text}"...')
        result = apply_quick_edit(strip_reasoning(existing), edit)
        await ctx.finish(
            result.files,
            summary=(f'✅ Replaced {result.replacements} occurrence(s) of "{edit.old_text}" '
                     f'with "{edit.new_text}" across {result.files_changed} file(s).'),
            step="✨ Quick edit applied!",
            bill=False,
        )

    # ------------------------------------------------------------------
    # Status reads
    # ------------------------------------------------------------------

    async def _expire_if_stale(self, job: GenerationJob) -> bool:
        if not job.is_stale(self.settings.stale_job_minutes):
            return False
        print(f"[orchestrator] {job.id} stuck in {job.status.value} for over "
              f"{self.settings.stale_job_minutes}m, marking as error")
        job.transition(JobStatus.ERROR)
        await self.jobs.update(job.id, {
            "status": JobStatus.ERROR.value,
            "current_step": TIMED_OUT_MESSAGE,
            "error": TIMED_OUT_MESSAGE,
        })
        return True

    async def get_generation_status(self, job_id: str, user_id: str) -> dict | None:
        row = await self.jobs.get(job_id, user_id)
        if not row:
            return None
        job = GenerationJob.from_row(row)
        if await self._expire_if_stale(job):
            return None
        return job.status_payload()

    async def get_active_job_for_project(self, project_id: str, user_id: str) -> dict | None:
        row = await self.jobs.find_active(project_id, user_id)
        if not row:
            return None
        job = GenerationJob.from_row(row)
        if await self._expire_if_stale(job):
            return None
        return job.status_payload()
