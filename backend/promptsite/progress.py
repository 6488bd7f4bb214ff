"""Job progress reporting: the only code that writes to a job row once it exists."""

from promptsite.models import REASONING_KEY, GenerationJob, GenerationTask, JobStatus, TaskStatus
from promptsite.stores import JobStore


class JobReporter:
    """
    Holds the in-memory GenerationJob for a running job and mirrors every
    change to the job store as a partial update. The first update moves a
    pending job to processing.
    """

    def __init__(self, job: GenerationJob, jobs: JobStore):
        self.job = job
        self.jobs = jobs

    def _task_fields(self) -> dict:
        return {
            "tasks": [t.model_dump(mode="json") for t in self.job.tasks],
            "current_task_index": self.job.current_task_index,
            "total_tasks": len(self.job.tasks),
        }

    async def update(
        self,
        *,
        progress: int | None = None,
        step: str | None = None,
        files: dict[str, str] | None = None,
        status: JobStatus | None = None,
        error: str | None = None,
        include_tasks: bool = False,
    ) -> None:
        if status is None and self.job.status == JobStatus.PENDING:
            status = JobStatus.PROCESSING

        fields = {}
        if status is not None:
            self.job.transition(status)
            fields["status"] = status.value
        if progress is not None:
            self.job.progress = progress
            fields["progress"] = progress
        if step is not None:
            self.job.current_step = step
            fields["current_step"] = step
        if files is not None:
            self.job.files = files
            fields["files"] = files
        if error is not None:
            self.job.error = error
            fields["error"] = error
        if include_tasks:
            fields.update(self._task_fields())

        await self.jobs.update(self.job.id, fields)

    async def set_tasks(self, tasks: list[GenerationTask], **kwargs) -> None:
        self.job.tasks = tasks
        await self.update(include_tasks=True, **kwargs)

    def task(self, task_id: str) -> GenerationTask:
        return next(t for t in self.job.tasks if t.id == task_id)

    async def advance_tasks(self, statuses: dict[str, TaskStatus], **kwargs) -> None:
        for task_id, status in statuses.items():
            self.task(task_id).advance(status)
        await self.update(include_tasks=True, **kwargs)

    async def fail(self, message: str) -> None:
        # Tasks that were running when the job died end in error too
        for task in self.job.tasks:
            if task.status == TaskStatus.IN_PROGRESS:
                task.advance(TaskStatus.ERROR)
        await self.update(
            status=JobStatus.ERROR,
            step="Error occurred",
            error=message,
            include_tasks=bool(self.job.tasks),
        )


class JobContext:
    """Everything a generation strategy needs for one job."""

    def __init__(self, request, reporter: JobReporter, provider, projects, chat, usage, heuristics, settings):
        self.request = request
        self.reporter = reporter
        self.provider = provider
        self.projects = projects
        self.chat = chat
        self.usage = usage
        self.heuristics = heuristics
        self.settings = settings

    async def finish(
        self,
        files: dict[str, str],
        *,
        summary: str,
        step: str,
        reasoning: str | None = None,
        bill: bool = True,
    ) -> None:
        """Persist the new file set, post the summary, complete the job, then bill."""
        request = self.request
        await self.projects.replace_files(request.project_id, request.user_id, files)
        await self.chat.append(request.project_id, "ai", summary)

        job_files = dict(files)
        if reasoning is not None:
            job_files[REASONING_KEY] = reasoning
        await self.reporter.update(
            status=JobStatus.COMPLETED,
            progress=100,
            step=step,
            files=job_files,
            include_tasks=bool(self.reporter.job.tasks),
        )
        if bill:
            await self.usage.increment_generation_count(request.user_id)
