"""
Job and task state types.

A GenerationJob is the durable record a client polls. Status fields are
enums with explicit transition tables; every mutation goes through
`transition()` / `advance()` so an illegal move fails loudly instead of
silently corrupting the row.
"""

import random
import string
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from promptsite.errors import InvalidTransitionError


# Transient key carrying model "thinking" text while a job runs
REASONING_KEY = "_reasoning"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class TaskType(str, Enum):
    PLAN = "plan"
    DESIGN = "design"
    PAGE = "page"
    FINALIZE = "finalize"


JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.PROCESSING: frozenset({JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.ERROR}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.ERROR: frozenset(),
}

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.ERROR}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.ERROR}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.ERROR: frozenset(),
}


def new_job_id() -> str:
    """gen_<epoch ms>_<9 base36 chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"gen_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def strip_reasoning(files: dict[str, str] | None) -> dict[str, str]:
    return {k: v for k, v in (files or {}).items() if k != REASONING_KEY}


class GenerationTask(BaseModel):
    id: str
    name: str
    type: TaskType
    status: TaskStatus = TaskStatus.PENDING
    file: str | None = None

    def advance(self, status: TaskStatus) -> None:
        if status == self.status:
            return
        if status not in TASK_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"task {self.id}: {self.status.value} -> {status.value}")
        self.status = status

    @property
    def is_done(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.ERROR)


class ChatTurn(BaseModel):
    role: str  # "user" | "ai"
    content: str


class JobRequest(BaseModel):
    """What the queue hands to a worker."""

    job_id: str
    project_id: str
    user_id: str
    prompt: str
    history: list[ChatTurn] = Field(default_factory=list)


class GenerationJob(BaseModel):
    id: str
    project_id: str
    user_id: str
    prompt: str = ""
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_step: str = "Initializing..."
    files: dict[str, str] = Field(default_factory=dict)
    tasks: list[GenerationTask] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def transition(self, status: JobStatus) -> None:
        if status not in JOB_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"job {self.id}: {self.status.value} -> {status.value}")
        self.status = status

    def is_stale(self, max_age_minutes: int, now: datetime | None = None) -> bool:
        if self.status.is_terminal:
            return False
        age = (now or utcnow()) - self.created_at
        return age.total_seconds() > max_age_minutes * 60

    @property
    def current_task_index(self) -> int:
        for i, task in enumerate(self.tasks):
            if not task.is_done:
                return i
        return max(len(self.tasks) - 1, 0)

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "prompt": self.prompt,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "files": self.files,
            "tasks": [t.model_dump(mode="json") for t in self.tasks],
            "current_task_index": self.current_task_index,
            "total_tasks": len(self.tasks),
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: dict) -> "GenerationJob":
        created = row.get("created_at")
        if isinstance(created, str):
            created = datetime.fromisoformat(created)
        if created is None:
            created = utcnow()
        elif created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return cls(
            id=row["id"],
            project_id=row.get("project_id", ""),
            user_id=row.get("user_id", ""),
            prompt=row.get("prompt") or "",
            status=JobStatus(row.get("status") or JobStatus.PENDING.value),
            progress=row.get("progress") or 0,
            current_step=row.get("current_step") or "",
            files=row.get("files") or {},
            tasks=[GenerationTask.model_validate(t) for t in row.get("tasks") or []],
            error=row.get("error"),
            created_at=created,
        )

    def status_payload(self) -> dict:
        """Poll response. Terminal jobs never expose the reasoning key."""
        files = strip_reasoning(self.files) if self.status.is_terminal else dict(self.files)
        payload = {
            "id": self.id,
            "status": self.status.value,
            "currentStep": self.current_step,
            "progress": self.progress,
            "files": files,
            "tasks": [t.model_dump(mode="json") for t in self.tasks],
            "currentTaskIndex": self.current_task_index,
            "totalTasks": len(self.tasks),
        }
        if self.error:
            payload["error"] = self.error
        return payload
