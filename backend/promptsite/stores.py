"""
Store interfaces the pipeline depends on, plus in-memory implementations
used by tests and by local runs without Supabase (see database.py for the
durable versions).
"""

import copy
from typing import Protocol

from promptsite.models import JobStatus, utcnow


ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


class JobStore(Protocol):
    async def insert(self, row: dict) -> dict: ...

    async def update(self, job_id: str, fields: dict) -> None: ...

    async def get(self, job_id: str, user_id: str | None = None) -> dict | None: ...

    async def find_active(self, project_id: str, user_id: str) -> dict | None: ...


class ProjectStore(Protocol):
    async def get_files(self, project_id: str, user_id: str) -> dict[str, str] | None: ...

    async def replace_files(self, project_id: str, user_id: str, files: dict[str, str]) -> None: ...


class ChatStore(Protocol):
    async def append(self, project_id: str, role: str, content: str) -> None: ...


class ProfileStore(Protocol):
    async def get_profile(self, user_id: str) -> dict | None: ...

    async def upsert_profile(self, user_id: str, fields: dict) -> None: ...


class InMemoryJobStore:
    def __init__(self):
        self.rows: dict[str, dict] = {}

    async def insert(self, row: dict) -> dict:
        row = {**copy.deepcopy(row), "updated_at": utcnow().isoformat()}
        self.rows[row["id"]] = row
        return copy.deepcopy(row)

    async def update(self, job_id: str, fields: dict) -> None:
        row = self.rows.get(job_id)
        if row is None:
            return
        row.update(copy.deepcopy(fields))
        row["updated_at"] = utcnow().isoformat()

    async def get(self, job_id: str, user_id: str | None = None) -> dict | None:
        row = self.rows.get(job_id)
        if row is None or (user_id is not None and row.get("user_id") != user_id):
            return None
        return copy.deepcopy(row)

    async def find_active(self, project_id: str, user_id: str) -> dict | None:
        active = [
            r for r in self.rows.values()
            if r.get("project_id") == project_id
            and r.get("user_id") == user_id
            and r.get("status") in ACTIVE_STATUSES
        ]
        if not active:
            return None
        return copy.deepcopy(max(active, key=lambda r: r.get("created_at", "")))


class InMemoryProjectStore:
    def __init__(self, projects: dict | None = None):
        # (project_id, user_id) -> files
        self.projects: dict[tuple[str, str], dict[str, str]] = projects or {}

    async def get_files(self, project_id: str, user_id: str) -> dict[str, str] | None:
        files = self.projects.get((project_id, user_id))
        return dict(files) if files is not None else None

    async def replace_files(self, project_id: str, user_id: str, files: dict[str, str]) -> None:
        self.projects[(project_id, user_id)] = dict(files)


class InMemoryChatStore:
    def __init__(self):
        self.messages: list[dict] = []

    async def append(self, project_id: str, role: str, content: str) -> None:
        self.messages.append({"project_id": project_id, "role": role, "content": content})


class InMemoryProfileStore:
    def __init__(self, profiles: dict | None = None):
        self.profiles: dict[str, dict] = profiles or {}

    async def get_profile(self, user_id: str) -> dict | None:
        profile = self.profiles.get(user_id)
        return dict(profile) if profile is not None else None

    async def upsert_profile(self, user_id: str, fields: dict) -> None:
        self.profiles.setdefault(user_id, {"id": user_id}).update(fields)
