"""
Supabase-backed stores for jobs, project files, chat messages and profiles.

The supabase client is synchronous, so every query runs in a worker thread.
"""

import asyncio
import json

from promptsite.models import utcnow
from promptsite.stores import ACTIVE_STATUSES


def create_supabase_client(settings):
    """Get a Supabase client. Raises if credentials are missing."""
    url = settings.supabase_url
    key = settings.supabase_key
    if not url or not key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in .env")
    from supabase import create_client
    return create_client(url, key)


def _first(result) -> dict | None:
    return result.data[0] if result.data else None


class SupabaseJobStore:
    table = "generation_jobs"

    def __init__(self, client):
        self.client = client

    async def insert(self, row: dict) -> dict:
        def _insert():
            return self.client.table(self.table).insert(row).execute()
        result = await asyncio.to_thread(_insert)
        return _first(result) or row

    async def update(self, job_id: str, fields: dict) -> None:
        data = {**fields, "updated_at": utcnow().isoformat()}

        def _update():
            self.client.table(self.table).update(data).eq("id", job_id).execute()
        await asyncio.to_thread(_update)

    async def get(self, job_id: str, user_id: str | None = None) -> dict | None:
        def _get():
            query = self.client.table(self.table).select("*").eq("id", job_id)
            if user_id is not None:
                # Ensure user owns the job
                query = query.eq("user_id", user_id)
            return query.limit(1).execute()
        return _first(await asyncio.to_thread(_get))

    async def find_active(self, project_id: str, user_id: str) -> dict | None:
        def _find():
            return (
                self.client.table(self.table)
                .select("*")
                .eq("project_id", project_id)
                .eq("user_id", user_id)
                .in_("status", list(ACTIVE_STATUSES))
                .order("created_at", desc=True)
                .limit(1)
                .execute()
            )
        return _first(await asyncio.to_thread(_find))


class SupabaseProjectStore:
    table = "projects"

    def __init__(self, client):
        self.client = client

    async def get_files(self, project_id: str, user_id: str) -> dict[str, str] | None:
        def _get():
            return (
                self.client.table(self.table)
                .select("code_content")
                .eq("id", project_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        row = _first(await asyncio.to_thread(_get))
        raw = (row or {}).get("code_content")
        if not raw:
            return None
        if isinstance(raw, dict):
            return raw
        try:
            files = json.loads(raw)
        except ValueError:
            print(f"  [db] Project {project_id} has unparseable code_content, treating as empty")
            return None
        return files if isinstance(files, dict) else None

    async def replace_files(self, project_id: str, user_id: str, files: dict[str, str]) -> None:
        data = {"code_content": json.dumps(files), "updated_at": utcnow().isoformat()}

        def _update():
            return (
                self.client.table(self.table)
                .update(data)
                .eq("id", project_id)
                .eq("user_id", user_id)
                .execute()
            )
        await asyncio.to_thread(_update)


class SupabaseChatStore:
    table = "chat_messages"

    def __init__(self, client):
        self.client = client

    async def append(self, project_id: str, role: str, content: str) -> None:
        def _insert():
            self.client.table(self.table).insert(
                {"project_id": project_id, "role": role, "content": content}
            ).execute()
        await asyncio.to_thread(_insert)


class SupabaseProfileStore:
    table = "profiles"

    def __init__(self, client):
        self.client = client

    async def get_profile(self, user_id: str) -> dict | None:
        def _get():
            return (
                self.client.table(self.table)
                .select("id, subscription_status, subscription_plan, generation_count, generation_reset_at")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        return _first(await asyncio.to_thread(_get))

    async def upsert_profile(self, user_id: str, fields: dict) -> None:
        data = {"id": user_id, **fields, "updated_at": utcnow().isoformat()}

        def _upsert():
            self.client.table(self.table).upsert(data, on_conflict="id").execute()
        await asyncio.to_thread(_upsert)
