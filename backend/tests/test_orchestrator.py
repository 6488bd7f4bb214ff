import json
from datetime import timedelta

import pytest

from promptsite.llm import StreamDelta
from promptsite.models import GenerationJob, JobRequest, JobStatus, utcnow
from promptsite.orchestrator import TIMED_OUT_MESSAGE
from promptsite.page_planner import PLANNER_SYSTEM_PROMPT

from conftest import page_html


async def submit_and_run(orchestrator, prompt, project_id="proj-1", user_id="user-1", history=None):
    """Start a job and run it inline instead of through the worker pool."""
    result = await orchestrator.start_generation(prompt, project_id, user_id, history)
    assert result["success"], result
    request = await orchestrator.queue._queue.get()
    orchestrator.queue._queue.task_done()
    await orchestrator.run_job(request)
    return result["jobId"]


@pytest.fixture
def existing_site(projects):
    projects.projects[("proj-1", "user-1")] = {
        "index.html": page_html("Home"),
        "about.html": page_html("About"),
    }
    return projects.projects[("proj-1", "user-1")]


@pytest.mark.anyio
async def test_start_generation_creates_pending_job(orchestrator, jobs):
    result = await orchestrator.start_generation("  a bakery site ", "proj-1", "user-1")

    assert result["success"] is True
    row = await jobs.get(result["jobId"])
    assert row["status"] == "pending"
    assert row["progress"] == 0
    assert row["current_step"] == "Initializing..."
    assert row["prompt"] == "a bakery site"
    assert result["jobId"].startswith("gen_")
    assert orchestrator.queue._queue.qsize() == 1


@pytest.mark.anyio
async def test_empty_prompt_is_refused(orchestrator, jobs):
    result = await orchestrator.start_generation("   ", "proj-1", "user-1")
    assert result["success"] is False
    assert jobs.rows == {}


@pytest.mark.anyio
async def test_quota_refusal(orchestrator, profiles, jobs):
    profiles.profiles["user-1"] = {
        "generation_count": 2,
        "generation_reset_at": utcnow().isoformat(),
    }
    result = await orchestrator.start_generation("a bakery site", "proj-1", "user-1")

    assert result["success"] is False
    assert result["limitReached"] is True
    assert "free generations" in result["error"]
    assert jobs.rows == {}


@pytest.mark.anyio
async def test_duplicate_submission_returns_existing_job(orchestrator):
    first = await orchestrator.start_generation("a bakery site", "proj-1", "user-1")
    second = await orchestrator.start_generation("a bakery site", "proj-1", "user-1")

    assert second["success"] is False
    assert second["jobId"] == first["jobId"]


@pytest.mark.anyio
async def test_quick_edit_skips_the_model(orchestrator, provider, jobs, projects, chat, profiles, existing_site):
    job_id = await submit_and_run(orchestrator, 'change "ELEVATE" to "NovaCorp"')

    provider.complete.assert_not_awaited()
    assert provider.stream_calls == []

    files = await projects.get_files("proj-1", "user-1")
    assert all("ELEVATE" not in content for content in files.values())
    assert all("NovaCorp" in content for content in files.values())

    status = await orchestrator.get_generation_status(job_id, "user-1")
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert "_reasoning" not in status["files"]
    assert chat.messages[-1]["content"] == (
        '✅ Replaced 4 occurrence(s) of "ELEVATE" with "NovaCorp" across 2 file(s).'
    )
    # Quick edits are not billed
    assert "user-1" not in profiles.profiles


@pytest.mark.anyio
async def test_existing_site_uses_streamed_modification(orchestrator, provider, projects, existing_site):
    new_index = page_html("Home v2")
    provider.stream_chunks = [StreamDelta(content=json.dumps({"index.html": new_index}))]

    job_id = await submit_and_run(orchestrator, "make the hero section more playful")

    provider.complete.assert_not_awaited()
    assert len(provider.stream_calls) == 1
    files = await projects.get_files("proj-1", "user-1")
    assert files["index.html"] == new_index
    assert files["about.html"] == existing_site["about.html"]
    status = await orchestrator.get_generation_status(job_id, "user-1")
    assert status["status"] == "completed"


@pytest.mark.anyio
async def test_new_site_uses_agent_workflow(orchestrator, provider, projects):
    async def _complete(*, model, messages, **kwargs):
        if messages[0]["content"] == PLANNER_SYSTEM_PROMPT:
            return '["home", "about", "contact", "pricing", "blog"]'
        return page_html("Page")

    provider.complete.side_effect = _complete
    job_id = await submit_and_run(orchestrator, "a bakery site")

    assert provider.stream_calls == []
    status = await orchestrator.get_generation_status(job_id, "user-1")
    assert status["status"] == "completed"
    # Free plan caps the site at 3 pages
    assert set(status["files"]) == {"index.html", "about.html", "contact.html"}
    assert status["totalTasks"] == 6


@pytest.mark.anyio
async def test_new_site_streams_when_agent_workflow_disabled(orchestrator, provider, settings, projects):
    settings.agent_workflow_enabled = False
    provider.stream_chunks = [StreamDelta(content=json.dumps({"index.html": page_html("Home")}))]

    await submit_and_run(orchestrator, "a bakery site")

    provider.complete.assert_not_awaited()
    assert provider.stream_calls[0]["model"] == "reasoning-model"
    assert list(await projects.get_files("proj-1", "user-1")) == ["index.html"]


@pytest.mark.anyio
async def test_failures_are_funnelled_into_the_job(orchestrator, provider, chat, projects, existing_site):
    provider.stream_error = RuntimeError("upstream 500")

    job_id = await submit_and_run(orchestrator, "make the hero section more playful")

    status = await orchestrator.get_generation_status(job_id, "user-1")
    assert status["status"] == "error"
    assert status["error"] == "upstream 500"
    assert chat.messages[-1]["content"] == "❌ Sorry, generation failed: upstream 500"
    assert await projects.get_files("proj-1", "user-1") == existing_site


@pytest.mark.anyio
async def test_run_job_skips_terminal_jobs(orchestrator, provider, jobs):
    job = GenerationJob(id="gen_1_done", project_id="proj-1", user_id="user-1",
                        prompt="x", status=JobStatus.COMPLETED)
    await jobs.insert(job.to_row())

    await orchestrator.run_job(JobRequest(job_id=job.id, project_id="proj-1", user_id="user-1", prompt="x"))

    provider.complete.assert_not_awaited()
    assert (await jobs.get(job.id))["status"] == "completed"


@pytest.mark.anyio
async def test_stale_job_is_timed_out(orchestrator, jobs):
    job = GenerationJob(id="gen_1_old", project_id="proj-1", user_id="user-1",
                        status=JobStatus.PROCESSING, created_at=utcnow() - timedelta(minutes=11))
    await jobs.insert(job.to_row())

    assert await orchestrator.get_generation_status(job.id, "user-1") is None
    row = await jobs.get(job.id)
    assert row["status"] == "error"
    assert row["error"] == TIMED_OUT_MESSAGE
    assert await orchestrator.get_active_job_for_project("proj-1", "user-1") is None


@pytest.mark.anyio
async def test_stale_active_job_does_not_block_new_submission(orchestrator, jobs):
    job = GenerationJob(id="gen_1_old", project_id="proj-1", user_id="user-1",
                        created_at=utcnow() - timedelta(minutes=30))
    await jobs.insert(job.to_row())

    result = await orchestrator.start_generation("a bakery site", "proj-1", "user-1")

    assert result["success"] is True
    assert (await jobs.get("gen_1_old"))["status"] == "error"


@pytest.mark.anyio
async def test_status_is_scoped_to_owner(orchestrator, jobs):
    result = await orchestrator.start_generation("a bakery site", "proj-1", "user-1")
    assert await orchestrator.get_generation_status(result["jobId"], "someone-else") is None
    active = await orchestrator.get_active_job_for_project("proj-1", "user-1")
    assert active["id"] == result["jobId"]
    assert active["status"] == "pending"


@pytest.mark.anyio
async def test_quick_edit_applies_to_a_small_site(orchestrator, provider, jobs, projects, chat):
    projects.projects[("proj-1", "user-1")] = {
        "index.html": "<h1>ELEVATE</h1>",
        "about.html": "<p>Welcome to ELEVATE</p>",
    }

    job_id = await submit_and_run(orchestrator, "change ELEVATE to NovaCorp")

    provider.complete.assert_not_awaited()
    assert provider.stream_calls == []
    assert await projects.get_files("proj-1", "user-1") == {
        "index.html": "<h1>NovaCorp</h1>",
        "about.html": "<p>Welcome to NovaCorp</p>",
    }
    assert (await jobs.get(job_id))["status"] == "completed"
    assert chat.messages[-1]["content"] == (
        '✅ Replaced 2 occurrence(s) of "ELEVATE" with "NovaCorp" across 2 file(s).'
    )


@pytest.mark.anyio
async def test_small_site_without_literal_edit_is_rebuilt(orchestrator, provider, projects):
    projects.projects[("proj-1", "user-1")] = {"index.html": "<h1>ELEVATE</h1>"}

    async def _complete(*, model, messages, **kwargs):
        if messages[0]["content"] == PLANNER_SYSTEM_PROMPT:
            return '["home"]'
        return page_html("Home")

    provider.complete.side_effect = _complete
    await submit_and_run(orchestrator, "a bakery site with a warm feel")

    assert provider.stream_calls == []
    assert list(await projects.get_files("proj-1", "user-1")) == ["index.html"]
