"""
Agent workflow — multi-page generation for a brand-new site.

Pipeline:
  [1] plan pages            (one cheap call, keyword fallback)
  [2] task list             (plan, design, one per page, finalize) persisted up front
  [3] design spec           (one call, generic fallback)
  [4] pages                 (batches of N concurrent calls; a failed page is dropped)
  [5] finalize              (un-escape, persist, summary, complete, bill)
"""

import asyncio
import time
from typing import Awaitable, Callable, NamedTuple

from promptsite.design_spec import generate_design_spec
from promptsite.errors import EmptyOutputError
from promptsite.llm import ChatProvider
from promptsite.models import GenerationTask, TaskStatus, TaskType
from promptsite.page_generator import HOME_EXCERPT_LIMIT, generate_page
from promptsite.page_planner import extract_page_names_with_ai, page_filename, page_label
from promptsite.repair import unescape_literal_sequences


PAGES_PROGRESS_START = 20
PAGES_PROGRESS_SPAN = 60


class BatchResult(NamedTuple):
    files: dict[str, str]
    failed: list[str]
    batches: int


def page_task_id(name: str) -> str:
    return f"page-{name}"


def build_task_list(page_names: list[str]) -> list[GenerationTask]:
    tasks = [
        GenerationTask(id="plan", name="Plan pages", type=TaskType.PLAN),
        GenerationTask(id="design", name="Create design system", type=TaskType.DESIGN),
    ]
    tasks += [
        GenerationTask(
            id=page_task_id(name),
            name=f"Build {page_label(name)} page",
            type=TaskType.PAGE,
            file=page_filename(name),
        )
        for name in page_names
    ]
    tasks.append(GenerationTask(id="finalize", name="Finalize website", type=TaskType.FINALIZE))
    return tasks


def batch_progress(done: int, total: int) -> int:
    return PAGES_PROGRESS_START + (PAGES_PROGRESS_SPAN * done) // max(total, 1)


async def generate_pages_in_batches(
    provider: ChatProvider,
    prompt: str,
    page_names: list[str],
    design_spec: str,
    batch_size: int = 4,
    on_batch_start: Callable[[list[str]], Awaitable[None]] | None = None,
    on_batch_done: Callable[[list[dict], int, int], Awaitable[None]] | None = None,
) -> BatchResult:
    """
    Generate pages `batch_size` at a time. Each batch runs concurrently and
    completes before the next starts. Pages after the home page get an
    excerpt of it once it exists.
    """
    files: dict[str, str] = {}
    failed: list[str] = []
    total = len(page_names)
    done = 0
    batches = 0
    batch_size = max(1, batch_size)

    for start in range(0, total, batch_size):
        batch = page_names[start:start + batch_size]
        batches += 1
        if on_batch_start:
            await on_batch_start(batch)

        home = files.get(page_filename("home"))
        home_excerpt = home[:HOME_EXCERPT_LIMIT] if home else None
        results = await asyncio.gather(*(
            generate_page(
                provider,
                prompt,
                name,
                page_names,
                design_spec,
                home_excerpt=None if name == "home" else home_excerpt,
            )
            for name in batch
        ))

        for result in results:
            if result["success"]:
                files[result["filepath"]] = result["content"]
            else:
                failed.append(result["name"])
        done += len(batch)
        print(f"  [agent] Batch {batches}: {sum(r['success'] for r in results)}/{len(batch)} ok "
              f"({done}/{total} pages processed)")
        if on_batch_done:
            await on_batch_done(results, done, total)

    return BatchResult(files, failed, batches)


async def run_agent_workflow(ctx, max_pages: int) -> dict[str, str]:
    """Plan → design → pages → finalize. Returns the final file set."""
    request = ctx.request
    reporter = ctx.reporter
    provider = ctx.provider
    prompt = request.prompt
    t0 = time.time()

    # [1] Plan
    await reporter.update(progress=5, step="Planning your pages...")
    page_names = await extract_page_names_with_ai(
        provider, prompt, max_pages, fallback=ctx.heuristics.fallback_page_names
    )

    # [2] Task list, persisted before any page work starts
    tasks = build_task_list(page_names)
    tasks[0].advance(TaskStatus.COMPLETED)
    await reporter.set_tasks(
        tasks,
        progress=10,
        step=f"Planned {len(page_names)} page(s): {', '.join(page_label(n) for n in page_names)}",
    )

    # [3] Design spec
    await reporter.advance_tasks({"design": TaskStatus.IN_PROGRESS}, progress=12,
                                 step="Creating design system...")
    design_spec = await generate_design_spec(provider, prompt, page_names)
    await reporter.advance_tasks({"design": TaskStatus.COMPLETED}, progress=PAGES_PROGRESS_START,
                                 step="Design system ready. Building pages...")

    # [4] Pages
    async def _on_batch_start(batch):
        await reporter.advance_tasks(
            {page_task_id(n): TaskStatus.IN_PROGRESS for n in batch},
            step=f"Building {', '.join(page_label(n) for n in batch)}...",
        )

    async def _on_batch_done(results, done, total):
        await reporter.advance_tasks(
            {
                page_task_id(r["name"]): TaskStatus.COMPLETED if r["success"] else TaskStatus.ERROR
                for r in results
            },
            progress=batch_progress(done, total),
            step=f"Built {done}/{total} pages",
        )

    result = await generate_pages_in_batches(
        provider,
        prompt,
        page_names,
        design_spec,
        batch_size=ctx.settings.page_batch_size,
        on_batch_start=_on_batch_start,
        on_batch_done=_on_batch_done,
    )

    # [5] Finalize
    await reporter.advance_tasks({"finalize": TaskStatus.IN_PROGRESS}, progress=90,
                                 step="Finalizing your website...")
    if not result.files:
        raise EmptyOutputError("No pages could be generated. Please try again.")

    files = {name: unescape_literal_sequences(content) for name, content in result.files.items()}
    reporter.task("finalize").advance(TaskStatus.COMPLETED)

    summary = f"✅ Built {len(files)} page(s): {', '.join(files)}"
    if result.failed:
        summary += f"\n⚠️ Could not build: {', '.join(page_label(n) for n in result.failed)}"
    print(f"  [agent] Done in {time.time() - t0:.1f}s: {len(files)} pages, {len(result.failed)} failed")

    await ctx.finish(
        files,
        summary=summary,
        step="✨ Website generated!",
        reasoning=f"Planned {len(page_names)} pages and built them in {result.batches} batch(es).",
    )
    return files
