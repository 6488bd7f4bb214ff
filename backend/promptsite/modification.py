"""
Streamed single-call generation.

Used for edits to an existing site (that weren't a quick edit) and for new
sites when the multi-page workflow is switched off. One streamed completion
returns the complete replacement files as a JSON object; reasoning text is
surfaced to the poller while the stream runs.
"""

import re
import time
from enum import Enum

from promptsite.errors import EmptyOutputError, InvalidDocumentError
from promptsite.models import REASONING_KEY, ChatTurn, strip_reasoning
from promptsite.repair import parse_model_output


FILE_EXCERPT_LIMIT = 4000
STREAM_PROGRESS_CAP = 85


class ModificationType(str, Enum):
    NEW_PAGE = "new_page"
    BUG_FIX = "bug_fix"
    STYLE = "style"
    CONTENT = "content"
    GENERAL = "general"


_ADD_RE = re.compile(r"\badd\b")
_PAGE_OR_SECTION_RE = re.compile(r"\b(?:page|section)s?\b")
_BUG_RE = re.compile(r"\b(?:fix|bug|broken|error)")
_STYLE_RE = re.compile(r"\b(?:colou?r|style|font|theme|design|look)")
_CONTENT_RE = re.compile(r"\b(?:change|update|edit|modify|replace|text)")


def classify_modification(prompt: str) -> ModificationType:
    p = (prompt or "").lower()
    if _ADD_RE.search(p) and _PAGE_OR_SECTION_RE.search(p):
        return ModificationType.NEW_PAGE
    if _BUG_RE.search(p):
        return ModificationType.BUG_FIX
    if _STYLE_RE.search(p):
        return ModificationType.STYLE
    if _CONTENT_RE.search(p):
        return ModificationType.CONTENT
    return ModificationType.GENERAL


MODIFICATION_INSTRUCTIONS = {
    ModificationType.NEW_PAGE: (
        "REQUEST TYPE: NEW PAGE / SECTION\n"
        "- Create the new page or section in the same visual style as the existing files.\n"
        "- If you add a page, add its link to the navigation of EVERY existing page and return those pages too."
    ),
    ModificationType.BUG_FIX: (
        "REQUEST TYPE: BUG FIX\n"
        "- Find the root cause in the current files and fix it.\n"
        "- Change as little as possible; keep design and content identical otherwise."
    ),
    ModificationType.STYLE: (
        "REQUEST TYPE: STYLE CHANGE\n"
        "- Apply the visual change consistently across every page it affects.\n"
        "- Do not change text content or page structure."
    ),
    ModificationType.CONTENT: (
        "REQUEST TYPE: CONTENT EDIT\n"
        "- Update the text/content exactly as requested, wherever it appears.\n"
        "- Keep layout and styling unchanged."
    ),
    ModificationType.GENERAL: (
        "REQUEST TYPE: GENERAL IMPROVEMENT\n"
        "- Make the requested improvement while preserving the existing design language."
    ),
}

MODIFICATION_SYSTEM_PROMPT = """You are an expert web developer editing an existing static website made of HTML files (Tailwind CSS via CDN).

Current files: {filenames}

First classify the request (bug fix / style change / content edit / new page / general), then apply it.

## Output Format
Output ONLY a JSON object mapping filenames to their COMPLETE new contents:
{{"index.html": "<!DOCTYPE html>...", "about.html": "..."}}

- Return every file you change or create, each in full. Never return partial files or diffs.
- Files you do not return are kept unchanged.
- No markdown fences. No explanation. ONLY the JSON object."""

NEW_SITE_SYSTEM_PROMPT = """You are an expert web designer and developer. Build a complete, modern, responsive static website from the user's description.

## Output Format
Output ONLY a JSON object mapping filenames to their complete contents:
{"index.html": "<!DOCTYPE html>...", "about.html": "..."}

## Rules
- `index.html` is the home page and MUST be a full document starting with <!DOCTYPE html>.
- Use Tailwind CSS via CDN (<script src="https://cdn.tailwindcss.com"></script>) and Google Fonts.
- Every page shares the same header navigation (relative .html links) and footer.
- Realistic copy for the business described. No lorem ipsum. No placeholder image services.
- No markdown fences. No explanation. ONLY the JSON object."""

# AI chat messages that only report progress, never real conversation
_PROGRESS_PREFIXES = ("🚀", "⏳", "Working...")
_TASK_COUNTER_RE = re.compile(r"\(Task \d+/\d+\)")
_PERCENT_SUFFIX_RE = re.compile(r"\(\d{1,3}%\)\s*$")


def is_progress_message(turn: ChatTurn) -> bool:
    if turn.role != "ai":
        return False
    content = turn.content.strip()
    return (
        content.startswith(_PROGRESS_PREFIXES)
        or bool(_TASK_COUNTER_RE.search(content))
        or bool(_PERCENT_SUFFIX_RE.search(content))
    )


def build_history(history: list[ChatTurn], prompt: str, max_turns: int) -> list[dict]:
    turns = [t for t in history or [] if t.content.strip() and not is_progress_message(t)]
    # The client usually includes the message being answered as its last turn
    if turns and turns[-1].role == "user" and turns[-1].content.strip() == prompt.strip():
        turns = turns[:-1]
    turns = turns[-max_turns:] if max_turns > 0 else []
    return [
        {"role": "assistant" if t.role == "ai" else "user", "content": t.content}
        for t in turns
    ]


def _file_context(files: dict[str, str]) -> str:
    blocks = []
    for name, content in files.items():
        if len(content) > FILE_EXCERPT_LIMIT:
            header = f"--- FILE: {name} ({len(content)} chars, first {FILE_EXCERPT_LIMIT} shown) ---"
        else:
            header = f"--- FILE: {name} ({len(content)} chars) ---"
        blocks.append(f"{header}\n{content[:FILE_EXCERPT_LIMIT]}")
    return "\n\n".join(blocks)


def build_messages(
    prompt: str,
    existing_files: dict[str, str],
    modification_type: ModificationType | None,
    history: list[dict],
) -> list[dict]:
    """modification_type None means new-site mode."""
    if modification_type is None:
        system = NEW_SITE_SYSTEM_PROMPT
        user = (
            f"Build a website based on this description: {prompt}\n\n"
            "Return ONLY the JSON object mapping filenames to file contents."
        )
    else:
        system = MODIFICATION_SYSTEM_PROMPT.format(filenames=", ".join(existing_files) or "(none)")
        user = (
            f"{MODIFICATION_INSTRUCTIONS[modification_type]}\n\n"
            f"CURRENT FILES:\n{_file_context(existing_files)}\n\n"
            f"USER REQUEST: {prompt}\n\n"
            "Return ONLY the JSON object with the complete contents of every changed or new file."
        )
    return [{"role": "system", "content": system}, *history, {"role": "user", "content": user}]


_HTML_ROOT_RE = re.compile(r"<!doctype|<html", re.IGNORECASE)


def validate_output(files: dict[str, str], is_first_generation: bool) -> None:
    if not strip_reasoning(files):
        raise EmptyOutputError("The AI did not return any files. Please try rephrasing your request.")
    index = files.get("index.html")
    if is_first_generation and index is not None and not _HTML_ROOT_RE.search(index):
        raise InvalidDocumentError("Generated index.html is not a valid HTML document.")


async def run_streamed_generation(ctx, existing_files: dict[str, str], is_new_site: bool) -> dict[str, str]:
    """
    Single streamed completion -> repaired file map -> merged, persisted result.
    Returns the final file set.
    """
    request = ctx.request
    provider = ctx.provider
    reporter = ctx.reporter
    settings = ctx.settings
    existing = strip_reasoning(existing_files)

    modification_type = None if is_new_site else ctx.heuristics.classify_modification(request.prompt)
    label = "new site" if is_new_site else modification_type.value
    await reporter.update(progress=10, step="Analyzing your request...")

    messages = build_messages(
        request.prompt,
        existing,
        modification_type,
        build_history(request.history, request.prompt, settings.history_turns),
    )
    model = provider.reasoning_model if is_new_site else provider.fast_model
    print(f"  [modify] Streaming {label} generation with {model} ({len(existing)} existing files)")

    t0 = time.time()
    content_parts: list[str] = []
    reasoning_parts: list[str] = []
    content_length = 0
    last_push = time.monotonic()

    await reporter.update(progress=20, step="Generating...")
    async for delta in provider.stream(
        model=model,
        messages=messages,
        temperature=0.7,
        max_tokens=32000 if is_new_site else 16000,
        json_mode=True,
        reasoning=is_new_site,
    ):
        if delta.reasoning:
            reasoning_parts.append(delta.reasoning)
        if delta.content:
            content_parts.append(delta.content)
            content_length += len(delta.content)

        now = time.monotonic()
        if now - last_push >= settings.stream_update_interval:
            last_push = now
            await reporter.update(
                progress=min(STREAM_PROGRESS_CAP, 20 + content_length // 500),
                step="Writing code..." if content_length else "Thinking...",
                files={REASONING_KEY: "".join(reasoning_parts)},
            )

    raw = "".join(content_parts)
    reasoning = "".join(reasoning_parts)
    print(f"  [modify] Stream finished in {time.time() - t0:.1f}s: "
          f"{len(raw)} chars content, {len(reasoning)} chars reasoning")

    await reporter.update(progress=90, step="Processing generated files...")
    files = parse_model_output(raw)
    validate_output(files, is_first_generation=is_new_site)

    final = files if is_new_site else {**existing, **files}
    changed = sorted(files)
    if is_new_site:
        summary = f"✅ Done! Generated {len(changed)} file(s): {', '.join(changed)}"
    else:
        summary = f"✅ Done! Updated {len(changed)} file(s): {', '.join(changed)}"

    await ctx.finish(
        final,
        summary=summary,
        step="✨ Website updated!" if not is_new_site else "✨ Website generated!",
        reasoning=reasoning or "Generated in a single pass.",
    )
    return final
