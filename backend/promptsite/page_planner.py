"""
Page planner: decides which pages a new site needs.

One cheap model call returns a JSON array of page slugs; if anything goes
wrong the keyword fallback answers instead. Never raises.
"""

import json
import re

from promptsite.llm import ChatProvider


MAX_PAGES = 10

# Prompt keyword -> canonical page slug (checked independently, in this order)
PAGE_KEYWORDS = {
    "about": "about",
    "contact": "contact",
    "pricing": "pricing",
    "blog": "blog",
    "technology": "technology",
    "feature": "features",
    "team": "team",
    "service": "services",
    "portfolio": "portfolio",
    "doc": "docs",
}

_HOME_ALIASES = {"home", "index", "homepage", "home-page", "landing", "main"}

_EXPLICIT_PAGES_RE = re.compile(r"\bpages?\s*:\s*([^\n.;]+)", re.IGNORECASE)
_LIST_SPLIT_RE = re.compile(r",|&|\band\b", re.IGNORECASE)
_ARRAY_RE = re.compile(r"\[[^\[\]]*\]")

PLANNER_SYSTEM_PROMPT = """You are a website information architect. Decide which pages a website needs.

Return ONLY a JSON array of page names. Rules:
- lowercase, words joined with hyphens (e.g. "case-studies")
- always include "home" as the FIRST entry
- at most 10 pages
- only pages the request actually calls for; a simple landing page is just ["home"]

Example: ["home", "about", "services", "contact"]"""


def normalize_page_name(name: str) -> str:
    slug = re.sub(r"\.html?$", "", str(name).strip().lower())
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return "home" if slug in _HOME_ALIASES else slug


def normalize_page_names(names, max_pages: int = MAX_PAGES) -> list[str]:
    """Slugify, de-duplicate, force "home" first, cap the length."""
    result = ["home"]
    for name in names or []:
        slug = normalize_page_name(name)
        if slug and slug not in result:
            result.append(slug)
    return result[: max(1, min(max_pages, MAX_PAGES))]


def extract_page_names_fallback(prompt: str, max_pages: int = MAX_PAGES) -> list[str]:
    explicit = _EXPLICIT_PAGES_RE.search(prompt or "")
    if explicit:
        names = [p for p in _LIST_SPLIT_RE.split(explicit.group(1)) if p.strip()]
        if names:
            return normalize_page_names(names, max_pages)

    lowered = (prompt or "").lower()
    names = [page for keyword, page in PAGE_KEYWORDS.items() if keyword in lowered]
    return normalize_page_names(names, max_pages)


def _parse_page_array(text: str) -> list[str] | None:
    match = _ARRAY_RE.search(text or "")
    if not match:
        return None
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, list) or not parsed:
        return None
    return [str(p) for p in parsed]


async def extract_page_names_with_ai(
    provider: ChatProvider,
    prompt: str,
    max_pages: int = MAX_PAGES,
    fallback=extract_page_names_fallback,
) -> list[str]:
    try:
        raw = await provider.complete(
            model=provider.fast_model,
            messages=[
                {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
                {"role": "user", "content": f"Website request: {prompt}"},
            ],
            temperature=0.3,
            max_tokens=200,
        )
        names = _parse_page_array(raw)
        if names:
            pages = normalize_page_names(names, max_pages)
            print(f"  [planner] Planned {len(pages)} page(s): {pages}")
            return pages
        print("  [planner] No usable page list in model output, using keyword fallback")
    except Exception as e:
        print(f"  [planner] Model call failed: {e}, using keyword fallback")
    return fallback(prompt, max_pages)


def page_filename(name: str) -> str:
    return "index.html" if name == "home" else f"{name}.html"


def page_label(name: str) -> str:
    return name.replace("-", " ").title()


def build_nav_links(page_names: list[str]) -> list[dict]:
    return [
        {"name": name, "label": page_label(name), "href": page_filename(name)}
        for name in page_names
    ]
