"""
Page generator — generates ONE complete HTML page per model call.
All calls receive the same design spec and navigation list; pages after the
home page also see an excerpt of it so headers/footers stay consistent.
"""

import re
import time

from promptsite.llm import ChatProvider
from promptsite.page_planner import build_nav_links, page_filename, page_label
from promptsite.repair import strip_code_fences


HOME_EXCERPT_LIMIT = 2000

PAGE_SYSTEM_PROMPT = """You are an expert front-end developer building one page of a multi-page static website. You generate ONE page at a time.

## Rules
1. Output ONLY the raw HTML document. No markdown fences. No explanation. No JSON.
2. Start with `<!DOCTYPE html>` and end with `</html>`.
3. Use Tailwind CSS via CDN: `<script src="https://cdn.tailwindcss.com"></script>`.
4. Load the fonts named in the design spec from Google Fonts.
5. Follow the design spec EXACTLY: same hex colors, fonts, radius, shadows, spacing.
6. Include the shared header navigation with EVERY link provided, in the given order, using the given hrefs (relative .html files). Highlight the current page.
7. Include a footer that repeats the navigation links.
8. Responsive: mobile-first, with a working hamburger menu (small inline <script> is fine).
9. Realistic copy for the business described. No lorem ipsum.
10. Images: https://images.unsplash.com/ URLs or inline SVG icons. Never placeholder services.
11. Use real UTF-8 characters. Do not escape quotes or newlines."""


_DOCTYPE_RE = re.compile(r"^\s*<!doctype\s+html", re.IGNORECASE)
_HTML_CLOSE_RE = re.compile(r"</html>\s*$", re.IGNORECASE)


def ensure_html_document(content: str) -> str:
    """Coerce model output into a full document (doctype first, </html> last)."""
    content = content.strip()
    if not _DOCTYPE_RE.match(content):
        content = "<!DOCTYPE html>\n" + content
    if not _HTML_CLOSE_RE.search(content):
        content = content + "\n</html>"
    return content


def _build_page_prompt(
    prompt: str,
    page_name: str,
    page_names: list[str],
    design_spec: str,
    home_excerpt: str | None,
) -> str:
    nav_lines = "\n".join(
        f"  - {link['label']}: {link['href']}" for link in build_nav_links(page_names)
    )
    text = (
        f"Website request: {prompt}\n\n"
        f"Generate the `{page_label(page_name)}` page (file: {page_filename(page_name)}).\n\n"
        f"DESIGN SPEC (follow exactly):\n{design_spec}\n\n"
        f"NAVIGATION LINKS (use all of them, in this order):\n{nav_lines}\n"
    )
    if home_excerpt:
        text += (
            "\nHOME PAGE EXCERPT — reuse its <head>, header and footer markup and its styling "
            "conventions so this page looks like the same site:\n"
            f"```html\n{home_excerpt[:HOME_EXCERPT_LIMIT]}\n```\n"
        )
    text += (
        "\nOutput ONLY the raw HTML document, starting with <!DOCTYPE html> and ending with </html>."
    )
    return text


async def generate_page(
    provider: ChatProvider,
    prompt: str,
    page_name: str,
    page_names: list[str],
    design_spec: str,
    home_excerpt: str | None = None,
) -> dict:
    """
    Generate one HTML page.

    Returns:
        {
            "name": str,
            "filepath": str,
            "content": str or None,
            "success": bool,
            "error": str or None,
        }
    """
    filepath = page_filename(page_name)
    t0 = time.time()

    try:
        raw = await provider.complete(
            model=provider.fast_model,
            messages=[
                {"role": "system", "content": PAGE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": _build_page_prompt(prompt, page_name, page_names, design_spec, home_excerpt),
                },
            ],
            temperature=0.7,
            max_tokens=8000,
        )
        cleaned = strip_code_fences(raw or "")
        if not cleaned:
            raise ValueError("model returned an empty page")
        content = ensure_html_document(cleaned)

        print(f"  [page-gen] {filepath} — {time.time() - t0:.1f}s, {len(content)} chars")
        return {"name": page_name, "filepath": filepath, "content": content, "success": True, "error": None}

    except Exception as e:
        print(f"  [page-gen] {filepath} FAILED in {time.time() - t0:.1f}s: {e}")
        return {"name": page_name, "filepath": filepath, "content": None, "success": False, "error": str(e)}
