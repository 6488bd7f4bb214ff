"""
Quick edits: literal find/replace requests ("change ELEVATE to NovaCorp")
handled without calling the model.
"""

import re

from pydantic import BaseModel

from promptsite.models import REASONING_KEY


MAX_TOKEN_LENGTH = 50
SUBSTANTIAL_FILE_LENGTH = 100

_Q_OPEN = "[\"'“‘]"
_Q_CLOSE = "[\"'”’]"
_POLITE = r"(?:(?:please|can you|could you|would you)\s+)?"

# Most specific first; the first template that matches wins
QUICK_EDIT_PATTERNS = [
    re.compile(
        rf"\b(?:change|replace|rename|update|switch)\s+(?:the\s+\w+\s+)?{_Q_OPEN}(.+?){_Q_CLOSE}"
        rf"\s+(?:to|with|into|for)\s+{_Q_OPEN}(.+?){_Q_CLOSE}",
        re.IGNORECASE,
    ),
    re.compile(rf"^\s*{_POLITE}replace\s+(.+?)\s+with\s+(.+?)\s*$", re.IGNORECASE),
    re.compile(
        rf"^\s*{_POLITE}(?:change|rename|update|switch)\s+(?:the\s+)?(?:(?:text|word|name|title|heading)\s+)?"
        r"(.+?)\s+(?:to|into)\s+(.+?)\s*$",
        re.IGNORECASE,
    ),
    re.compile(
        rf"^\s*(?:{_Q_OPEN}(.+?){_Q_CLOSE}|([^\s\"']+))\s+to\s+(?:{_Q_OPEN}(.+?){_Q_CLOSE}|([^\s\"']+))\s*[.!]?\s*$",
        re.IGNORECASE,
    ),
]


class QuickEdit(BaseModel):
    old_text: str
    new_text: str


class QuickEditResult(BaseModel):
    files: dict[str, str]
    replacements: int
    files_changed: int


def _clean_token(token: str | None) -> str:
    token = (token or "").strip().rstrip(".!?").strip()
    if len(token) >= 2 and token[0] in "\"'“‘" and token[-1] in "\"'”’":
        token = token[1:-1]
    return token.strip()


def _groups(match: re.Match) -> tuple[str, str]:
    found = [g for g in match.groups() if g is not None]
    return found[0], found[1]


def detect_quick_edit(prompt: str) -> QuickEdit | None:
    for pattern in QUICK_EDIT_PATTERNS:
        match = pattern.search(prompt or "")
        if not match:
            continue
        old, new = (_clean_token(t) for t in _groups(match))
        if not old or not new:
            return None
        if len(old) >= MAX_TOKEN_LENGTH or len(new) >= MAX_TOKEN_LENGTH:
            return None
        return QuickEdit(old_text=old, new_text=new)
    return None


def has_site_files(files: dict[str, str] | None) -> bool:
    """True when the project has any non-reserved file, however small."""
    return any(name != REASONING_KEY for name in (files or {}))


def has_substantial_content(files: dict[str, str] | None) -> bool:
    """True when the project already has a real site (any non-reserved file over 100 chars)."""
    return any(
        name != REASONING_KEY and isinstance(content, str) and len(content) > SUBSTANTIAL_FILE_LENGTH
        for name, content in (files or {}).items()
    )


def apply_quick_edit(files: dict[str, str], edit: QuickEdit) -> QuickEditResult:
    pattern = re.compile(re.escape(edit.old_text), re.IGNORECASE)
    updated = {}
    replacements = 0
    files_changed = 0
    for name, content in files.items():
        if name == REASONING_KEY:
            continue
        # Function replacement keeps new_text literal (no \1 expansion)
        new_content, count = pattern.subn(lambda _m: edit.new_text, content)
        updated[name] = new_content
        if count:
            replacements += count
            files_changed += 1
    print(f"  [quick-edit] {edit.old_text!r} -> {edit.new_text!r}: "
          f"{replacements} replacement(s) in {files_changed} file(s)")
    return QuickEditResult(files=updated, replacements=replacements, files_changed=files_changed)
