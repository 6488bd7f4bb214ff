"""
Output repair: turn raw, possibly truncated model text into a
{filename: content} mapping.

Strategies, in order:
  1. direct    - strip code fences, json.loads
  2. repaired  - un-escape \\< \\>, escape raw control chars inside strings,
                 cut trailing garbage / close a truncated object, retry
  3. extracted - regex scan for locally well-formed "<name>.html": "..." entries
  4. bare_html - the whole thing is an HTML document -> index.html
  5. give up   - OutputParseError
"""

import json
import re
from typing import NamedTuple

from promptsite.errors import OutputParseError
from promptsite.models import REASONING_KEY


_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?|```")

# Literal backslash sequences that leak through from JSON-habituated output.
# One left-to-right pass, so "\\\\n" collapses to "\\n" and stops there.
_LITERAL_ESCAPE_RE = re.compile(r'\\(\\|n|"|<|>)')
_LITERAL_ESCAPES = {"\\": "\\", "n": "\n", '"': '"', "<": "<", ">": ">"}

_JSON_ESCAPE_RE = re.compile(r'\\(["\\/bfnrt]|u[0-9a-fA-F]{4})')
_JSON_ESCAPES = {'"': '"', "\\": "\\", "/": "/", "b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t"}

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

_ENTRY_RE = re.compile(
    r'"([\w\-./]+?\.(?:html|css|js))"\s*:\s*"((?:[^"\\]|\\.)*)"',
    re.DOTALL,
)
_HTML_DOC_RE = re.compile(r"<!doctype\s+html|<html", re.IGNORECASE)

_CLOSERS = {"{": "}", "[": "]"}


class RepairResult(NamedTuple):
    files: dict[str, str]
    strategy: str  # direct | repaired | extracted | bare_html


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```json, ```html, ```) and surrounding whitespace."""
    return _FENCE_RE.sub("", text).strip()


def unescape_literal_sequences(text: str) -> str:
    """Turn literal \\n, \\", \\<, \\>, \\\\ into the characters they stand for."""
    return _LITERAL_ESCAPE_RE.sub(lambda m: _LITERAL_ESCAPES[m.group(1)], text)


def _unescape_json_string(value: str) -> str:
    def _sub(m):
        seq = m.group(1)
        if seq.startswith("u"):
            return chr(int(seq[1:], 16))
        return _JSON_ESCAPES[seq]
    return _JSON_ESCAPE_RE.sub(_sub, value)


def _as_file_map(parsed) -> dict[str, str] | None:
    if not isinstance(parsed, dict):
        return None
    # {"files": {...}} wrapper
    if len(parsed) == 1 and isinstance(parsed.get("files"), dict):
        parsed = parsed["files"]
    return {k: v for k, v in parsed.items() if isinstance(k, str) and isinstance(v, str)}


def _try_parse(text: str) -> dict[str, str] | None:
    try:
        return _as_file_map(json.loads(text))
    except (ValueError, TypeError):
        return None


def _escape_control_chars(text: str) -> str:
    """
    Re-escape raw newline / CR / tab inside JSON strings and drop other raw
    control characters. Whitespace between tokens is left alone.
    """
    out = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ch in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[ch])
                continue
            elif ord(ch) < 0x20:
                continue
        else:
            if ch == '"':
                in_string = True
            elif ord(ch) < 0x20 and ch not in _CONTROL_ESCAPES:
                continue
        out.append(ch)
    return "".join(out)


def _close_truncated(text: str) -> str:
    """Terminate an open string and close every open object/array."""
    stack = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'
    text = text.rstrip()
    if text.endswith(","):
        text = text[:-1]
    elif text.endswith(":"):
        text += "null"
    return text + "".join(_CLOSERS[c] for c in reversed(stack))


def _light_repair(text: str) -> list[str]:
    repaired = _escape_control_chars(text.replace("\\<", "<").replace("\\>", ">"))
    candidates = [repaired]
    if not repaired.rstrip().endswith("}"):
        last = repaired.rfind("}")
        if last > 0:
            candidates.append(repaired[: last + 1])
        candidates.append(_close_truncated(repaired))
    return candidates


def _extract_entries(text: str) -> dict[str, str]:
    files = {}
    for m in _ENTRY_RE.finditer(text):
        content = _unescape_json_string(m.group(2))
        if content.strip():
            files[m.group(1)] = content
    return files


def _finish(files: dict[str, str], strategy: str) -> RepairResult:
    cleaned = {
        name: unescape_literal_sequences(content)
        for name, content in files.items()
        if name != REASONING_KEY
    }
    return RepairResult(cleaned, strategy)


def repair_file_map(raw: str) -> RepairResult:
    """Best-effort parse; raises OutputParseError only when nothing is salvageable."""
    text = strip_code_fences(raw or "")

    files = _try_parse(text)
    if files is not None:
        return _finish(files, "direct")

    for candidate in _light_repair(text):
        files = _try_parse(candidate)
        if files is not None:
            print(f"  [repair] Parsed after light repair ({len(files)} files)")
            return _finish(files, "repaired")

    files = _extract_entries(text)
    if files:
        print(f"  [repair] Recovered {len(files)} files by entry extraction")
        return _finish(files, "extracted")

    if _HTML_DOC_RE.search(text):
        print("  [repair] Output is a bare HTML document, using it as index.html")
        return _finish({"index.html": text}, "bare_html")

    print(f"  [repair] Parse FAILED. Raw output length: {len(raw or '')} chars")
    print(f"  [repair] Raw output starts with: {(raw or '')[:200]!r}")
    raise OutputParseError("Could not parse the generated website files. Please try again.")


def parse_model_output(raw: str) -> dict[str, str]:
    return repair_file_map(raw).files
