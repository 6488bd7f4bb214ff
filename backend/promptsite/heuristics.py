"""
Prompt heuristics behind one narrow interface.

The orchestrator only sees PromptHeuristics; RegexHeuristics is the
pattern-matching default and can be swapped for a model-based classifier.
"""

from typing import Protocol

from promptsite.modification import ModificationType, classify_modification
from promptsite.page_planner import extract_page_names_fallback
from promptsite.quick_edit import QuickEdit, detect_quick_edit


class PromptHeuristics(Protocol):
    def detect_quick_edit(self, prompt: str) -> QuickEdit | None: ...

    def classify_modification(self, prompt: str) -> ModificationType: ...

    def fallback_page_names(self, prompt: str, max_pages: int) -> list[str]: ...


class RegexHeuristics:
    def detect_quick_edit(self, prompt: str) -> QuickEdit | None:
        return detect_quick_edit(prompt)

    def classify_modification(self, prompt: str) -> ModificationType:
        return classify_modification(prompt)

    def fallback_page_names(self, prompt: str, max_pages: int) -> list[str]:
        return extract_page_names_fallback(prompt, max_pages)
