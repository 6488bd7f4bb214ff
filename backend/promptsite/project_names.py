"""Short project names from a website description."""

import re

from promptsite.llm import ChatProvider


DEFAULT_NAME = "New Project"
MAX_NAME_LENGTH = 50

NAME_SYSTEM_PROMPT = (
    "You are a creative assistant that generates concise, professional project names. "
    "Given a website description, create a short, catchy project name (2-4 words max). "
    "Return ONLY the project name, nothing else."
)


def clean_project_name(name: str) -> str:
    name = re.sub(r"^[\"']|[\"']$", "", (name or "").strip())
    name = re.sub(r"[^\w\s-]", "", name)
    name = re.sub(r"\s+", " ", name)
    return name.strip()[:MAX_NAME_LENGTH].strip()


def fallback_project_name(prompt: str) -> str:
    words = (prompt or "").split()[:3]
    name = " ".join(w[:1].upper() + w[1:].lower() for w in words)
    return name[:MAX_NAME_LENGTH] or DEFAULT_NAME


async def generate_project_name(provider: ChatProvider, prompt: str) -> str:
    try:
        raw = await provider.complete(
            model=provider.fast_model,
            messages=[
                {"role": "system", "content": NAME_SYSTEM_PROMPT},
                {"role": "user", "content": f'Generate a project name for this website: "{prompt}"'},
            ],
            temperature=0.7,
            max_tokens=20,
        )
        return clean_project_name(raw) or DEFAULT_NAME
    except Exception as e:
        print(f"  [project-name] Model call failed: {e}, using prompt words")
        return fallback_project_name(prompt)
