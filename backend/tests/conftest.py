"""Shared fixtures: a scripted chat provider and in-memory stores."""

from unittest.mock import AsyncMock

import pytest

from promptsite.config import Settings
from promptsite.llm import StreamDelta
from promptsite.orchestrator import GenerationOrchestrator
from promptsite.stores import (
    InMemoryChatStore,
    InMemoryJobStore,
    InMemoryProfileStore,
    InMemoryProjectStore,
)
from promptsite.usage import UsageService
from promptsite.worker import JobQueue


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeProvider:
    """
    Chat provider double. `complete` is an AsyncMock so tests can script
    return values / side effects; `stream` replays `stream_chunks`.
    """

    fast_model = "fast-model"
    reasoning_model = "reasoning-model"

    def __init__(self):
        self.complete = AsyncMock(return_value="")
        self.stream_chunks: list[StreamDelta] = []
        self.stream_error: Exception | None = None
        self.stream_calls: list[dict] = []

    async def stream(self, **kwargs):
        self.stream_calls.append(kwargs)
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error:
            raise self.stream_error


def page_html(title: str) -> str:
    return (
        "<!DOCTYPE html>\n<html><head><title>" + title + "</title></head>"
        "<body><header><nav>ELEVATE</nav></header><main><h1>" + title + "</h1>"
        "<p>Welcome to ELEVATE, where we build things that last.</p></main></body>\n</html>"
    )


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        stream_update_interval=0.0,
        page_batch_size=4,
    )


@pytest.fixture
def jobs():
    return InMemoryJobStore()


@pytest.fixture
def projects():
    return InMemoryProjectStore()


@pytest.fixture
def chat():
    return InMemoryChatStore()


@pytest.fixture
def profiles():
    return InMemoryProfileStore()


@pytest.fixture
def usage(profiles):
    return UsageService(profiles)


@pytest.fixture
def orchestrator(provider, jobs, projects, chat, usage, settings):
    return GenerationOrchestrator(
        provider=provider,
        jobs=jobs,
        projects=projects,
        chat=chat,
        usage=usage,
        queue=JobQueue(worker_count=1),
        settings=settings,
    )
