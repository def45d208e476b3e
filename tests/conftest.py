"""
Shared fixtures for the statement archive tests.

Time never comes from the wall clock here: every service is built with a
FrozenClock that tests move forward explicitly.
"""

import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from speechkarma.core import (
    AugmentationConfig,
    OpenRouterClient,
    StatementConfig,
    StatementService,
)
from speechkarma.db import InMemoryStatementStore
from speechkarma.observability import MetricsCollector
from speechkarma.schemas import (
    AuthorSummary,
    CreateStatementCommand,
    PartySummary,
    PoliticianSummary,
)


T0 = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def completion_body(content, model: str = "openai/gpt-4o-mini") -> dict:
    """A chat completions response body carrying `content`."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return {
        "id": "gen-test",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 40, "completion_tokens": 12, "total_tokens": 52},
    }


def make_openrouter_client(handler, api_key: str = "test-key") -> OpenRouterClient:
    """OpenRouterClient whose HTTP traffic goes to `handler` instead of the network."""
    return OpenRouterClient(
        api_key=api_key,
        base_url="https://openrouter.test/api/v1",
        site_url="https://speechkarma.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def party():
    return PartySummary(id=uuid4(), name="Civic Platform", abbreviation="CP", color_hex="#F68B1F")


@pytest.fixture
def politician(party):
    return PoliticianSummary(id=uuid4(), first_name="Anna", last_name="Kowalska", party=party)


@pytest.fixture
def author():
    return AuthorSummary(id=uuid4(), display_name="Original Author")


@pytest.fixture
def other_user():
    return AuthorSummary(id=uuid4(), display_name="Someone Else")


@pytest.fixture
def store(politician, author, other_user):
    store = InMemoryStatementStore()
    store.save_politician(politician)
    store.save_profile(author)
    store.save_profile(other_user)
    return store


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def service(store, clock, metrics):
    return StatementService(store, clock=clock, metrics=metrics)


@pytest.fixture
def make_command(politician):
    """Factory for valid CreateStatementCommands."""
    def _make(
        text: str = "We will build 500,000 new homes by the end of this term.",
        occurred_at="2026-03-15T09:30:00Z",
        politician_id=None,
        **extra,
    ) -> CreateStatementCommand:
        return CreateStatementCommand.model_validate({
            "politician_id": str(politician_id or politician.id),
            "statement_text": text,
            "occurred_at": occurred_at,
            **extra,
        })
    return _make


@pytest.fixture
def augmented_config():
    return StatementConfig(
        augmentation=AugmentationConfig(enabled=True, api_key="test-key"),
    )
