"""Shared fixtures: per-test SQLite database, chat context, scripted vendor client."""

import copy
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import pilot.models  # noqa: F401  (registers every table on Base.metadata)
from pilot.core.database import Base, build_engine
from pilot.orchestrator.context import ChatContext, ResourceGroupType
from pilot.tools.registry import ToolRuntime, init_tools


@pytest.fixture(autouse=True, scope="session")
def _registered_tools():
    init_tools()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # One file per test: background writes run on their own connections
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'pilot.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest.fixture
def ctx() -> ChatContext:
    return ChatContext(
        user_id="user-1",
        tenant_id="tenant-1",
        resource_group_type=ResourceGroupType.PROJECT,
        resource_group_id="project-1",
    )


@pytest.fixture
def quick_ctx() -> ChatContext:
    """No resource group, no conversation."""
    return ChatContext(user_id="user-1", tenant_id="tenant-1")


# ── Vendor stand-ins ─────────────────────────────────────────────────

def make_response(
    response_id: str,
    text: str = "",
    calls: Optional[list[dict]] = None,
    input_tokens: int = 10,
    output_tokens: int = 5,
    model: str = "gpt-test",
) -> dict:
    """A Responses API response object with optional text and function calls."""
    output: list[dict] = [
        {
            "type": "function_call",
            "name": c["name"],
            "arguments": c.get("arguments", "{}"),
            "call_id": c.get("call_id", f"call_{i}"),
        }
        for i, c in enumerate(calls or [])
    ]
    if text:
        output.append({
            "type": "message",
            "role": "assistant",
            "content": [{"type": "output_text", "text": text}],
        })
    return {
        "id": response_id,
        "model": model,
        "status": "completed",
        "output": output,
        "usage": {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        },
    }


class ScriptedClient:
    """Returns canned responses in order and records every request."""

    def __init__(self, responses: list[dict], embedding: Optional[list[float]] = None):
        self._responses = list(responses)
        self.requests: list[dict] = []
        self.embedding = embedding or [0.1, 0.2, 0.3]
        self.embedded: list[str] = []

    def _next(self, params: dict) -> dict:
        # params is mutated between turns; keep what was actually sent
        self.requests.append(copy.deepcopy(params))
        if not self._responses:
            raise AssertionError("vendor called more times than scripted")
        return self._responses.pop(0)

    async def create_response(self, params: dict) -> dict:
        return self._next(params)

    async def stream_response(self, params: dict):
        response = self._next(params)
        text = "".join(
            part.get("text", "")
            for item in response["output"] if item.get("type") == "message"
            for part in item.get("content", [])
        )
        for word in text.split(" "):
            if word:
                yield {"type": "response.output_text.delta", "delta": word + " "}
        yield {"type": "response.output_text.done", "text": text}
        yield {"type": "response.completed", "response": response}

    async def create_embedding(self, text: str, model: Optional[str] = None) -> list[float]:
        self.embedded.append(text)
        return self.embedding


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def fetchall(self):
        return list(self._rows)


class FakeSession:
    """Stands in for an AsyncSession where the SQL needs pgvector."""

    def __init__(self, rows=()):
        self.rows = rows
        self.executed: list[tuple] = []
        self.added: list = []

    async def execute(self, stmt, params=None):
        self.executed.append((str(stmt), params))
        return FakeResult(self.rows)

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        pass

    async def commit(self):
        pass

    async def rollback(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSessionFactory:
    def __init__(self, rows=()):
        self.session = FakeSession(rows)

    def __call__(self):
        return self.session


@pytest.fixture
def runtime_factory(session_factory):
    def _build(client) -> ToolRuntime:
        return ToolRuntime(client=client, session_factory=session_factory)
    return _build
