"""
Responses API client.

Features:
  - Retry with exponential backoff + jitter (handles 429, 500, 502, 503, 504)
  - Streaming support (SSE async generator of typed events)
  - Embeddings for semantic search
  - Reusable client (connection pooling), per-tenant credentials
  - Structured logging
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.flags import get_flags
from ..models.provider import AiProvider

logger = logging.getLogger(__name__)

VENDOR_NAME = "openai"


class VendorError(Exception):
    """The vendor API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderNotConfigured(Exception):
    """No usable vendor credentials for the tenant."""


# ── Reusable client (connection pool) ────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10, read=120, write=30, pool=10),
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
        )
    return _client


async def close_client():
    """Close the shared HTTP client. Call on app shutdown."""
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Retry logic ──────────────────────────────────────────────────────

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_RETRIES = 3
BASE_DELAY = 1.0
MAX_DELAY = 16.0


def _backoff(attempt: int) -> float:
    return min(MAX_DELAY, BASE_DELAY * (2 ** attempt) + random.uniform(0, 1))


def _retry_after(header: Optional[str], attempt: int) -> float:
    """Seconds from a Retry-After header; HTTP-date or junk falls back to backoff."""
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    return _backoff(attempt)


async def _retry_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Execute request with exponential backoff + jitter."""
    last_exc: Optional[Exception] = None

    for attempt in range(MAX_RETRIES + 1):
        try:
            resp = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            last_exc = e
            if attempt == MAX_RETRIES:
                break
            delay = _backoff(attempt)
            logger.warning(
                "Vendor %s (attempt %d/%d), retrying in %.1fs",
                type(e).__name__, attempt + 1, MAX_RETRIES + 1, delay,
            )
            await asyncio.sleep(delay)
            continue

        if resp.status_code not in RETRYABLE_STATUS:
            if resp.status_code >= 400:
                logger.error("Vendor API error %d: %s", resp.status_code, resp.text[:500])
                raise VendorError(
                    f"vendor returned {resp.status_code}", status_code=resp.status_code
                )
            return resp

        last_exc = VendorError(
            f"vendor returned {resp.status_code}", status_code=resp.status_code
        )
        if attempt == MAX_RETRIES:
            break
        delay = _retry_after(resp.headers.get("retry-after"), attempt)
        logger.warning(
            "Vendor %d (attempt %d/%d), retrying in %.1fs",
            resp.status_code, attempt + 1, MAX_RETRIES + 1, delay,
        )
        await asyncio.sleep(delay)

    if isinstance(last_exc, VendorError):
        raise last_exc
    raise VendorError(f"vendor request failed after retries: {last_exc}") from last_exc


# ── Response helpers ─────────────────────────────────────────────────

def output_text(response: dict) -> str:
    """Concatenate every output_text part of every message item."""
    parts = []
    for item in response.get("output") or []:
        if item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if content.get("type") == "output_text":
                parts.append(content.get("text", ""))
    return "".join(parts)


def function_calls(output_items: list[dict]) -> list[dict]:
    """Tool-call requests in original order."""
    return [item for item in output_items or [] if item.get("type") == "function_call"]


def usage_of(response: dict) -> dict:
    usage = response.get("usage") or {}
    return {
        "input_tokens": int(usage.get("input_tokens") or 0),
        "output_tokens": int(usage.get("output_tokens") or 0),
        "total_tokens": int(usage.get("total_tokens") or 0),
    }


def vector_literal(embedding: list[float]) -> str:
    """pgvector text form: [0.1,0.2,...]"""
    return "[" + ",".join(repr(float(v)) for v in embedding) + "]"


# ── Client ───────────────────────────────────────────────────────────

@dataclass
class ProviderConfig:
    api_key: str
    project_id: str = ""
    vector_stores: dict[str, str] = field(default_factory=dict)


class ResponsesClient:
    """Short-lived per-request handle. Shares the process-wide connection pool."""

    def __init__(self, api_key: str, base_url: Optional[str] = None, project_id: str = ""):
        self.api_key = api_key
        self.base_url = (base_url or get_settings().openai_base_url).rstrip("/")
        self.project_id = project_id

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.project_id:
            headers["OpenAI-Project"] = self.project_id
        return headers

    async def create_response(self, params: dict[str, Any]) -> dict:
        """Blocking call. Returns the full response object."""
        start = time.monotonic()
        resp = await _retry_request(
            _get_client(), "POST", f"{self.base_url}/responses",
            json=params, headers=self._headers(),
        )
        data = resp.json()
        usage = usage_of(data)
        logger.info(
            "Vendor %s: %dms | in=%d out=%d tokens | model=%s",
            "tool_call" if function_calls(data.get("output", [])) else "text",
            int((time.monotonic() - start) * 1000),
            usage["input_tokens"], usage["output_tokens"], data.get("model", params.get("model")),
        )
        return data

    async def stream_response(self, params: dict[str, Any]) -> AsyncGenerator[dict, None]:
        """
        Streaming call. Yields each SSE event as a dict with a "type" key, e.g.
        response.output_text.delta / response.output_text.done / response.completed.

        No retry: once a delta is yielded it may already be on the wire.
        """
        payload = dict(params)
        payload["stream"] = True
        start = time.monotonic()

        logger.info("Vendor stream start: model=%s", payload.get("model"))

        try:
            async with _get_client().stream(
                "POST", f"{self.base_url}/responses", json=payload, headers=self._headers(),
            ) as resp:
                if resp.status_code >= 400:
                    body = (await resp.aread()).decode("utf-8", errors="replace")[:500]
                    logger.error("Vendor stream error %d: %s", resp.status_code, body)
                    raise VendorError(
                        f"vendor returned {resp.status_code}", status_code=resp.status_code
                    )

                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data_str = line[5:].strip()
                    if not data_str or data_str == "[DONE]":
                        continue
                    try:
                        event = json.loads(data_str)
                    except json.JSONDecodeError:
                        logger.warning("Vendor stream: skipping malformed event %r", data_str[:200])
                        continue

                    event_type = event.get("type")
                    if event_type in ("error", "response.failed"):
                        raise VendorError(f"vendor stream failed: {event}")
                    yield event
        except (httpx.TimeoutException, httpx.TransportError) as e:
            logger.warning("Vendor stream network error: %s", e)
            raise VendorError(f"vendor stream interrupted: {e}") from e

        logger.info("Vendor stream done: %dms", int((time.monotonic() - start) * 1000))

    async def create_embedding(self, text: str, model: Optional[str] = None) -> list[float]:
        resp = await _retry_request(
            _get_client(), "POST", f"{self.base_url}/embeddings",
            json={"model": model or get_settings().embedding_model, "input": text},
            headers=self._headers(),
        )
        data = resp.json().get("data") or []
        if not data:
            raise VendorError("failed to generate embedding for a query message")
        return data[0]["embedding"]


# ── Per-tenant construction ──────────────────────────────────────────

def _parse_provider_config(raw: Any) -> ProviderConfig:
    if isinstance(raw, str):
        raw = json.loads(raw)
    raw = raw or {}

    vector_stores = raw.get("vector_stores") or {}
    if isinstance(vector_stores, str):
        vector_stores = json.loads(vector_stores)

    return ProviderConfig(
        api_key=raw.get("openai_api_key", ""),
        project_id=raw.get("openai_project_id", ""),
        vector_stores=vector_stores,
    )


async def get_provider_config(db: AsyncSession, tenant_id: str) -> ProviderConfig:
    """Credentials from the tenant's active provider row, or the environment key."""
    if not get_flags().use_tenant_ai_providers:
        settings = get_settings()
        if not settings.openai_api_key:
            raise ProviderNotConfigured("OPENAI_API_KEY is not set")
        return ProviderConfig(api_key=settings.openai_api_key)

    result = await db.execute(
        select(AiProvider.config_schema).where(
            AiProvider.tenant_id == tenant_id,
            AiProvider.name == VENDOR_NAME,
            AiProvider.is_active.is_(True),
        )
    )
    raw = result.scalars().first()
    if raw is None:
        raise ProviderNotConfigured(f"No active {VENDOR_NAME} provider for tenant {tenant_id}")

    config = _parse_provider_config(raw)
    if not config.api_key:
        raise ProviderNotConfigured(f"{VENDOR_NAME} provider for tenant {tenant_id} has no API key")
    return config


async def get_vendor_client(
    db: AsyncSession, tenant_id: str
) -> tuple[ResponsesClient, ProviderConfig]:
    config = await get_provider_config(db, tenant_id)
    return ResponsesClient(config.api_key, project_id=config.project_id), config
