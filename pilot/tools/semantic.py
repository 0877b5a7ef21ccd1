"""
Nearest-neighbour search over pgvector tables filled by the indexing pipeline.

Each resource group (project, template, community template) keeps its own
vector table joined to the table holding the indexed resources. Queries are
tenant scoped, ordered by negative inner product distance and limited.
"""

import logging
from dataclasses import dataclass

from pydantic import BaseModel, Field
from sqlalchemy import bindparam, text

from ..core.database import session_scope
from ..orchestrator.context import ChatContext, ResourceGroupType, ResourceType
from ..services.llm import vector_literal
from .registry import ToolError, ToolRuntime

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
MAX_LIMIT = 50
CURRENT_SCOPE = "current"


@dataclass(frozen=True)
class VectorSource:
    vector_table: str
    resource_table: str
    resource_column: str   # FK from vector row to resource row
    group_column: str      # FK from vector row to its resource group


class SearchArgs(BaseModel):
    query: str = ""
    limit: int = DEFAULT_LIMIT
    scope: list[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    title: str
    content: str
    distance: float


def resolve_scope(ctx: ChatContext, scope: list[str], resource_type: ResourceType) -> list[str]:
    """Replace "current" with the open resource id, or drop it if the open resource is another type."""
    resolved = []
    for resource_id in scope:
        if resource_id == CURRENT_SCOPE:
            current = ctx.current_resource(resource_type)
            if current:
                resolved.append(current)
        else:
            resolved.append(resource_id)
    return resolved


def clamp_limit(limit: int) -> int:
    if limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def build_search_sql(source: VectorSource, with_query: bool, with_scope: bool):
    distance = "v.embedding <#> CAST(CAST(:query_vec AS text) AS vector)" if with_query else "0.0"
    sql = f"""
        SELECT v.content, {distance} AS distance, r.title
        FROM {source.vector_table} v
        JOIN {source.resource_table} r ON r.id = v.{source.resource_column}
        WHERE v.tenant_id = :tenant_id AND v.{source.group_column} = :group_id
    """
    if with_scope:
        sql += f" AND v.{source.resource_column} IN :scope"
    sql += " ORDER BY distance ASC LIMIT :limit"

    stmt = text(sql)
    if with_scope:
        stmt = stmt.bindparams(bindparam("scope", expanding=True))
    return stmt


async def semantic_search(
    ctx: ChatContext,
    runtime: ToolRuntime,
    sources: dict[ResourceGroupType, VectorSource],
    resource_type: ResourceType,
    args: SearchArgs,
) -> list[SearchResult]:
    if not ctx.resource_group_id:
        raise ToolError("cannot perform semantic search without knowing project/template id")

    source = sources[ctx.resource_group_type]
    scope = resolve_scope(ctx, args.scope, resource_type)
    query = args.query.strip()

    params: dict = {
        "tenant_id": ctx.tenant_id,
        "group_id": ctx.resource_group_id,
        "limit": clamp_limit(args.limit),
    }
    if query:
        embedding = await runtime.client.create_embedding(query)
        params["query_vec"] = vector_literal(embedding)
    if scope:
        params["scope"] = scope

    stmt = build_search_sql(source, with_query=bool(query), with_scope=bool(scope))

    async with session_scope(runtime.session_factory) as session:
        result = await session.execute(stmt, params)
        rows = result.fetchall()

    logger.info(
        "Semantic search %s: %d hits (group=%s scope=%d)",
        source.vector_table, len(rows), ctx.resource_group_id, len(scope),
    )
    return [
        SearchResult(content=row[0] or "", distance=float(row[1] or 0.0), title=row[2] or "")
        for row in rows
    ]


def search_parameters(query_hint: str, limit_hint: str, scope_hint: str) -> dict:
    return {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": query_hint},
            "limit": {"type": "number", "description": limit_hint},
            "scope": {
                "type": "array",
                "items": {"type": "string"},
                "description": scope_hint,
            },
        },
        "required": ["query", "limit"],
    }
