"""
Diagram search tool. Diagrams are indexed as a textual node/edge listing;
the output starts with a legend so the model can read that listing.
"""

from ..orchestrator.context import ChatContext, ResourceGroupType, ResourceType
from .registry import tool, ToolRuntime
from .semantic import (
    SearchArgs,
    SearchResult,
    VectorSource,
    search_parameters,
    semantic_search,
)

DIAGRAM_SOURCES = {
    ResourceGroupType.PROJECT: VectorSource(
        vector_table="project_diagram_vectors",
        resource_table="project_diagrams",
        resource_column="diagram_id",
        group_column="project_id",
    ),
    ResourceGroupType.TEMPLATE: VectorSource(
        vector_table="diagram_template_vectors",
        resource_table="diagram_templates",
        resource_column="diagram_template_id",
        group_column="project_template_id",
    ),
    ResourceGroupType.COMMUNITY: VectorSource(
        vector_table="cm_diagram_template_vectors",
        resource_table="cm_diagram_templates",
        resource_column="cm_diagram_template_id",
        group_column="cm_project_template_id",
    ),
}

DIAGRAM_LEGEND = (
    "How to read diagram:\n"
    "[<group>] #<x-position order L->R> <node label> (icon filename) // node definition\n"
    "--> #<target order> <target label> // connection to another node\n"
    "--<connection icon>--> #<order> <label>\n\n"
)

MISSING_CONTENT_NOTE = "Note: If some expected content is missing, it may not have been indexed yet.\n\n\n"


async def search_diagrams(
    ctx: ChatContext, runtime: ToolRuntime, args: SearchArgs
) -> list[SearchResult]:
    return await semantic_search(ctx, runtime, DIAGRAM_SOURCES, ResourceType.DIAGRAM, args)


def format_diagram_results(results: list[SearchResult]) -> str:
    if not results:
        return ""

    parts = [DIAGRAM_LEGEND]
    parts.extend(f"#{i} {result.content}\n\n" for i, result in enumerate(results, start=1))
    parts.append(MISSING_CONTENT_NOTE)
    return "".join(parts)


@tool(
    name="diagram_search",
    description="Semantic search for diagrams within the project.",
    parameters=search_parameters(
        query_hint=(
            "Natural-language search phrase. If you want current diagram, "
            "leave empty and use scope."
        ),
        limit_hint="Max diagrams to return",
        scope_hint=(
            "Optional list of diagram UUIDs to restrict the search scope. "
            'Use ["current"] to retrieve currently active diagram. '
            "If user input includes references (e.g. @ref(diag: <uuid>)), include those "
            "IDs only if they are relevant to the query. "
            "Leave empty or omit to search the entire project."
        ),
    ),
    args_model=SearchArgs,
    failure_label="Diagram search",
)
async def diagram_search(ctx: ChatContext, args: SearchArgs, runtime: ToolRuntime) -> str:
    results = await search_diagrams(ctx, runtime, args)
    return format_diagram_results(results)
