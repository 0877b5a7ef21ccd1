"""
Document search tool: semantic search over indexed document fragments.
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

DOCUMENT_SOURCES = {
    ResourceGroupType.PROJECT: VectorSource(
        vector_table="project_document_vectors",
        resource_table="project_documents",
        resource_column="document_id",
        group_column="project_id",
    ),
    ResourceGroupType.TEMPLATE: VectorSource(
        vector_table="document_template_vectors",
        resource_table="document_templates",
        resource_column="document_template_id",
        group_column="project_template_id",
    ),
    ResourceGroupType.COMMUNITY: VectorSource(
        vector_table="cm_document_template_vectors",
        resource_table="cm_document_templates",
        resource_column="cm_document_template_id",
        group_column="cm_project_template_id",
    ),
}

MISSING_CONTENT_NOTE = (
    "Note: If some expected content is missing, it may not have been indexed yet.\n"
    "Feel free to ask the user for clarification or to paste the relevant content here."
    "\n\n"
)


async def search_documents(
    ctx: ChatContext, runtime: ToolRuntime, args: SearchArgs
) -> list[SearchResult]:
    return await semantic_search(ctx, runtime, DOCUMENT_SOURCES, ResourceType.DOCUMENT, args)


def format_document_results(results: list[SearchResult]) -> str:
    if not results:
        return ""

    parts = [
        f"#{i} Document: {result.title}\n{result.content}\n\n"
        for i, result in enumerate(results, start=1)
    ]
    parts.append(MISSING_CONTENT_NOTE)
    return "".join(parts)


@tool(
    name="document_search",
    description=(
        "Semantic search for documents within the project. Returns only (small) "
        "fragments of document(s). Each fragment starts with index and document title."
    ),
    parameters=search_parameters(
        query_hint=(
            "Natural-language search phrase. If you want current/concrete document, "
            "leave empty and use scope."
        ),
        limit_hint=(
            "Maximum number of matching fragments to return. Each fragment corresponds "
            "to a content block (e.g., paragraph, table, heading, or list), similar to "
            "Notion-style editors."
        ),
        scope_hint=(
            "Optional list of document IDs to restrict the search scope. "
            'Use ["current"] to search only the current document. '
            "If user input includes references (e.g. @ref(doc: <uuid>)), include those "
            "IDs only if they are relevant to the query. "
            "Leave empty or omit to search the entire project."
        ),
    ),
    args_model=SearchArgs,
    failure_label="Document search",
)
async def document_search(ctx: ChatContext, args: SearchArgs, runtime: ToolRuntime) -> str:
    results = await search_documents(ctx, runtime, args)
    return format_document_results(results)
