"""Tests for the tool registry, dispatch and the search tools' formatting."""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeSessionFactory, ScriptedClient
from pilot.orchestrator.context import ChatContext, ResourceGroupType, ResourceType
from pilot.tools.diagram_search import DIAGRAM_LEGEND, format_diagram_results
from pilot.tools.document_search import (
    DOCUMENT_SOURCES,
    MISSING_CONTENT_NOTE,
    format_document_results,
)
from pilot.tools.registry import (
    InvalidToolArguments,
    ToolError,
    ToolRuntime,
    UnknownToolError,
    dispatch,
    get_tool,
    list_tools,
)
from pilot.tools.semantic import (
    SearchArgs,
    SearchResult,
    build_search_sql,
    clamp_limit,
    resolve_scope,
)


# ---------------------------------------------------------------------------
# list_tools
# ---------------------------------------------------------------------------


class TestListTools:

    def test_quick_chat_hides_project_info(self, quick_ctx):
        names = [t["name"] for t in list_tools(quick_ctx)]
        assert sorted(names) == ["diagram_search", "document_search"]

    def test_resource_group_exposes_all_three(self, ctx):
        names = [t["name"] for t in list_tools(ctx)]
        assert sorted(names) == ["diagram_search", "document_search", "project_info"]

    def test_descriptor_shape(self, ctx):
        descriptor = next(t for t in list_tools(ctx) if t["name"] == "document_search")
        assert descriptor["type"] == "function"
        assert descriptor["strict"] is False
        assert descriptor["parameters"]["type"] == "object"
        assert descriptor["parameters"]["required"] == ["query", "limit"]
        assert "scope" in descriptor["parameters"]["properties"]

    def test_project_info_takes_no_arguments(self, ctx):
        descriptor = next(t for t in list_tools(ctx) if t["name"] == "project_info")
        assert descriptor["parameters"] == {"type": "object", "properties": {}}


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------


class TestDispatch:

    @pytest.mark.asyncio
    async def test_unknown_tool(self, ctx):
        runtime = ToolRuntime(client=ScriptedClient([]), session_factory=FakeSessionFactory())
        with pytest.raises(UnknownToolError, match="unknown function call: nope"):
            await dispatch(ctx, "nope", "{}", runtime)

    @pytest.mark.asyncio
    async def test_invalid_arguments_never_reach_handler(self, ctx):
        runtime = ToolRuntime(client=ScriptedClient([]), session_factory=FakeSessionFactory())
        registered = get_tool("document_search")
        handler = AsyncMock(return_value="x")

        with patch.object(registered, "handler", handler):
            with pytest.raises(InvalidToolArguments, match="invalid function arguments"):
                await dispatch(ctx, "document_search", "{not json", runtime)

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_argument_type_is_invalid(self, ctx):
        runtime = ToolRuntime(client=ScriptedClient([]), session_factory=FakeSessionFactory())
        with pytest.raises(InvalidToolArguments):
            await dispatch(ctx, "document_search", '{"query": "x", "limit": "many"}', runtime)

    @pytest.mark.asyncio
    async def test_no_matches_returns_empty_output(self, ctx):
        client = ScriptedClient([])
        factory = FakeSessionFactory(rows=[])
        runtime = ToolRuntime(client=client, session_factory=factory)

        output = await dispatch(
            ctx, "document_search", '{"query":"auth flow","limit":3}', runtime
        )

        assert output == ""
        assert client.embedded == ["auth flow"]
        sql, params = factory.session.executed[0]
        assert "project_document_vectors" in sql
        assert params["limit"] == 3
        assert params["tenant_id"] == "tenant-1"
        assert params["group_id"] == "project-1"

    @pytest.mark.asyncio
    async def test_search_without_resource_group_fails(self, quick_ctx):
        runtime = ToolRuntime(client=ScriptedClient([]), session_factory=FakeSessionFactory())
        with pytest.raises(ToolError, match="without knowing project/template id"):
            await dispatch(quick_ctx, "document_search", '{"query":"x","limit":1}', runtime)

    @pytest.mark.asyncio
    async def test_implementation_errors_are_wrapped(self, ctx):
        runtime = ToolRuntime(client=ScriptedClient([]), session_factory=FakeSessionFactory())
        registered = get_tool("diagram_search")
        handler = AsyncMock(side_effect=RuntimeError("db down"))

        with patch.object(registered, "handler", handler):
            with pytest.raises(ToolError, match="db down") as exc_info:
                await dispatch(ctx, "diagram_search", '{"query":"x","limit":1}', runtime)

        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# Semantic search helpers
# ---------------------------------------------------------------------------


class TestSemanticHelpers:

    def test_clamp_limit(self):
        assert clamp_limit(0) == 5
        assert clamp_limit(-3) == 5
        assert clamp_limit(7) == 7
        assert clamp_limit(500) == 50

    def test_current_scope_resolves_to_open_document(self):
        ctx = ChatContext(
            user_id="u", tenant_id="t",
            resource_group_type=ResourceGroupType.PROJECT, resource_group_id="p",
            resource_type=ResourceType.DOCUMENT, resource_id="doc-9",
        )
        assert resolve_scope(ctx, ["current", "doc-2"], ResourceType.DOCUMENT) == ["doc-9", "doc-2"]

    def test_current_scope_dropped_for_other_resource_type(self):
        ctx = ChatContext(
            user_id="u", tenant_id="t", resource_group_id="p",
            resource_type=ResourceType.DIAGRAM, resource_id="dia-1",
        )
        assert resolve_scope(ctx, ["current"], ResourceType.DOCUMENT) == []

    def test_sql_without_query_skips_distance(self):
        sql = str(build_search_sql(DOCUMENT_SOURCES[ResourceGroupType.TEMPLATE], False, True))
        assert "<#>" not in sql
        assert "document_template_vectors" in sql
        assert "ORDER BY distance ASC LIMIT :limit" in sql

    @pytest.mark.asyncio
    async def test_empty_query_does_not_embed(self, ctx):
        client = ScriptedClient([])
        factory = FakeSessionFactory(rows=[("fragment", 0.0, "Guide")])
        runtime = ToolRuntime(client=client, session_factory=factory)

        output = await dispatch(
            ctx, "document_search", '{"query":"","limit":2,"scope":["doc-1"]}', runtime
        )

        assert client.embedded == []
        assert output.startswith("#1 Document: Guide\nfragment\n\n")
        _, params = factory.session.executed[0]
        assert params["scope"] == ["doc-1"]
        assert "query_vec" not in params


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


class TestFormatting:

    def test_document_results(self):
        results = [
            SearchResult(title="Auth", content="Uses OIDC.", distance=-0.9),
            SearchResult(title="Deploy", content="Runs on k8s.", distance=-0.7),
        ]
        text = format_document_results(results)
        assert text.startswith("#1 Document: Auth\nUses OIDC.\n\n#2 Document: Deploy\n")
        assert text.endswith(MISSING_CONTENT_NOTE)

    def test_empty_results_format_to_empty_string(self):
        assert format_document_results([]) == ""
        assert format_diagram_results([]) == ""

    def test_diagram_results_carry_legend(self):
        text = format_diagram_results([SearchResult(title="Flow", content="A->B", distance=0.0)])
        assert DIAGRAM_LEGEND in text
        assert "#1 A->B\n\n" in text
        assert text.endswith("\n\n\n")

    def test_search_args_defaults(self):
        args = SearchArgs()
        assert args.query == ""
        assert args.limit == 5
        assert args.scope == []
