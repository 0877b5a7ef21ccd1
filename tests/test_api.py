"""HTTP-level tests: routing, auth, validation and error mapping."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSessionFactory, ScriptedClient, make_response
from pilot.core import dependencies
from pilot.core.auth import AuthenticatedUser
from pilot.core.flags import FeatureFlags
from pilot.factory import create_app
from pilot.models.conversation import Conversation, PromptConfigTemplate
from pilot.services.llm import ProviderConfig

USER = AuthenticatedUser(user_id="user-1", tenant_id="tenant-1")


def _found(row):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    return result


def _conversation(**overrides) -> Conversation:
    fields = dict(
        id="c1", tenant_id="tenant-1", user_id="user-1", project_id="p1",
        title="Planning", conversation_type="chat",
    )
    fields.update(overrides)
    return Conversation(**fields)


def _empty_lookup_session():
    """A session whose every select finds nothing."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    result.scalars.return_value.first.return_value = None
    result.scalars.return_value.all.return_value = []
    session = AsyncMock()
    session.execute.return_value = result
    session.add = MagicMock()
    return session


@pytest.fixture
def session():
    return _empty_lookup_session()


@pytest.fixture
def app(session):
    app = create_app()

    async def _db():
        yield session

    app.dependency_overrides[dependencies.get_user] = lambda: USER
    app.dependency_overrides[dependencies.get_db] = _db
    app.dependency_overrides[dependencies.get_session_factory] = lambda: FakeSessionFactory()
    return app


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


class TestHealthAndAuth:

    def test_health_needs_no_auth(self):
        response = TestClient(create_app()).get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_missing_token_is_401(self):
        app = create_app()
        with patch("pilot.core.auth.get_flags", return_value=FeatureFlags(FF_USE_AUTH=True)):
            response = TestClient(app).get("/v1/chat/history", params={"conversation_id": "c1"})
        assert response.status_code == 401

    def test_missing_tenant_is_403(self, app):
        app.dependency_overrides[dependencies.get_user] = lambda: AuthenticatedUser(user_id="u")
        response = TestClient(app).get("/v1/chat/history", params={"conversation_id": "c1"})
        assert response.status_code == 403


class TestHistoryEndpoint:

    def test_conversation_id_required(self, client):
        response = client.get("/v1/chat/history")
        assert response.status_code == 400
        assert response.json() == {"detail": "Conversation ID is required"}

    def test_empty_history(self, client):
        response = client.get("/v1/chat/history", params={"conversation_id": "c1"})
        assert response.status_code == 200
        assert response.json() == {"messages": []}


class TestPromptEndpoint:

    def test_bad_resource_group_type(self, client):
        response = client.post("/v1/prompt", params={"rgt": "galaxy"}, json={"prompt": "hi"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Unknown or missing resource identifier"}

    def test_empty_prompt_is_invalid(self, client):
        response = client.post("/v1/prompt", params={"rgt": "project"}, json={"prompt": ""})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request"}

    def test_quick_chat_answer(self, client):
        vendor = ScriptedClient([make_response("r1", text="Hi there", output_tokens=3)])
        with patch("pilot.api.ai.get_vendor_client",
                   AsyncMock(return_value=(vendor, ProviderConfig(api_key="k")))):
            response = client.post("/v1/prompt", params={"rgt": "project"}, json={"prompt": "hi"})

        assert response.status_code == 200
        assert response.json() == {"message": "Hi there", "status": "completed", "total_tokens": 3}
        assert "tools" not in vendor.requests[0]

    def test_chunked_stream(self, client):
        vendor = ScriptedClient([make_response("r1", text="streamed words")])
        with patch("pilot.api.ai.get_vendor_client",
                   AsyncMock(return_value=(vendor, ProviderConfig(api_key="k")))):
            response = client.post(
                "/v1/prompt", params={"rgt": "project"},
                json={"prompt": "hi", "chunked_stream": True},
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "streamed words "

    def test_unknown_conversation_is_404(self, client):
        vendor = ScriptedClient([])
        with patch("pilot.api.ai.get_vendor_client",
                   AsyncMock(return_value=(vendor, ProviderConfig(api_key="k")))):
            response = client.post(
                "/v1/prompt", params={"rgt": "project", "conversation_id": "nope"},
                json={"prompt": "hi"},
            )

        assert response.status_code == 404
        assert vendor.requests == []

    def test_unknown_assistant_is_404(self, client):
        vendor = ScriptedClient([])
        with patch("pilot.api.ai.get_vendor_client",
                   AsyncMock(return_value=(vendor, ProviderConfig(api_key="k")))):
            response = client.post(
                "/v1/prompt", params={"rgt": "project", "assistant": "ghost"},
                json={"prompt": "hi"},
            )

        assert response.status_code == 404

    def test_missing_provider_is_500(self, client):
        response = client.post("/v1/prompt", params={"rgt": "project"}, json={"prompt": "hi"})
        assert response.status_code == 500
        assert response.json() == {"detail": "Internal Server Error"}


class TestSearchEndpoints:

    def test_project_id_required(self, client):
        response = client.post("/v1/search/documents", json={"query": "x"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Project ID is required"}

    def test_project_info_requires_project_id(self, client):
        response = client.post("/v1/project-info")
        assert response.status_code == 400

    def test_project_info_not_found(self, client):
        response = client.post("/v1/project-info", params={"project_id": "p-missing"})
        assert response.status_code == 404


class TestTextEndpoint:

    def test_adjust_tone_without_tone(self, client):
        response = client.post("/v1/text/adjust-tone", json={"text": "hello"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Tone is required"}

    def test_unknown_action(self, client):
        response = client.post("/v1/text/translate", json={"text": "hello"})
        assert response.status_code == 400

    def test_streams_wrapped_html(self, client):
        vendor = ScriptedClient([make_response("r1", text="Shorter.")])
        with patch("pilot.api.text.get_vendor_client",
                   AsyncMock(return_value=(vendor, ProviderConfig(api_key="k")))):
            response = client.post("/v1/text/shorten", json={"text": "A much longer text."})

        assert response.status_code == 200
        assert response.text == "<body>\nShorter. \n</body>"


class TestConversationsEndpoint:

    def test_create_requires_owner(self, client):
        response = client.post("/v1/conversations", json={})
        assert response.status_code == 400

    def test_empty_patch(self, client):
        response = client.patch("/v1/conversations/c1", json={})
        assert response.status_code == 400
        assert response.json() == {"detail": "No fields to update"}

    def test_unknown_patch_field(self, client):
        response = client.patch("/v1/conversations/c1", json={"owner": "someone"})
        assert response.status_code == 400

    def test_missing_conversation(self, client):
        response = client.get("/v1/conversations/c1")
        assert response.status_code == 404

    def test_null_title_is_invalid(self, client, session):
        response = client.patch("/v1/conversations/c1", json={"title": None})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid request"}
        session.flush.assert_not_awaited()

    def test_null_description_is_allowed(self, client, session):
        session.execute.side_effect = [_found(_conversation())]
        response = client.patch("/v1/conversations/c1", json={"description": None})
        assert response.status_code == 200
        assert response.json()["description"] is None


class TestConversationPromptConfiguration:

    def test_unknown_template_is_404(self, client, session):
        convo = _conversation()
        session.execute.side_effect = [_found(convo), _found(None)]

        response = client.patch(
            "/v1/conversations/c1", json={"prompt_configuration": "no-such-template"}
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Prompt configuration not found"}
        assert convo.conversation_config_template_id is None
        session.flush.assert_not_awaited()

    def test_known_template_is_written(self, client, session):
        convo = _conversation()
        template = PromptConfigTemplate(id="tpl-1", tenant_id="tenant-1", title="Reviewer")
        session.execute.side_effect = [_found(convo), _found(template)]

        response = client.patch("/v1/conversations/c1", json={"prompt_configuration": "tpl-1"})

        assert response.status_code == 200
        assert response.json()["conversation_configuration_id"] == "tpl-1"

    def test_clearing_template_skips_lookup(self, client, session):
        convo = _conversation(conversation_config_template_id="tpl-1")
        session.execute.side_effect = [_found(convo)]

        response = client.patch("/v1/conversations/c1", json={"prompt_configuration": None})

        assert response.status_code == 200
        assert response.json()["conversation_configuration_id"] is None
