"""End-to-end tests for the HTTP surface, run against the mock provider."""

import json

from fastapi.testclient import TestClient

from modelbridge.models.interfaces import ChatModelError, ChatModelErrorCode
from modelbridge.services.providers import MockChatModelProvider


def chat(client: TestClient, content="Hello world", **overrides):
    body = {"messages": [{"role": "user", "content": content}]}
    body.update(overrides)
    return client.post("/v1/chat/completions", json=body)


class TestHealthEndpoints:
    """Tests for health, status and model listing."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["server"]["running"] is True
        assert data["models"]["total"] == 4
        assert data["models"]["primary"] == 1
        assert data["models"]["unhealthy"] == 0

    def test_models_listing(self, client: TestClient) -> None:
        response = client.get("/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert {model["id"] for model in data["data"]} == {
            "gpt-4o", "claude-3.5-sonnet", "gpt-3.5-turbo", "local-small"
        }
        assert all(model["object"] == "model" for model in data["data"])

    def test_status(self, client: TestClient) -> None:
        data = client.get("/status").json()

        assert data["server"]["version"] == "1.0.0"
        assert data["models"]["total"] == 4
        assert data["provider"] == {"name": "mock", "available": True, "models": 4}
        assert data["tools"]["total_tools"] == 3
        assert data["features"]["auto_model_selection"] is True

    def test_status_reports_unreachable_provider(
        self, client: TestClient, mock_provider: MockChatModelProvider
    ) -> None:
        mock_provider.listing_error = RuntimeError("offline")

        data = client.get("/status").json()

        assert data["provider"]["available"] is False
        assert data["provider"]["error"] == "offline"

    def test_capabilities(self, client: TestClient) -> None:
        data = client.get("/v1/capabilities").json()

        assert data["server"]["version"] == "1.0.0"
        assert data["models"]["total"] == 4
        assert data["models"]["max_context_tokens"] == 200000
        assert data["supported_formats"]["images"] == ["gif", "jpeg", "jpg", "png", "webp"]
        assert data["supported_formats"]["streaming"] is True

    def test_refresh_picks_up_new_models(
        self, client: TestClient, mock_provider: MockChatModelProvider
    ) -> None:
        mock_provider.remove_model("local-small")

        response = client.post("/v1/models/refresh")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Models refreshed successfully"
        assert data["model_count"] == 3
        assert len(client.get("/v1/models").json()["data"]) == 3

    def test_refresh_failure(self, client: TestClient, mock_provider: MockChatModelProvider) -> None:
        mock_provider.listing_error = RuntimeError("offline")

        response = client.post("/v1/models/refresh")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "discovery_failed"


class TestChatCompletions:
    """Tests for /v1/chat/completions."""

    def test_collected_completion(self, client: TestClient) -> None:
        response = chat(client)

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["model"] == "auto-select"
        assert data["choices"][0]["message"] == {"role": "assistant", "content": "Echo: Hello world"}
        assert data["choices"][0]["finish_reason"] == "stop"
        assert data["usage"]["total_tokens"] == data["usage"]["prompt_tokens"] + data["usage"]["completion_tokens"]

    def test_streaming_completion(self, client: TestClient) -> None:
        response = chat(client, stream=True)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = [line for line in response.text.split("\n\n") if line]
        assert events[-1] == "data: [DONE]"

        chunks = [json.loads(event[len("data: "):]) for event in events[:-1]]
        content = "".join(chunk["choices"][0]["delta"].get("content", "") for chunk in chunks)
        assert content == "Echo: Hello world"
        assert chunks[-1]["choices"][0]["finish_reason"] == "stop"

    def test_invalid_json(self, client: TestClient) -> None:
        response = client.post(
            "/v1/chat/completions",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "invalid_request_error"
        assert error["code"] == "invalid_json"

    def test_validation_error_shape(self, client: TestClient) -> None:
        response = chat(client, temperature=5)

        assert response.status_code == 400
        assert response.json() == {
            "error": {
                "message": "temperature must be between 0 and 2",
                "type": "invalid_request_error",
                "code": "invalid_value",
                "param": "temperature",
            }
        }

    def test_provider_refusal(self, client: TestClient, mock_provider: MockChatModelProvider) -> None:
        mock_provider.get_model("claude-3.5-sonnet").request_error = ChatModelError(
            "no access", ChatModelErrorCode.NO_PERMISSIONS
        )

        response = chat(client)

        assert response.status_code == 403
        assert response.json()["error"]["type"] == "permission_error"

    def test_error_responses_are_counted(self, client: TestClient) -> None:
        chat(client, temperature=5)

        assert client.get("/health").json()["server"]["errors"] >= 1


class TestRouting:
    """Tests for unknown routes, methods and CORS."""

    def test_unknown_path(self, client: TestClient) -> None:
        response = client.get("/v1/nothing-here")

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "not_found_error"
        assert response.json()["error"]["code"] == "endpoint_not_found"

    def test_wrong_method(self, client: TestClient) -> None:
        response = client.get("/v1/chat/completions")

        assert response.status_code == 405
        assert response.json()["error"]["code"] == "method_not_allowed"

    def test_options_preflight(self, client: TestClient) -> None:
        response = client.options("/v1/chat/completions")

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert response.headers["X-API-Version"] == "1.0.0"

    def test_options_on_any_path(self, client: TestClient) -> None:
        response = client.options("/anything/at/all")

        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_response_headers(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["X-API-Version"] == "1.0.0"
        assert response.headers["X-Request-ID"]


class TestTools:
    """Tests for the tool endpoints."""

    def test_list_tools(self, client: TestClient) -> None:
        data = client.get("/v1/tools").json()

        assert data["object"] == "list"
        assert {tool["id"] for tool in data["data"]} == {"calculator", "datetime", "file_info"}

    def test_execute_tool(self, client: TestClient) -> None:
        response = client.post(
            "/v1/tools/execute",
            json={"id": "call_1", "type": "function", "function": {"name": "calculator", "arguments": '{"expression": "6*7"}'}},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["result"]["result"] == 42

    def test_tool_failure_is_not_an_http_error(self, client: TestClient) -> None:
        response = client.post(
            "/v1/tools/execute",
            json={"function": {"name": "calculator", "arguments": '{"expression": "1/0"}'}},
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"]

    def test_malformed_tool_call(self, client: TestClient) -> None:
        response = client.post("/v1/tools/execute", json={"id": "call_1"})

        assert response.status_code == 400
        assert response.json()["error"]["type"] == "invalid_request_error"


class TestConcurrencyAndConfig:
    """Tests for the concurrency cap and live configuration changes."""

    def test_requests_over_cap_are_rejected(self, client: TestClient, app) -> None:
        limiter = app.state.limiter
        acquired = 0
        while limiter.try_acquire():
            acquired += 1

        try:
            response = client.post("/v1/chat/completions", json={})
        finally:
            for _ in range(acquired):
                limiter.release()

        assert response.status_code == 429
        assert response.json()["error"]["message"] == "Rate limit exceeded"
        assert response.json()["error"]["type"] == "rate_limit_error"

    def test_slot_released_after_request(self, client: TestClient, app) -> None:
        chat(client)
        chat(client, stream=True)

        assert app.state.limiter.active == 0

    def test_config_update_changes_cap(self, client: TestClient, app) -> None:
        app.state.config_source.update({"server.max_concurrent_requests": 3})

        assert app.state.limiter.limit == 3

    def test_config_update_changes_tool_timeout(self, client: TestClient, app) -> None:
        app.state.config_source.update({"tools.timeout": 5})

        assert app.state.tool_service.registry.timeout == 5.0
