import json

import httpx
import pytest

from enzyme.src.services.config import AppConfig
from enzyme.src.services.model_client import ModelClient, ModelClientError


def make_client(handler, api_key: str | None = "sk-test") -> ModelClient:
    return ModelClient(
        base_url="https://models.example/v1/",
        api_key=api_key,
        model="test-model",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_complete_posts_chat_request_and_returns_content() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Synthesis %0001%"}}]})

    client = make_client(handler)
    messages = [{"role": "system", "content": "s"}, {"role": "user", "content": "u"}]

    assert await client.complete(messages) == "Synthesis %0001%"
    assert seen["url"] == "https://models.example/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "test-model"
    assert seen["body"]["messages"] == messages


@pytest.mark.asyncio
async def test_http_error_status_raises_model_client_error() -> None:
    client = make_client(lambda request: httpx.Response(500, json={"error": "down"}))

    with pytest.raises(ModelClientError, match="API error: 500"):
        await client.complete([{"role": "user", "content": "u"}])


@pytest.mark.asyncio
async def test_empty_choices_raise() -> None:
    client = make_client(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(ModelClientError, match="No response"):
        await client.complete([{"role": "user", "content": "u"}])


@pytest.mark.asyncio
async def test_transport_failure_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ModelClientError, match="Model call failed"):
        await make_client(handler).complete([{"role": "user", "content": "u"}])


@pytest.mark.asyncio
async def test_missing_api_key_raises_without_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(ModelClientError, match="MODEL_API_KEY"):
        await make_client(handler, api_key=None).complete([{"role": "user", "content": "u"}])


def test_from_config(tmp_path) -> None:
    config = AppConfig(
        vault_path=tmp_path,
        model_api_url="http://localhost:11434/v1",
        model_api_key="key",
        model_name="local",
        model_timeout_seconds=5,
    )

    client = ModelClient.from_config(config)

    assert client.base_url == "http://localhost:11434/v1"
    assert client.model == "local"
    assert client.timeout == 5
