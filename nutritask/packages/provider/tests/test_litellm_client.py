"""LiteLLMClient 单元测试

Mock litellm.acompletion()，验证结果组装、成本提取与错误分类。
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from nutritask.provider.client import LiteLLMClient
from nutritask.provider.exceptions import ProviderError, ProxyUnreachableError
from nutritask.provider.models import ModelCallResult


@pytest.fixture
def client():
    return LiteLLMClient(
        proxy_base_url="http://localhost:4000/",
        proxy_api_key="sk-test",
        timeout_s=30,
    )


def _make_response(
    content: str | None = '{"overview": "ok"}',
    model: str = "gpt-4o-mini",
    hidden_params: dict | None = None,
):
    """构造 Mock LiteLLM ModelResponse"""
    response = MagicMock()
    response.model = model
    choice = MagicMock()
    choice.message.content = content
    response.choices = [choice]
    response.usage.prompt_tokens = 120
    response.usage.completion_tokens = 80
    response.usage.total_tokens = 200
    response._hidden_params = (
        hidden_params
        if hidden_params is not None
        else {"custom_llm_provider": "openai", "response_cost": 0.002}
    )
    return response


class TestComplete:
    @patch("nutritask.provider.client.completion_cost", return_value=0.0015)
    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_successful_call(self, mock_acompletion, mock_cost, client):
        mock_acompletion.return_value = _make_response()

        result = await client.complete(
            [{"role": "user", "content": "hi"}],
            model_alias="summarizer",
            temperature=0.4,
        )

        assert isinstance(result, ModelCallResult)
        assert result.content == '{"overview": "ok"}'
        assert result.model_alias == "summarizer"
        assert result.model_name == "gpt-4o-mini"
        assert result.provider == "openai"
        assert result.token_usage.total_tokens == 200
        assert result.cost_usd == 0.0015
        assert result.cost_unavailable is False
        assert result.is_fallback is False

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "summarizer"
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["timeout"] == 30
        assert "max_tokens" not in kwargs

    @patch("nutritask.provider.client.completion_cost", side_effect=Exception("no pricing"))
    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_cost_from_hidden_params(self, mock_acompletion, mock_cost, client):
        mock_acompletion.return_value = _make_response()
        result = await client.complete([{"role": "user", "content": "hi"}])
        assert result.cost_usd == 0.002
        assert result.cost_unavailable is False

    @patch("nutritask.provider.client.completion_cost", side_effect=Exception("no pricing"))
    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_cost_unavailable(self, mock_acompletion, mock_cost, client):
        mock_acompletion.return_value = _make_response(hidden_params={})
        result = await client.complete([{"role": "user", "content": "hi"}])
        assert result.cost_usd == 0.0
        assert result.cost_unavailable is True
        assert result.provider == ""

    @patch("nutritask.provider.client.completion_cost", return_value=0.0)
    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_none_content_and_max_tokens(self, mock_acompletion, mock_cost, client):
        mock_acompletion.return_value = _make_response(content=None)
        result = await client.complete([{"role": "user", "content": "hi"}], max_tokens=512)
        assert result.content == ""
        assert mock_acompletion.call_args.kwargs["max_tokens"] == 512

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionError("refused"),
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            TimeoutError(),
        ],
    )
    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_connection_errors_raise_proxy_unreachable(
        self, mock_acompletion, error, client
    ):
        mock_acompletion.side_effect = error
        with pytest.raises(ProxyUnreachableError) as exc_info:
            await client.complete([{"role": "user", "content": "hi"}])
        assert exc_info.value.proxy_url == "http://localhost:4000"
        assert exc_info.value.original_error is error

    @patch("nutritask.provider.client.acompletion", new_callable=AsyncMock)
    async def test_business_error_raises_provider_error(self, mock_acompletion, client):
        mock_acompletion.side_effect = ValueError("quota exceeded")
        with pytest.raises(ProviderError) as exc_info:
            await client.complete([{"role": "user", "content": "hi"}])
        assert not isinstance(exc_info.value, ProxyUnreachableError)
        assert "quota exceeded" in str(exc_info.value)


class TestHealthCheck:
    async def test_healthy_proxy(self, client, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health/liveliness"
            return httpx.Response(200, json={"status": "ok"})

        _patch_http_transport(monkeypatch, handler)
        assert await client.health_check() is True

    async def test_unhealthy_status(self, client, monkeypatch):
        _patch_http_transport(monkeypatch, lambda request: httpx.Response(503))
        assert await client.health_check() is False

    async def test_unreachable_proxy(self, client, monkeypatch):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        _patch_http_transport(monkeypatch, handler)
        assert await client.health_check() is False


def _patch_http_transport(monkeypatch, handler) -> None:
    """让 health_check 内新建的 httpx.AsyncClient 走 MockTransport"""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", factory)
