"""Tests for the text generation clients."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from docgraph_cli.config_manager import Settings
from docgraph_cli.errors import GenerationServiceError
from docgraph_cli.llm import (
    AnthropicClient,
    ContentBlock,
    OllamaClient,
    OpenAIClient,
    TextResponse,
    create_client,
)


def _response(payload=None, status_code=200, invalid_json=False) -> MagicMock:
    response = MagicMock()
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Server Error")
    if invalid_json:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def post():
    with patch("docgraph_cli.llm.requests.post") as mocked:
        yield mocked


def test_first_text_skips_other_blocks():
    response = TextResponse(content=[ContentBlock("tool_use"), ContentBlock("text", "hi")])
    assert response.first_text() == "hi"
    assert TextResponse().first_text() is None


class TestAnthropicClient:
    """Tests for the Messages API client."""

    def test_generate(self, post):
        post.return_value = _response({
            "model": "claude-test",
            "content": [{"type": "text", "text": "# Docs"}],
            "usage": {"input_tokens": 10, "output_tokens": 3},
        })
        client = AnthropicClient("claude-test", "https://api.example/v1/messages", "sk-1", timeout=5)

        response = client.generate("Document this", 4096)

        assert response.first_text() == "# Docs"
        assert response.usage == {"input_tokens": 10, "output_tokens": 3}
        args, kwargs = post.call_args
        assert args[0] == "https://api.example/v1/messages"
        assert kwargs["headers"]["x-api-key"] == "sk-1"
        assert kwargs["headers"]["anthropic-version"] == "2023-06-01"
        assert kwargs["json"]["max_tokens"] == 4096
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "Document this"}]
        assert kwargs["timeout"] == 5

    def test_missing_key(self, post):
        with pytest.raises(GenerationServiceError, match="API key"):
            AnthropicClient("m", "https://api.example").generate("p", 10)
        post.assert_not_called()

    def test_http_error(self, post):
        post.return_value = _response(status_code=529)
        with pytest.raises(GenerationServiceError, match="529"):
            AnthropicClient("m", "https://api.example", "k").generate("p", 10)

    def test_connection_error(self, post):
        post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(GenerationServiceError, match="refused"):
            AnthropicClient("m", "https://api.example", "k").generate("p", 10)

    def test_invalid_json(self, post):
        post.return_value = _response(invalid_json=True)
        with pytest.raises(GenerationServiceError, match="invalid JSON"):
            AnthropicClient("m", "https://api.example", "k").generate("p", 10)

    def test_non_object_payload(self, post):
        post.return_value = _response(["unexpected"])
        with pytest.raises(GenerationServiceError, match="unexpected payload"):
            AnthropicClient("m", "https://api.example", "k").generate("p", 10)


class TestOpenAIClient:
    """Tests for OpenAI-compatible chat completions."""

    def test_generate(self, post):
        post.return_value = _response({
            "model": "gpt-test",
            "choices": [{"message": {"role": "assistant", "content": "# API"}}],
            "usage": {"prompt_tokens": 7, "completion_tokens": 2},
        })
        client = OpenAIClient("gpt-test", "https://api.example/chat", "sk-2")

        response = client.generate("p", 100)

        assert response.first_text() == "# API"
        assert response.usage == {"input_tokens": 7, "output_tokens": 2}
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-2"

    def test_empty_choices_give_no_text(self, post):
        post.return_value = _response({"choices": [{"message": {"content": "  "}}]})
        response = OpenAIClient("m", "https://api.example", "k").generate("p", 1)

        assert response.first_text() is None


class TestOllamaClient:
    """Tests for the local Ollama client."""

    def test_generate(self, post):
        post.return_value = _response({"model": "qwen", "response": "# Local", "eval_count": 4})
        response = OllamaClient("qwen", "http://127.0.0.1:11434/api/generate").generate("p", 256)

        assert response.first_text() == "# Local"
        payload = post.call_args.kwargs["json"]
        assert payload["options"] == {"num_predict": 256}
        assert payload["stream"] is False


class TestCreateClient:
    """Provider selection from settings."""

    def test_anthropic_default(self):
        client = create_client(Settings(api_key="k"))
        assert isinstance(client, AnthropicClient)
        assert client.endpoint == "https://api.anthropic.com/v1/messages"

    @pytest.mark.parametrize("provider", ["openai", "openrouter", "groq"])
    def test_openai_compatible(self, provider):
        client = create_client(Settings(provider=provider, model="m", endpoint=""))
        assert isinstance(client, OpenAIClient)
        assert client.provider_name == provider
        assert client.endpoint.startswith("https://")

    def test_ollama(self):
        client = create_client(Settings(provider="ollama", model="", endpoint=""))
        assert isinstance(client, OllamaClient)
        assert client.model == "qwen2.5-coder:7b"

    def test_timeout_from_settings(self):
        client = create_client(Settings(api_key="k", timeout=7.5))
        assert client.timeout == 7.5

    def test_unknown_provider_falls_back(self, caplog):
        client = create_client(Settings(provider="mystery", model="x", endpoint="y"))

        assert isinstance(client, AnthropicClient)
        assert client.model == "claude-3-5-sonnet-20241022"
        assert "mystery" in caplog.text
