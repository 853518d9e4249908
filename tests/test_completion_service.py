"""
Tests for the completion service.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from qa_recorder.core.exceptions import ModelError, ValidationError
from qa_recorder.synthesis.completion import CompletionService, ModelProvider


def make_response(content: str, model: str, total_tokens: int = 30):
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    response.usage = Mock()
    response.usage.prompt_tokens = 10
    response.usage.completion_tokens = total_tokens - 10
    response.usage.total_tokens = total_tokens
    response.model = model
    return response


@pytest.fixture
def mock_openai_client():
    """Create a mock OpenAI client."""
    client = Mock()
    client.chat.completions.create = AsyncMock(
        return_value=make_response("OpenAI test cases", "gpt-4o-mini")
    )
    return client


@pytest.fixture
def mock_litellm_response():
    """Create a mock LiteLLM response."""
    return make_response("Ollama test cases", "qwen2.5:7b", total_tokens=40)


class TestRouting:
    """Test cases for provider routing."""

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    def test_mixed_routing(self, mock_openai_class, temp_config):
        """Mixed mode drafts with Ollama and falls back to OpenAI."""
        service = CompletionService(temp_config)

        assert service.primary_config.provider == ModelProvider.OLLAMA
        assert service.fallback_config.provider == ModelProvider.OPENAI
        assert service.fallback_config.temperature == 0.3
        mock_openai_class.assert_called_once_with(api_key="test-api-key")

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    def test_openai_routing(self, mock_openai_class, temp_config):
        """OpenAI mode has no fallback."""
        temp_config.model_provider = "openai"

        service = CompletionService(temp_config)

        assert service.primary_config.provider == ModelProvider.OPENAI
        assert service.fallback_config is None

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    def test_ollama_without_key(self, mock_openai_class, temp_config):
        """Without an API key there is nothing to fall back to."""
        temp_config.model_provider = "ollama"
        temp_config.openai_api_key = None

        service = CompletionService(temp_config)

        assert service.openai_client is None
        assert service.fallback_config is None
        mock_openai_class.assert_not_called()

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    def test_get_routing_info(self, mock_openai_class, temp_config):
        """Routing info describes both providers."""
        info = CompletionService(temp_config).get_routing_info()

        assert info["provider_mode"] == "mixed"
        assert info["primary"]["model_name"] == "qwen2.5:7b"
        assert info["fallback"]["provider"] == "openai"


class TestComplete:
    """Test cases for completing prompts."""

    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_complete_with_ollama(
        self, mock_openai_class, mock_litellm, temp_config, mock_litellm_response
    ):
        """The primary provider answers through LiteLLM."""
        mock_litellm.return_value = mock_litellm_response
        service = CompletionService(temp_config)

        response = await service.complete_with_details("Write tests", max_output_tokens=500)

        assert response.content == "Ollama test cases"
        assert response.provider == ModelProvider.OLLAMA
        assert response.usage["total_tokens"] == 40
        assert response.fallback_used is False

        kwargs = mock_litellm.call_args.kwargs
        assert kwargs["model"] == "ollama/qwen2.5:7b"
        assert kwargs["api_base"] == "http://localhost:11434"
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["messages"][1] == {"role": "user", "content": "Write tests"}

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_complete_with_openai(self, mock_openai_class, temp_config, mock_openai_client):
        """OpenAI mode calls the chat completions API."""
        temp_config.model_provider = "openai"
        mock_openai_class.return_value = mock_openai_client
        service = CompletionService(temp_config)

        text = await service.complete("Write tests")

        assert text == "OpenAI test cases"
        kwargs = mock_openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == temp_config.max_output_tokens

    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_fallback_to_openai(
        self, mock_openai_class, mock_litellm, temp_config, mock_openai_client
    ):
        """An Ollama failure is recovered by the OpenAI fallback."""
        mock_litellm.side_effect = ConnectionError("ollama down")
        mock_openai_class.return_value = mock_openai_client
        service = CompletionService(temp_config)

        response = await service.complete_with_details("Write tests")

        assert response.content == "OpenAI test cases"
        assert response.provider == ModelProvider.OPENAI
        assert response.fallback_used is True

    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_all_providers_fail(
        self, mock_openai_class, mock_litellm, temp_config, mock_openai_client
    ):
        """ModelError is raised when every provider fails."""
        mock_litellm.side_effect = ConnectionError("ollama down")
        mock_openai_client.chat.completions.create.side_effect = RuntimeError("quota")
        mock_openai_class.return_value = mock_openai_client
        service = CompletionService(temp_config)

        with pytest.raises(ModelError, match="Both primary and fallback models failed"):
            await service.complete("Write tests")

    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_primary_failure_without_fallback(self, mock_litellm, temp_config):
        """Without a fallback the primary error propagates."""
        temp_config.model_provider = "ollama"
        temp_config.openai_api_key = None
        mock_litellm.side_effect = ConnectionError("ollama down")
        service = CompletionService(temp_config)

        with pytest.raises(ModelError) as exc_info:
            await service.complete("Write tests")

        assert exc_info.value.provider == "ollama"

    @pytest.mark.asyncio
    async def test_openai_without_client(self, temp_config):
        """Calling OpenAI without a key fails cleanly."""
        temp_config.model_provider = "openai"
        temp_config.openai_api_key = None
        service = CompletionService(temp_config)

        with pytest.raises(ModelError, match="OpenAI client not initialized"):
            await service.complete("Write tests")

    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_empty_prompt(self, mock_openai_class, temp_config):
        """Empty prompts are rejected before any call."""
        service = CompletionService(temp_config)

        with pytest.raises(ValidationError):
            await service.complete("   ")

    @patch("qa_recorder.synthesis.completion.asyncio.sleep", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_retry_with_backoff(
        self, mock_openai_class, mock_litellm, mock_sleep, temp_config, mock_litellm_response
    ):
        """Transient failures are retried with exponential backoff."""
        temp_config.model_max_retries = 3
        mock_litellm.side_effect = [
            ConnectionError("blip"),
            ConnectionError("blip"),
            mock_litellm_response,
        ]
        service = CompletionService(temp_config)

        text = await service.complete("Write tests")

        assert text == "Ollama test cases"
        assert mock_litellm.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    @patch("qa_recorder.synthesis.completion.asyncio.sleep", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.AsyncOpenAI")
    @pytest.mark.asyncio
    async def test_openai_response_without_choices(
        self, mock_openai_class, mock_sleep, temp_config, mock_openai_client
    ):
        """A response with no choices is a model failure, not a crash."""
        temp_config.model_provider = "openai"
        mock_openai_client.chat.completions.create.return_value = SimpleNamespace(
            choices=[], usage=None, model="gpt-4o-mini"
        )
        mock_openai_class.return_value = mock_openai_client
        service = CompletionService(temp_config)

        with pytest.raises(ModelError) as exc_info:
            await service.complete("Write tests")

        assert exc_info.value.provider == "openai"

    @patch("qa_recorder.synthesis.completion.asyncio.sleep", new_callable=AsyncMock)
    @patch("qa_recorder.synthesis.completion.litellm.acompletion", new_callable=AsyncMock)
    @pytest.mark.asyncio
    async def test_ollama_response_without_choices(self, mock_litellm, mock_sleep, temp_config):
        temp_config.model_provider = "ollama"
        temp_config.openai_api_key = None
        mock_litellm.return_value = SimpleNamespace(choices=[], usage=None, model="qwen2.5:7b")
        service = CompletionService(temp_config)

        with pytest.raises(ModelError) as exc_info:
            await service.complete("Write tests")

        assert exc_info.value.provider == "ollama"
