from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors as genai_errors

from medscribe.config import GeminiConfig
from medscribe.exceptions import SummarizationFailedError, UnauthorizedError
from medscribe.infrastructure import GeminiLLMService


class TestGeminiLLMService:
    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(
            return_value=SimpleNamespace(text="## Plan\n- Rest")
        )
        return client

    @pytest.fixture
    def llm(self, client):
        return GeminiLLMService(client, GeminiConfig(api_key="key"))

    @pytest.mark.asyncio
    async def test_generate(self, llm, client):
        assert await llm.generate("Summarize this") == "## Plan\n- Rest"

        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["contents"] == "Summarize this"
        assert kwargs["config"]["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_empty_response(self, llm, client):
        client.aio.models.generate_content.return_value = SimpleNamespace(text=None)

        with pytest.raises(SummarizationFailedError):
            await llm.generate("Summarize this")

    @pytest.mark.asyncio
    async def test_rejected_key(self, llm, client):
        client.aio.models.generate_content.side_effect = genai_errors.ClientError(
            403, {"error": {"code": 403, "message": "API key invalid", "status": "PERMISSION_DENIED"}}
        )

        with pytest.raises(UnauthorizedError):
            await llm.generate("Summarize this")

    @pytest.mark.asyncio
    async def test_other_failures(self, llm, client):
        client.aio.models.generate_content.side_effect = TimeoutError("deadline exceeded")

        with pytest.raises(SummarizationFailedError):
            await llm.generate("Summarize this")
