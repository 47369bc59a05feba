"""Gemini LLM service implementation."""

from google import genai
from google.genai import errors as genai_errors

from medscribe.config import GeminiConfig
from medscribe.exceptions import SummarizationFailedError, UnauthorizedError
from medscribe.logging import setup_logging

from .interfaces import LLMService

logger = setup_logging()


class GeminiLLMService(LLMService):
    """LLM service implementation using Google Gemini."""

    def __init__(self, client: genai.Client, config: GeminiConfig):
        self._client = client
        self._config = config

    async def generate(self, prompt: str) -> str:
        """
        Generates a summary with Gemini.

        Args:
            prompt: The complete summarization prompt.

        Returns:
            The generated text.

        Raises:
            UnauthorizedError: If Gemini rejects the API key or permissions.
            SummarizationFailedError: If the API call fails or returns nothing.
        """
        try:
            response = await self._client.aio.models.generate_content(
                model=self._config.model_name,
                contents=prompt,
                config={
                    "temperature": self._config.temperature,
                    "top_p": self._config.top_p,
                    "top_k": self._config.top_k,
                    "max_output_tokens": self._config.max_output_tokens,
                },
            )
        except genai_errors.APIError as e:
            logger.exception("Gemini API call failed", extra={"status_code": e.code})
            if e.code in (401, 403):
                raise UnauthorizedError("Gemini", e) from e
            raise SummarizationFailedError(f"Gemini summarization failed: {e}", e) from e
        except Exception as e:
            logger.exception("Gemini API call failed")
            raise SummarizationFailedError(f"Gemini summarization failed: {e}", e) from e

        if not response.text:
            raise SummarizationFailedError("Gemini returned empty response")
        logger.info("LLM summary completed", extra={"model": self._config.model_name})
        return response.text
