"""Abstract interface for LLM service operations."""

from abc import ABC, abstractmethod


class LLMService(ABC):
    """Abstract base class for LLM backends."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generates text for a prompt.

        Args:
            prompt: The complete prompt text.

        Returns:
            The generated text.

        Raises:
            UnauthorizedError: If the backend rejects the credentials.
            SummarizationFailedError: If the call fails or returns nothing.
        """
        pass
