"""
Abstract base class for language model completion providers
"""
from abc import ABC, abstractmethod


class BaseCompletionProvider(ABC):
    """
    Single-prompt text completion

    Implementations raise ProviderError for transport, auth, rate-limit and
    timeout failures. Anything the model says is returned as text, even if
    it is not what was asked for.
    """

    name: str = "provider"
    model: str = ""

    @abstractmethod
    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """
        Send one prompt and return the completion text

        Args:
            prompt: User prompt
            max_tokens: Upper bound for generated tokens
            temperature: Sampling temperature

        Returns:
            Completion text

        Raises:
            ProviderError: The provider could not produce a completion
        """
        pass

    async def close(self) -> None:
        """Release the underlying HTTP client (optional)"""
        pass
