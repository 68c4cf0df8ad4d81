"""
Anthropic Messages API provider
"""
from typing import Optional

import anthropic

from labelcheck.infrastructure.llm.base_provider import BaseCompletionProvider
from labelcheck.core.exceptions import ProviderError
from labelcheck.core.logging import get_logger

logger = get_logger(__name__)


class AnthropicProvider(BaseCompletionProvider):
    """Completion through anthropic.AsyncAnthropic"""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        timeout: float = 60.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.model = model
        # SDK level retries are disabled; fallback to the next provider is the retry
        self.client = client or anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout, max_retries=0
        )
        logger.info("Anthropic provider configured", model=model)

    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ProviderError(
                f"Anthropic request failed: {str(e)}",
                provider=self.name,
                details={"error_type": type(e).__name__, "model": self.model}
            ) from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def close(self) -> None:
        await self.client.close()
