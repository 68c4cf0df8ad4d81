"""
OpenAI Chat Completions provider
"""
from typing import Optional

import openai

from labelcheck.infrastructure.llm.base_provider import BaseCompletionProvider
from labelcheck.core.exceptions import ProviderError
from labelcheck.core.logging import get_logger

logger = get_logger(__name__)


class OpenAIProvider(BaseCompletionProvider):
    """Completion through openai.AsyncOpenAI"""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
        client: Optional[openai.AsyncOpenAI] = None,
    ):
        self.model = model
        self.client = client or openai.AsyncOpenAI(
            api_key=api_key, timeout=timeout, max_retries=0
        )
        logger.info("OpenAI provider configured", model=model)

    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise ProviderError(
                f"OpenAI request failed: {str(e)}",
                provider=self.name,
                details={"error_type": type(e).__name__, "model": self.model}
            ) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        await self.client.close()
