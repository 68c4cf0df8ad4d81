"""
Provider fallback policy

The fallback order and the retryable/terminal split are plain values so they
can be swapped in tests and in the composition root.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from labelcheck.infrastructure.llm.base_provider import BaseCompletionProvider
from labelcheck.core.enums import AIProvider
from labelcheck.core.exceptions import ProviderError
from labelcheck.core.logging import get_logger
from labelcheck.observability.metrics import record_provider_attempt

logger = get_logger(__name__)

NOT_CONFIGURED = "Not configured"


@dataclass(frozen=True)
class ProviderStrategy:
    """One slot in the fallback order"""
    slot: AIProvider
    provider: Optional[BaseCompletionProvider] = None

    @property
    def configured(self) -> bool:
        return self.provider is not None


@dataclass
class PolicyOutcome:
    """Result of running the policy

    ``slot`` is NONE when no provider produced a completion.
    """
    slot: AIProvider
    completion: Optional[str] = None
    model: Optional[str] = None
    provider_name: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)
    unconfigured: List[str] = field(default_factory=list)

    @property
    def answered(self) -> bool:
        return self.slot != AIProvider.NONE


def is_transport_failure(exc: BaseException) -> bool:
    """Default retryable predicate: provider transport errors and call timeouts"""
    return isinstance(exc, (ProviderError, asyncio.TimeoutError))


class FallbackPolicy:
    """
    Tries providers in order until one returns a completion

    A retryable failure moves on to the next strategy; any other exception
    propagates. A completion is returned as-is: whether it can be parsed is
    the caller's concern, and a parse failure never triggers the next
    provider.
    """

    def __init__(
        self,
        strategies: Sequence[ProviderStrategy],
        is_retryable: Callable[[BaseException], bool] = is_transport_failure,
        timeout_s: Optional[float] = None,
    ):
        self.strategies = list(strategies)
        self.is_retryable = is_retryable
        self.timeout_s = timeout_s

    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> PolicyOutcome:
        errors: Dict[str, str] = {}
        unconfigured: List[str] = []

        for strategy in self.strategies:
            slot = strategy.slot.value
            if not strategy.configured:
                errors[slot] = NOT_CONFIGURED
                unconfigured.append(slot)
                logger.debug("Provider not configured, skipping", slot=slot)
                continue

            provider = strategy.provider
            try:
                logger.info("Sending request to AI provider", slot=slot, provider=provider.name)
                call = provider.complete(prompt, max_tokens=max_tokens, temperature=temperature)
                if self.timeout_s:
                    completion = await asyncio.wait_for(call, timeout=self.timeout_s)
                else:
                    completion = await call
            except Exception as e:
                if not self.is_retryable(e):
                    record_provider_attempt(provider.name, "fatal")
                    raise
                message = str(e) or f"Timed out after {self.timeout_s}s"
                errors[slot] = message
                record_provider_attempt(provider.name, "failure")
                logger.warning(
                    "AI provider failed, trying next",
                    slot=slot,
                    provider=provider.name,
                    error=message,
                )
                continue

            record_provider_attempt(provider.name, "success")
            return PolicyOutcome(
                slot=strategy.slot,
                completion=completion,
                model=provider.model,
                provider_name=provider.name,
                errors=errors,
                unconfigured=unconfigured,
            )

        logger.error("All AI providers failed", errors=errors)
        return PolicyOutcome(slot=AIProvider.NONE, errors=errors, unconfigured=unconfigured)

    async def close(self) -> None:
        for strategy in self.strategies:
            if strategy.provider is not None:
                await strategy.provider.close()
