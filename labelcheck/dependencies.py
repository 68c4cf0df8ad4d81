"""
Composition root - builds the pipeline from settings
"""
from functools import lru_cache
from typing import Optional

from labelcheck.config import Settings, get_settings
from labelcheck.core.enums import AIProvider, TransportMode
from labelcheck.core.exceptions import ConfigurationError
from labelcheck.core.logging import get_logger
from labelcheck.infrastructure.llm.anthropic_provider import AnthropicProvider
from labelcheck.infrastructure.llm.base_provider import BaseCompletionProvider
from labelcheck.infrastructure.llm.openai_provider import OpenAIProvider
from labelcheck.infrastructure.ocr_engines.base_engine import BaseOCREngine
from labelcheck.infrastructure.ocr_engines.tesseract_engine import TesseractOCREngine
from labelcheck.infrastructure.regulatory.client import RegulatoryClient
from labelcheck.infrastructure.regulatory.transport import (
    SubprocessToolTransport,
    ToolTransport,
    WorkerPoolToolTransport,
)
from labelcheck.services.ai_validation import AIValidationService
from labelcheck.services.pipeline import LabelValidationPipeline
from labelcheck.services.provider_policy import FallbackPolicy, ProviderStrategy
from labelcheck.services.regulatory_check import RegulatoryCheckService
from labelcheck.services.text_extraction import TextExtractionService

logger = get_logger(__name__)


@lru_cache()
def get_tesseract_engine() -> TesseractOCREngine:
    """
    Tesseract engine (singleton)

    Initialized once; a missing binary surfaces here as ConfigurationError.
    """
    settings = get_settings()

    engine = TesseractOCREngine(
        lang=settings.OCR_LANG,
        psm=settings.OCR_PSM,
        oem=settings.OCR_OEM,
        char_whitelist=settings.OCR_CHAR_WHITELIST,
        tesseract_cmd=settings.TESSERACT_CMD,
    )
    engine.initialize()

    return engine


def build_extraction_service(
    settings: Settings, engine: Optional[BaseOCREngine] = None
) -> TextExtractionService:
    if engine is None:
        engine = get_tesseract_engine()

    return TextExtractionService(
        engine=engine,
        max_image_size_mb=settings.MAX_IMAGE_SIZE_MB,
        allowed_formats=settings.allowed_image_formats_list,
        low_confidence_threshold=settings.OCR_LOW_CONFIDENCE_THRESHOLD,
        timeout_s=settings.OCR_TIMEOUT_S,
        fetch_timeout_s=settings.IMAGE_FETCH_TIMEOUT_S,
        preprocess=settings.OCR_PREPROCESS,
    )


def build_fallback_policy(settings: Settings) -> FallbackPolicy:
    """
    Primary then secondary provider

    A slot without an API key stays in the order as an unconfigured strategy
    so its absence is reported in the validation record.
    """
    primary: Optional[BaseCompletionProvider] = None
    secondary: Optional[BaseCompletionProvider] = None

    if settings.ANTHROPIC_API_KEY:
        primary = AnthropicProvider(
            api_key=settings.ANTHROPIC_API_KEY,
            model=settings.ANTHROPIC_MODEL,
            timeout=settings.AI_TIMEOUT_S,
        )
    if settings.OPENAI_API_KEY:
        secondary = OpenAIProvider(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            timeout=settings.AI_TIMEOUT_S,
        )

    if primary is None and secondary is None:
        logger.warning("No AI provider configured, AI validation will be unavailable")

    return FallbackPolicy(
        strategies=[
            ProviderStrategy(slot=AIProvider.PRIMARY, provider=primary),
            ProviderStrategy(slot=AIProvider.SECONDARY, provider=secondary),
        ],
        timeout_s=settings.AI_TIMEOUT_S,
    )


def build_tool_transport(settings: Settings) -> ToolTransport:
    command = settings.regulatory_tool_command_list
    try:
        mode = TransportMode(settings.REGULATORY_TRANSPORT.lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown regulatory transport: {settings.REGULATORY_TRANSPORT}",
            {"allowed": [m.value for m in TransportMode]},
        )

    logger.info("Regulatory tool transport configured", mode=mode.value, command=command)
    if mode == TransportMode.POOL:
        return WorkerPoolToolTransport(command, size=settings.REGULATORY_POOL_SIZE)
    return SubprocessToolTransport(command, max_concurrency=settings.REGULATORY_MAX_CONCURRENCY)


def build_regulatory_service(
    settings: Settings, transport: Optional[ToolTransport] = None
) -> RegulatoryCheckService:
    if transport is None:
        transport = build_tool_transport(settings)

    return RegulatoryCheckService(
        client=RegulatoryClient(transport, timeout_s=settings.REGULATORY_TOOL_TIMEOUT_S),
        check_claims=settings.REGULATORY_CHECK_CLAIMS,
        check_allergens=settings.REGULATORY_CHECK_ALLERGENS,
    )


def build_pipeline(
    settings: Optional[Settings] = None,
    engine: Optional[BaseOCREngine] = None,
    policy: Optional[FallbackPolicy] = None,
    transport: Optional[ToolTransport] = None,
) -> LabelValidationPipeline:
    """
    Wire the pipeline

    Args:
        settings: Settings (global settings if None)
        engine: OCR engine (Tesseract if None)
        policy: Provider fallback policy (built from API keys if None)
        transport: Regulatory tool transport (built from settings if None)
    """
    if settings is None:
        settings = get_settings()
    if policy is None:
        policy = build_fallback_policy(settings)

    return LabelValidationPipeline(
        extraction=build_extraction_service(settings, engine),
        ai_validation=AIValidationService(
            policy,
            max_tokens=settings.AI_MAX_TOKENS,
            temperature=settings.AI_TEMPERATURE,
        ),
        regulatory=build_regulatory_service(settings, transport),
        timeout_s=settings.PIPELINE_TIMEOUT_S,
    )


async def close_pipeline(pipeline: LabelValidationPipeline) -> None:
    """Close provider clients and tool processes held by a pipeline"""
    await pipeline.ai_validation.policy.close()
    await pipeline.regulatory.client.close()
