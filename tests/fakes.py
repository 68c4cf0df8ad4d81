"""Fakes and payload builders shared by the tests"""
import io
import json
import sys
from typing import List, Optional

import numpy as np
from PIL import Image

from labelcheck.config import REFERENCE_SERVER_PATH
from labelcheck.core.enums import AIProvider
from labelcheck.core.exceptions import OCRProcessingError, ProviderError
from labelcheck.infrastructure.llm.base_provider import BaseCompletionProvider
from labelcheck.infrastructure.ocr_engines.base_engine import BaseOCREngine, EngineResult, EngineWord
from labelcheck.services.provider_policy import FallbackPolicy, ProviderStrategy

REFERENCE_SERVER_COMMAND = [sys.executable, str(REFERENCE_SERVER_PATH)]
SLEEPING_SERVER_COMMAND = [sys.executable, "-c", "import time; time.sleep(30)"]
FAILING_SERVER_COMMAND = [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"]


class FakeEngine(BaseOCREngine):
    """Returns fixed text, one word per token, all at the same confidence"""

    def __init__(self, text: str = "", confidence: float = 95.0, error: Optional[str] = None):
        self.text = text
        self.confidence = confidence
        self.error = error
        self.calls = 0

    def initialize(self) -> None:
        pass

    def extract_text(self, image: np.ndarray) -> EngineResult:
        self.calls += 1
        if self.error:
            raise OCRProcessingError(self.error)
        lines = self.text.splitlines()
        words = [
            EngineWord(text=token, confidence=self.confidence, bbox=(0, 0, 10, 10))
            for line in lines
            for token in line.split()
        ]
        return EngineResult(
            text=self.text,
            mean_confidence=self.confidence if words else 0.0,
            words=words,
            lines=lines,
        )

    def is_available(self) -> bool:
        return True


class FakeProvider(BaseCompletionProvider):
    """Answers with a canned completion or raises the given exception"""

    def __init__(self, name: str, completion: str = "", error: Optional[BaseException] = None):
        self.name = name
        self.model = f"{name}-model"
        self.completion = completion
        self.error = error
        self.prompts: List[str] = []

    async def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.completion


def failing_provider(name: str, message: str = "connection refused") -> FakeProvider:
    return FakeProvider(name, error=ProviderError(message, provider=name))


def make_policy(primary: Optional[BaseCompletionProvider], secondary: Optional[BaseCompletionProvider]) -> FallbackPolicy:
    return FallbackPolicy([
        ProviderStrategy(slot=AIProvider.PRIMARY, provider=primary),
        ProviderStrategy(slot=AIProvider.SECONDARY, provider=secondary),
    ])


def validation_json(
    ingredients=None,
    claims=None,
    nutritional_info=None,
    compliance_issues=None,
    is_valid=True,
    corrected_text="INGREDIENTS: Water, Sugar, Salt",
    allergens=None,
) -> str:
    payload = {
        "isValid": is_valid,
        "confidence": 0.92,
        "correctedText": corrected_text,
        "extractedInformation": {
            "productName": "Table Syrup",
            "ingredients": ingredients if ingredients is not None else ["Water", "Sugar", "Salt"],
            "claims": claims or [],
            "nutritionalInfo": nutritional_info or {},
            "allergens": allergens or [],
        },
        "ocrIssuesFound": [],
        "completenessScore": 8,
        "complianceIssues": compliance_issues or [],
        "recommendations": ["Add a net weight statement"],
        "qualityImprovement": "Minor",
    }
    return "Here is the result:\n```json\n" + json.dumps(payload, indent=2) + "\n```"


def png_bytes(width: int = 64, height: int = 32) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()
