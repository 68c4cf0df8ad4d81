"""
Text extraction stage - image reference to ExtractionResult
"""
import asyncio
import time
from concurrent.futures import Executor
from typing import List, Optional

import numpy as np

from labelcheck.infrastructure.ocr_engines.base_engine import BaseOCREngine, EngineResult
from labelcheck.models.domain import BoundingBox, ExtractionResult, OCRWord
from labelcheck.models.requests import LabelJob
from labelcheck.services.section_parser import detect_sections
from labelcheck.core.exceptions import LabelCheckError
from labelcheck.core.logging import get_logger
from labelcheck.observability.metrics import record_stage
from labelcheck.utils.image_utils import (
    bytes_to_numpy,
    decode_base64_image,
    fetch_image_bytes,
    get_image_dimensions,
    preprocess_image,
    read_image_file,
    validate_image_format,
    validate_image_size,
)

logger = get_logger(__name__)

PREVIEW_CHARS = 200


class TextExtractionService:
    """
    Runs the OCR engine on a job's image and normalizes its output

    Never raises: every failure is returned as an unsuccessful
    ExtractionResult with empty text and zero confidence.
    """

    def __init__(
        self,
        engine: BaseOCREngine,
        max_image_size_mb: int = 10,
        allowed_formats: Optional[List[str]] = None,
        low_confidence_threshold: float = 60.0,
        timeout_s: float = 30.0,
        fetch_timeout_s: float = 15.0,
        preprocess: bool = True,
        executor: Optional[Executor] = None,
    ):
        """
        Args:
            engine: OCR engine
            max_image_size_mb: Upper bound for image size
            allowed_formats: Accepted image formats
            low_confidence_threshold: Word confidence (0-100) below which a word counts as low confidence
            timeout_s: Deadline for one recognition
            fetch_timeout_s: Deadline for downloading an image URL
            preprocess: Grayscale/upscale before recognition
            executor: Executor for the blocking engine call (default loop executor if None)
        """
        self.engine = engine
        self.max_image_size_mb = max_image_size_mb
        self.allowed_formats = allowed_formats
        self.low_confidence_threshold = low_confidence_threshold
        self.timeout_s = timeout_s
        self.fetch_timeout_s = fetch_timeout_s
        self.preprocess = preprocess
        self.executor = executor

    async def extract(self, job: LabelJob) -> ExtractionResult:
        """
        Extract text from the job's image

        Args:
            job: Job with exactly one image reference

        Returns:
            ExtractionResult, with success=False on any failure
        """
        start_time = time.time()
        logger.info("Starting OCR", filename=job.filename, source=job.image_source)

        try:
            image_bytes = await self._load_image(job)
            validate_image_format(image_bytes, self.allowed_formats)
            validate_image_size(image_bytes, self.max_image_size_mb)
            image = bytes_to_numpy(image_bytes)
            if self.preprocess:
                image = preprocess_image(image)

            width, height = get_image_dimensions(image_bytes)
            logger.debug("Image prepared", width=width, height=height)

            engine_result = await asyncio.wait_for(
                self._run_engine(image),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            return self._failure(
                job, f"OCR timed out after {self.timeout_s}s", start_time
            )
        except LabelCheckError as e:
            return self._failure(job, e.message, start_time)
        except Exception as e:
            logger.error("Unexpected OCR error", error=str(e), exc_info=True)
            return self._failure(job, str(e), start_time)

        result = self.build_result(
            engine_result,
            filename=job.filename,
            image_source=job.image_source,
            low_confidence_threshold=self.low_confidence_threshold,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        record_stage("extraction", "success")

        preview = result.text[:PREVIEW_CHARS] + ("..." if len(result.text) > PREVIEW_CHARS else "")
        logger.info(
            "OCR completed",
            confidence=round(result.confidence, 3),
            words=result.total_words,
            lines=len(result.lines),
            low_confidence_words=result.low_confidence_words,
            sections=sorted(result.detected_sections),
            processing_time_ms=result.processing_time_ms,
        )
        logger.debug("Extracted text preview", preview=preview)
        return result

    async def _load_image(self, job: LabelJob) -> bytes:
        loop = asyncio.get_running_loop()
        if job.image_url:
            return await loop.run_in_executor(
                self.executor, fetch_image_bytes, job.image_url, self.fetch_timeout_s
            )
        if job.image_path:
            return await loop.run_in_executor(self.executor, read_image_file, job.image_path)
        return decode_base64_image(job.image_base64)

    async def _run_engine(self, image: np.ndarray) -> EngineResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.engine.extract_text, image)

    def _failure(self, job: LabelJob, error: str, start_time: float) -> ExtractionResult:
        record_stage("extraction", "failure")
        logger.error("OCR processing failed", filename=job.filename, error=error)
        return ExtractionResult.failed(
            error=error,
            filename=job.filename,
            image_source=job.image_source,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    @staticmethod
    def build_result(
        engine_result: EngineResult,
        filename: Optional[str] = None,
        image_source: str = "buffer",
        low_confidence_threshold: float = 60.0,
        processing_time_ms: int = 0,
    ) -> ExtractionResult:
        """Normalize raw engine output into an ExtractionResult"""
        words = [
            OCRWord(
                text=word.text,
                confidence=word.confidence,
                bbox=BoundingBox(x0=word.bbox[0], y0=word.bbox[1], x1=word.bbox[2], y1=word.bbox[3])
                if word.bbox else None,
            )
            for word in engine_result.words
        ]
        text = engine_result.text.strip()
        lines = [line.strip() for line in engine_result.lines if line.strip()]
        mean_confidence = max(0.0, min(100.0, engine_result.mean_confidence))

        return ExtractionResult(
            success=True,
            filename=filename,
            image_source=image_source,
            text=text,
            confidence=mean_confidence / 100,
            mean_confidence=mean_confidence,
            words=words,
            lines=lines,
            total_words=len(words),
            low_confidence_words=sum(1 for w in words if w.confidence < low_confidence_threshold),
            average_word_confidence=(
                sum(w.confidence for w in words) / len(words) if words else 0.0
            ),
            detected_sections=detect_sections(text),
            processing_time_ms=processing_time_ms,
        )
