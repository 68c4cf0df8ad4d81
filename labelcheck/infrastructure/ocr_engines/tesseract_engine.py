"""
Tesseract wrapper tuned for product label text
"""
import shlex
import time
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import pytesseract
from PIL import Image

from labelcheck.infrastructure.ocr_engines.base_engine import (
    BaseOCREngine,
    EngineResult,
    EngineWord,
)
from labelcheck.core.exceptions import ConfigurationError, OCRProcessingError
from labelcheck.core.logging import get_logger

logger = get_logger(__name__)

LineKey = Tuple[int, int, int, int]


class TesseractOCREngine(BaseOCREngine):
    """
    pytesseract based engine

    Uses word level TSV data so every word keeps its confidence and bounding
    box; lines are rebuilt from Tesseract's (page, block, paragraph, line)
    numbering.
    """

    def __init__(
        self,
        lang: str = "eng",
        psm: int = 6,
        oem: int = 1,
        char_whitelist: Optional[str] = None,
        tesseract_cmd: Optional[str] = None,
    ):
        """
        Configure the engine

        Args:
            lang: Tesseract language code(s), e.g. 'eng' or 'eng+fra'
            psm: Page segmentation mode
            oem: OCR engine mode
            char_whitelist: Characters Tesseract may emit
            tesseract_cmd: Path to the tesseract binary
        """
        self.lang = lang
        self.psm = psm
        self.oem = oem
        self.char_whitelist = char_whitelist
        self.tesseract_cmd = tesseract_cmd
        self._version: Optional[str] = None

        logger.info("Tesseract engine configured", lang=lang, psm=psm, oem=oem)

    def initialize(self) -> None:
        """Check that the tesseract binary can be used"""
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd

        try:
            self._version = str(pytesseract.get_tesseract_version())
            logger.info("Tesseract initialized", version=self._version)
        except Exception as e:
            logger.error("Failed to initialize Tesseract", error=str(e))
            raise ConfigurationError(
                f"Tesseract not available: {str(e)}",
                details={"error": str(e), "tesseract_cmd": self.tesseract_cmd}
            )

    @property
    def config_string(self) -> str:
        config = f"--psm {self.psm} --oem {self.oem}"
        if self.char_whitelist:
            # pytesseract shell-splits the config string
            config += " -c " + shlex.quote(f"tessedit_char_whitelist={self.char_whitelist}")
        return config

    def extract_text(self, image: np.ndarray) -> EngineResult:
        """
        Recognize text with Tesseract

        Args:
            image: Image as numpy array

        Returns:
            EngineResult

        Raises:
            OCRProcessingError: Tesseract failed
        """
        start_time = time.time()

        try:
            # tesseract works better on grayscale
            if len(image.shape) == 3:
                gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
            else:
                gray = image

            data = pytesseract.image_to_data(
                Image.fromarray(gray),
                lang=self.lang,
                config=self.config_string,
                output_type=pytesseract.Output.DICT,
            )
        except Exception as e:
            logger.error("Tesseract extraction failed", error=str(e))
            raise OCRProcessingError(
                f"Failed to extract text with Tesseract: {str(e)}",
                details={"error": str(e)}
            )

        result = self.parse_data(data)
        result.processing_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            "Tesseract extraction completed",
            words=len(result.words),
            lines=len(result.lines),
            mean_confidence=round(result.mean_confidence, 1),
            processing_time_ms=result.processing_time_ms
        )
        return result

    @staticmethod
    def parse_data(data: Dict[str, List]) -> EngineResult:
        """Turn pytesseract's image_to_data dict into words and lines"""
        words: List[EngineWord] = []
        lines: "OrderedDict[LineKey, List[str]]" = OrderedDict()

        for i, raw_text in enumerate(data.get("text", [])):
            text = (raw_text or "").strip()
            try:
                conf = float(data["conf"][i])
            except (TypeError, ValueError):
                conf = -1.0
            # -1 marks layout rows (page/block/paragraph/line), not words
            if not text or conf < 0:
                continue

            left = int(data["left"][i])
            top = int(data["top"][i])
            words.append(
                EngineWord(
                    text=text,
                    confidence=max(0.0, min(100.0, conf)),
                    bbox=(left, top, left + int(data["width"][i]), top + int(data["height"][i])),
                )
            )

            key = (
                int(data.get("page_num", [1] * (i + 1))[i]),
                int(data["block_num"][i]),
                int(data["par_num"][i]),
                int(data["line_num"][i]),
            )
            lines.setdefault(key, []).append(text)

        line_texts = [" ".join(parts) for parts in lines.values()]
        mean_confidence = (
            sum(word.confidence for word in words) / len(words) if words else 0.0
        )

        return EngineResult(
            text="\n".join(line_texts),
            mean_confidence=mean_confidence,
            words=words,
            lines=line_texts,
        )

    def is_available(self) -> bool:
        return self._version is not None

    def cleanup(self) -> None:
        logger.info("Cleaning up Tesseract engine")
        self._version = None
