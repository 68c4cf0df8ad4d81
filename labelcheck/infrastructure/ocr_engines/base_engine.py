"""
Abstract base class for OCR engines
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np


@dataclass
class EngineWord:
    """Word recognized by the engine with its position"""
    text: str
    confidence: float  # engine scale, 0-100
    bbox: Optional[Tuple[int, int, int, int]] = None  # x0, y0, x1, y1


@dataclass
class EngineResult:
    """Raw engine output before normalization"""
    text: str
    mean_confidence: float  # engine scale, 0-100
    words: List[EngineWord] = field(default_factory=list)
    lines: List[str] = field(default_factory=list)
    processing_time_ms: int = 0


class BaseOCREngine(ABC):
    """
    Common interface for OCR engines

    Engines are synchronous and may block; callers run them in an executor.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Prepare the engine (load models, check binaries)"""
        pass

    @abstractmethod
    def extract_text(self, image: np.ndarray) -> EngineResult:
        """
        Recognize text in an image

        Args:
            image: Image as numpy array (RGB or grayscale)

        Returns:
            EngineResult with words, lines and mean confidence
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check that the engine is ready

        Returns:
            True if the engine can process images
        """
        pass

    def cleanup(self) -> None:
        """Release resources (optional)"""
        pass
