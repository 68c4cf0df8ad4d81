"""
Image loading and validation helpers
"""
import base64
import binascii
import io
from pathlib import Path
from typing import Iterable, Optional, Tuple

import cv2
import numpy as np
import requests
from PIL import Image

from labelcheck.core.exceptions import ImageValidationError
from labelcheck.core.enums import ImageFormat

# Tesseract reads small print poorly below roughly this height
MIN_TEXT_FRIENDLY_HEIGHT = 1000


def decode_base64_image(base64_string: str) -> bytes:
    """
    Decode a base64 string into bytes

    Args:
        base64_string: Image in base64, optionally a data URI

    Returns:
        Decoded image bytes

    Raises:
        ImageValidationError: Decoding failed
    """
    # strip data:image/...;base64, prefix
    if "base64," in base64_string:
        base64_string = base64_string.split("base64,", 1)[1]

    try:
        image_bytes = base64.b64decode(base64_string, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageValidationError(
            f"Failed to decode base64 image: {str(e)}",
            details={"error": str(e)}
        )

    if not image_bytes:
        raise ImageValidationError("Decoded image is empty")
    return image_bytes


def read_image_file(path: str) -> bytes:
    """
    Read an image from a local path

    Raises:
        ImageValidationError: File missing or unreadable
    """
    image_file = Path(path)
    if not image_file.is_file():
        raise ImageValidationError(
            f"Image not found: {path}",
            details={"path": path}
        )
    try:
        return image_file.read_bytes()
    except OSError as e:
        raise ImageValidationError(
            f"Failed to read image: {str(e)}",
            details={"path": path, "error": str(e)}
        )


def fetch_image_bytes(url: str, timeout: float = 15.0, session: Optional[requests.Session] = None) -> bytes:
    """
    Download an image

    Args:
        url: http(s) URL
        timeout: Request timeout in seconds
        session: Optional requests session to reuse

    Raises:
        ImageValidationError: Download failed
    """
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ImageValidationError(
            f"Failed to download image: {str(e)}",
            details={"url": url, "error": str(e)}
        )

    if not response.content:
        raise ImageValidationError("Downloaded image is empty", details={"url": url})
    return response.content


def validate_image_format(image_bytes: bytes, allowed: Optional[Iterable[str]] = None) -> ImageFormat:
    """
    Check the image format

    Args:
        image_bytes: Image bytes
        allowed: Allowed format names, defaults to every ImageFormat

    Returns:
        Detected format

    Raises:
        ImageValidationError: Format not supported or image unreadable
    """
    allowed_formats = {fmt.lower() for fmt in allowed} if allowed else {f.value for f in ImageFormat}

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            format_lower = img.format.lower() if img.format else "unknown"
    except Exception as e:
        raise ImageValidationError(
            f"Failed to validate image format: {str(e)}",
            details={"error": str(e)}
        )

    if format_lower not in allowed_formats:
        raise ImageValidationError(
            f"Unsupported image format: {format_lower}",
            details={
                "format": format_lower,
                "supported_formats": sorted(allowed_formats)
            }
        )
    try:
        return ImageFormat(format_lower)
    except ValueError:
        raise ImageValidationError(
            f"Unsupported image format: {format_lower}",
            details={"format": format_lower}
        )


def validate_image_size(image_bytes: bytes, max_size_mb: int = 10) -> None:
    """
    Check the image size

    Raises:
        ImageValidationError: Image too large
    """
    size_mb = len(image_bytes) / (1024 * 1024)

    if size_mb > max_size_mb:
        raise ImageValidationError(
            f"Image size {size_mb:.2f}MB exceeds maximum {max_size_mb}MB",
            details={
                "size_mb": round(size_mb, 2),
                "max_size_mb": max_size_mb
            }
        )


def bytes_to_numpy(image_bytes: bytes) -> np.ndarray:
    """
    Convert image bytes into an RGB numpy array

    Raises:
        ImageValidationError: Conversion failed
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            if img.mode != "RGB":
                img = img.convert("RGB")
            return np.array(img)
    except Exception as e:
        raise ImageValidationError(
            f"Failed to convert image to numpy array: {str(e)}",
            details={"error": str(e)}
        )


def preprocess_image(image: np.ndarray) -> np.ndarray:
    """
    Grayscale the image and upscale small scans

    Label photos are often low resolution; a 2x cubic upscale helps the
    recognizer with small print.
    """
    if len(image.shape) == 3:
        gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    else:
        gray = image

    height = gray.shape[0]
    if 0 < height < MIN_TEXT_FRIENDLY_HEIGHT:
        gray = cv2.resize(gray, None, fx=2.0, fy=2.0, interpolation=cv2.INTER_CUBIC)
    return gray


def get_image_dimensions(image_bytes: bytes) -> Tuple[int, int]:
    """
    Image size

    Returns:
        Tuple (width, height), (0, 0) when unreadable
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return img.size
    except Exception:
        return (0, 0)
