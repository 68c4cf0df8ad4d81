"""
Custom exceptions for the label validation pipeline
"""
from typing import Optional


class LabelCheckError(Exception):
    """Base exception for the label validation pipeline"""
    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ImageValidationError(LabelCheckError):
    """Image could not be loaded or is not acceptable"""
    pass


class OCRProcessingError(LabelCheckError):
    """Text recognition failed"""
    pass


class ConfigurationError(LabelCheckError):
    """Invalid or missing configuration"""
    pass


class ProviderError(LabelCheckError):
    """A language model provider could not be reached or refused the call

    Covers transport, auth, rate-limit and timeout failures. A provider that
    answered with text we cannot interpret is not a ProviderError.
    """
    def __init__(self, message: str, provider: Optional[str] = None, details: dict = None):
        self.provider = provider
        super().__init__(message, details)


class ToolInvocationError(LabelCheckError):
    """The regulatory tool process failed (spawn error, non-zero exit, closed stream)"""
    pass


class ToolTimeoutError(ToolInvocationError):
    """The regulatory tool process did not answer in time and was killed"""
    pass
