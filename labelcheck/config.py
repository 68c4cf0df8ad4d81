"""
Application configuration via Pydantic Settings
"""
import shlex
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


REFERENCE_SERVER_PATH = (
    Path(__file__).parent / "infrastructure" / "regulatory" / "reference_server.py"
)


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env"""

    # Application Settings
    APP_NAME: str = "label-check"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # OCR Settings
    TESSERACT_CMD: Optional[str] = None
    OCR_LANG: str = "eng"
    OCR_PSM: int = Field(default=6, ge=0, le=13)  # 6 = single uniform block
    OCR_OEM: int = Field(default=1, ge=0, le=3)  # 1 = LSTM only
    OCR_CHAR_WHITELIST: str = (
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789.,;:%-()[]/&'!*\""
    )
    OCR_LOW_CONFIDENCE_THRESHOLD: float = 60.0
    OCR_TIMEOUT_S: float = 30.0
    OCR_PREPROCESS: bool = True

    # Image Settings
    MAX_IMAGE_SIZE_MB: int = 10
    ALLOWED_IMAGE_FORMATS: str = "jpg,jpeg,png,webp,tiff,bmp"
    IMAGE_FETCH_TIMEOUT_S: float = 15.0

    # AI Settings
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-20241022"
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "OPENAI_KEY"),
    )
    OPENAI_MODEL: str = "gpt-4o-mini"
    AI_MAX_TOKENS: int = 4000
    AI_TEMPERATURE: float = 0.1
    AI_TIMEOUT_S: float = 60.0

    # Regulatory tool Settings
    REGULATORY_TOOL_COMMAND: str = ""
    REGULATORY_TRANSPORT: str = "subprocess"  # subprocess | pool
    REGULATORY_TOOL_TIMEOUT_S: float = 5.0
    REGULATORY_MAX_CONCURRENCY: int = Field(default=4, ge=1)
    REGULATORY_POOL_SIZE: int = Field(default=2, ge=1)
    REGULATORY_CHECK_CLAIMS: bool = True
    REGULATORY_CHECK_ALLERGENS: bool = True

    # Pipeline Settings
    PIPELINE_TIMEOUT_S: float = 300.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def allowed_image_formats_list(self) -> List[str]:
        """Parse allowed image formats from a comma separated string"""
        return [fmt.strip().lower() for fmt in self.ALLOWED_IMAGE_FORMATS.split(",") if fmt.strip()]

    @property
    def regulatory_tool_command_list(self) -> List[str]:
        """Command used to start the regulatory tool server.

        Falls back to the bundled reference server run with the current
        interpreter.
        """
        if self.REGULATORY_TOOL_COMMAND.strip():
            return shlex.split(self.REGULATORY_TOOL_COMMAND)
        return [sys.executable, str(REFERENCE_SERVER_PATH)]


# Singleton instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return settings (singleton)"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
