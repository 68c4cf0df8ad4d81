import sys

import pytest

from labelcheck.config import REFERENCE_SERVER_PATH, Settings
from labelcheck.core.enums import TransportMode
from labelcheck.core.exceptions import ConfigurationError
from labelcheck.dependencies import build_fallback_policy, build_tool_transport
from labelcheck.infrastructure.regulatory.transport import SubprocessToolTransport, WorkerPoolToolTransport


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "OPENAI_KEY", "REGULATORY_TOOL_COMMAND", "REGULATORY_TRANSPORT"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.REGULATORY_TOOL_TIMEOUT_S == 5.0
    assert settings.PIPELINE_TIMEOUT_S == 300.0
    assert settings.REGULATORY_TRANSPORT == TransportMode.SUBPROCESS.value
    assert settings.ANTHROPIC_API_KEY is None
    assert settings.OPENAI_API_KEY is None


def test_openai_key_alias(monkeypatch):
    monkeypatch.setenv("OPENAI_KEY", "sk-test")

    assert Settings(_env_file=None).OPENAI_API_KEY == "sk-test"


def test_allowed_image_formats_are_normalized():
    settings = Settings(_env_file=None, ALLOWED_IMAGE_FORMATS=" PNG, jpg,,webp ")

    assert settings.allowed_image_formats_list == ["png", "jpg", "webp"]


def test_tool_command_defaults_to_reference_server():
    settings = Settings(_env_file=None)

    assert settings.regulatory_tool_command_list == [sys.executable, str(REFERENCE_SERVER_PATH)]


def test_tool_command_is_shell_split():
    settings = Settings(_env_file=None, REGULATORY_TOOL_COMMAND="node 'fda server/index.js' --stdio")

    assert settings.regulatory_tool_command_list == ["node", "fda server/index.js", "--stdio"]


def test_transport_mode_selects_transport():
    subprocess_transport = build_tool_transport(Settings(_env_file=None))
    pool_transport = build_tool_transport(Settings(_env_file=None, REGULATORY_TRANSPORT="POOL", REGULATORY_POOL_SIZE=3))

    assert isinstance(subprocess_transport, SubprocessToolTransport)
    assert isinstance(pool_transport, WorkerPoolToolTransport)


def test_unknown_transport_mode_is_a_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        build_tool_transport(Settings(_env_file=None, REGULATORY_TRANSPORT="http"))

    assert "http" in exc_info.value.message


def test_missing_keys_leave_unconfigured_strategies():
    policy = build_fallback_policy(Settings(_env_file=None))

    assert [strategy.provider for strategy in policy.strategies] == [None, None]


def test_default_whitelist_covers_label_punctuation():
    whitelist = Settings(_env_file=None).OCR_CHAR_WHITELIST

    for char in "&'!*\"%":
        assert char in whitelist
    assert "{" not in whitelist and "}" not in whitelist
