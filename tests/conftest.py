import base64

import pytest

from fakes import png_bytes


@pytest.fixture
def png_base64() -> str:
    return base64.b64encode(png_bytes()).decode("ascii")


@pytest.fixture(autouse=True)
def offline_regulatory_server(monkeypatch):
    # the reference server looks ingredients up online when this is set
    monkeypatch.delenv("FDA_API_KEY", raising=False)
