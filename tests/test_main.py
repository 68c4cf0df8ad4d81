import pytest

from fakes import REFERENCE_SERVER_COMMAND, FakeEngine, FakeProvider, make_policy, png_bytes, validation_json
from labelcheck import dependencies
from labelcheck.config import Settings
from labelcheck.infrastructure.regulatory.transport import SubprocessToolTransport
from labelcheck.main import build_parser, main


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_validate_needs_exactly_one_source():
    parser = build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["validate"])
    with pytest.raises(SystemExit):
        parser.parse_args(["validate", "label.png", "--url", "https://example.com/label.png"])

    ns = parser.parse_args(["validate", "--url", "https://example.com/label.png", "--json"])
    assert ns.url == "https://example.com/label.png"
    assert ns.json


def test_regulatory_server_skips_app_logging():
    ns = build_parser().parse_args(["regulatory-server"])

    assert ns.logs is False


def test_validate_prints_the_verdict(tmp_path, monkeypatch, capsys):
    image = tmp_path / "syrup.png"
    image.write_bytes(png_bytes())

    real_build_pipeline = dependencies.build_pipeline

    def fake_pipeline():
        return real_build_pipeline(
            Settings(_env_file=None, REGULATORY_TOOL_TIMEOUT_S=30.0),
            engine=FakeEngine("INGREDIENTS: Water, Sugar, Salt"),
            policy=make_policy(FakeProvider("anthropic", validation_json()), None),
            transport=SubprocessToolTransport(REFERENCE_SERVER_COMMAND),
        )

    monkeypatch.setattr(dependencies, "build_pipeline", fake_pipeline)

    metrics = tmp_path / "metrics.prom"

    code = main(["validate", str(image), "--metrics-file", str(metrics)])

    out = capsys.readouterr().out
    assert code == 0
    assert "Status: APPROVED" in out
    assert "Ingredients: Water, Sugar, Salt" in out
    assert "labelcheck_stage_runs_total" in metrics.read_text()


def test_blank_image_path_is_rejected():
    assert main(["validate", "   "]) == 2


def test_tools_lists_the_reference_server_tools(capsys):
    assert main(["tools"]) == 0

    out = capsys.readouterr().out
    for name in ("validate_ingredients", "check_additive_status", "validate_nutritional_claims", "check_allergen_requirements"):
        assert f"{name}:" in out
