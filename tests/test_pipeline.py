import asyncio

import pytest

from fakes import (
    REFERENCE_SERVER_COMMAND,
    SLEEPING_SERVER_COMMAND,
    FakeEngine,
    FakeProvider,
    failing_provider,
    make_policy,
    validation_json,
)
from labelcheck.config import Settings
from labelcheck.core.enums import ComplianceStatus, Severity, Stage
from labelcheck.dependencies import build_pipeline, close_pipeline
from labelcheck.infrastructure.regulatory.transport import SubprocessToolTransport
from labelcheck.models.requests import LabelJob

LABEL_TEXT = "INGREDIENTS: Water, Sugar, Salt"


def settings(**overrides):
    values = dict(REGULATORY_TOOL_TIMEOUT_S=30.0, PIPELINE_TIMEOUT_S=60.0)
    values.update(overrides)
    return Settings(**values)


def run_pipeline(job, engine, policy, command=REFERENCE_SERVER_COMMAND, **overrides):
    pipeline = build_pipeline(
        settings(**overrides),
        engine=engine,
        policy=policy,
        transport=SubprocessToolTransport(command),
    )

    async def run():
        try:
            return await pipeline.run(job)
        finally:
            await close_pipeline(pipeline)

    return asyncio.run(run())


def test_clean_label_is_approved(png_base64):
    primary = FakeProvider("anthropic", validation_json(ingredients=["Water", "Sugar", "Salt"]))
    job = LabelJob(image_base64=png_base64, filename="syrup.png", workflow_id="wf-e2e")

    verdict = run_pipeline(job, FakeEngine(LABEL_TEXT, confidence=93.0), make_policy(primary, None))

    assert verdict.status == ComplianceStatus.APPROVED
    assert verdict.workflow_id == "wf-e2e"
    assert verdict.filename == "syrup.png"
    assert verdict.ingredients == ["Water", "Sugar", "Salt"]
    assert verdict.corrected_text == LABEL_TEXT
    assert verdict.stage_completion.extraction
    assert verdict.stage_completion.ai_validation
    assert verdict.stage_completion.regulatory_check
    assert verdict.blocking_findings == []
    regulatory = [f for f in verdict.findings if f.stage == Stage.REGULATORY]
    assert not [f for f in regulatory if f.severity in (Severity.WARNING, Severity.COMPLIANCE)]
    assert "FDA_VALIDATION_SUMMARY" in [f.type for f in verdict.recommendations]
    assert LABEL_TEXT in primary.prompts[0]


def test_ai_compliance_issue_requires_review(png_base64):
    primary = FakeProvider("anthropic", validation_json(compliance_issues=["Missing net quantity statement"]))

    verdict = run_pipeline(LabelJob(image_base64=png_base64), FakeEngine(LABEL_TEXT), make_policy(primary, None))

    assert verdict.status == ComplianceStatus.REQUIRES_REVIEW
    assert [f.type for f in verdict.blocking_findings] == ["AI_COMPLIANCE_ISSUE"]


def test_ocr_failure_stops_the_run(png_base64):
    primary = FakeProvider("anthropic", validation_json())

    verdict = run_pipeline(
        LabelJob(image_base64=png_base64), FakeEngine(error="engine crashed"), make_policy(primary, None)
    )

    assert verdict.status == ComplianceStatus.REQUIRES_REVIEW
    assert [f.type for f in verdict.findings] == ["OCR_FAILED"]
    assert verdict.stage_completion.extraction
    assert not verdict.stage_completion.ai_validation
    assert primary.prompts == []


def test_blank_label_requires_review(png_base64):
    primary = FakeProvider("anthropic", validation_json())

    verdict = run_pipeline(LabelJob(image_base64=png_base64), FakeEngine("", confidence=0.0), make_policy(primary, None))

    assert verdict.status == ComplianceStatus.REQUIRES_REVIEW
    assert [f.type for f in verdict.blocking_findings] == ["OCR_NO_TEXT"]
    assert verdict.blocking_findings[0].stage == Stage.EXTRACTION
    assert verdict.stage_completion.extraction
    assert not verdict.stage_completion.ai_validation
    assert primary.prompts == []


def test_allergen_without_contains_statement_only_warns(png_base64):
    text = "INGREDIENTS: Water, Sugar, Whole Milk"
    primary = FakeProvider(
        "anthropic",
        validation_json(ingredients=["Water", "Sugar", "Whole Milk"], corrected_text=text, allergens=[]),
    )

    verdict = run_pipeline(LabelJob(image_base64=png_base64), FakeEngine(text), make_policy(primary, None))

    undeclared = [f for f in verdict.findings if f.type == "FDA_UNDECLARED_ALLERGEN"]
    assert [f.ingredient for f in undeclared] == ["Whole Milk"]
    assert undeclared[0].severity == Severity.WARNING
    assert verdict.status == ComplianceStatus.APPROVED


def test_provider_outage_requires_review_and_skips_tools(png_base64):
    policy = make_policy(failing_provider("anthropic"), failing_provider("openai"))

    verdict = run_pipeline(LabelJob(image_base64=png_base64), FakeEngine(LABEL_TEXT), policy)

    types = [f.type for f in verdict.findings]
    assert verdict.status == ComplianceStatus.REQUIRES_REVIEW
    assert "AI_VALIDATION_UNAVAILABLE" in types
    assert "FDA_NO_INGREDIENTS" in types
    assert verdict.stage_completion.ai_validation
    assert not verdict.stage_completion.regulatory_check
    assert verdict.corrected_text == LABEL_TEXT


def test_unresponsive_tool_only_warns(png_base64):
    primary = FakeProvider("anthropic", validation_json())

    verdict = run_pipeline(
        LabelJob(image_base64=png_base64),
        FakeEngine(LABEL_TEXT),
        make_policy(primary, None),
        command=SLEEPING_SERVER_COMMAND,
        REGULATORY_TOOL_TIMEOUT_S=0.5,
    )

    unavailable = [f for f in verdict.findings if f.type == "FDA_SERVICE_UNAVAILABLE"]
    assert unavailable
    assert all(f.severity == Severity.WARNING for f in unavailable)
    assert verdict.status == ComplianceStatus.APPROVED


class SlowProvider(FakeProvider):
    async def complete(self, prompt, max_tokens, temperature):
        await asyncio.sleep(10)
        return ""


def test_run_deadline_returns_partial_verdict(png_base64):
    verdict = run_pipeline(
        LabelJob(image_base64=png_base64),
        FakeEngine(LABEL_TEXT),
        make_policy(SlowProvider("anthropic"), None),
        PIPELINE_TIMEOUT_S=1.0,
        AI_TIMEOUT_S=30.0,
    )

    timeouts = [f for f in verdict.findings if f.type == "PIPELINE_TIMEOUT"]
    assert verdict.status == ComplianceStatus.REQUIRES_REVIEW
    assert timeouts[0].details["stage"] == "ai_validation"
    assert verdict.stage_completion.extraction
    assert not verdict.stage_completion.ai_validation
    assert verdict.corrected_text == LABEL_TEXT


def test_host_cancellation_propagates(png_base64):
    pipeline = build_pipeline(
        settings(),
        engine=FakeEngine(LABEL_TEXT),
        policy=make_policy(SlowProvider("anthropic"), None),
        transport=SubprocessToolTransport(REFERENCE_SERVER_COMMAND),
    )

    async def cancel_midway():
        task = asyncio.ensure_future(pipeline.run(LabelJob(image_base64=png_base64)))
        await asyncio.sleep(0.5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_midway())


def test_concurrent_runs_do_not_share_state(png_base64):
    pipeline = build_pipeline(
        settings(),
        engine=FakeEngine(LABEL_TEXT),
        policy=make_policy(FakeProvider("anthropic", validation_json()), None),
        transport=SubprocessToolTransport(REFERENCE_SERVER_COMMAND),
    )

    async def run_two():
        return await asyncio.gather(
            pipeline.run(LabelJob(image_base64=png_base64, workflow_id="wf-a")),
            pipeline.run(LabelJob(image_base64=png_base64, workflow_id="wf-b")),
        )

    first, second = asyncio.run(run_two())

    assert {first.workflow_id, second.workflow_id} == {"wf-a", "wf-b"}
    assert first.status == second.status == ComplianceStatus.APPROVED
