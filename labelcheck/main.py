"""
Command line entry point

    labelcheck validate label.png
    labelcheck validate --url https://example.com/label.jpg
    labelcheck additive "red 40"
    labelcheck tools
    labelcheck regulatory-server
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from labelcheck.config import get_settings
from labelcheck.core.exceptions import LabelCheckError
from labelcheck.core.logging import get_logger, setup_logging
from labelcheck.core.results import Ok
from labelcheck.models.domain import ComplianceVerdict, Finding
from labelcheck.models.requests import LabelJob
from labelcheck.observability.metrics import export_metrics

logger = get_logger(__name__)


def _print_verdict(verdict: ComplianceVerdict) -> None:
    print(f"Status: {verdict.status.value}")
    completion = verdict.stage_completion
    print(
        f"Stages: extraction={completion.extraction} "
        f"ai_validation={completion.ai_validation} "
        f"regulatory_check={completion.regulatory_check}"
    )
    if verdict.quality_tier is not None:
        print(f"OCR quality: {verdict.quality_tier.value}")
    if verdict.ingredients:
        print(f"Ingredients: {', '.join(verdict.ingredients)}")

    def _line(finding: Finding) -> str:
        subject = finding.ingredient or finding.claim
        suffix = f" [{subject}]" if subject else ""
        return f"  {finding.severity.value:<10} {finding.type}{suffix}: {finding.message}"

    if verdict.findings:
        print("Findings:")
        for finding in verdict.findings:
            print(_line(finding))
    if verdict.recommendations:
        print("Recommendations:")
        for finding in verdict.recommendations:
            print(_line(finding))


async def _validate(job: LabelJob) -> ComplianceVerdict:
    from labelcheck.dependencies import build_pipeline, close_pipeline

    pipeline = build_pipeline()
    try:
        return await pipeline.run(job)
    finally:
        await close_pipeline(pipeline)


def _cmd_validate(ns: argparse.Namespace) -> int:
    try:
        if ns.url:
            job = LabelJob(image_url=ns.url, filename=ns.filename or Path(ns.url).name or "label")
        else:
            job = LabelJob(image_path=ns.image, filename=ns.filename or Path(ns.image).name)
    except ValidationError as e:
        logger.error("Invalid job", errors=e.errors())
        return 2

    try:
        verdict = asyncio.run(_validate(job))
    except LabelCheckError as e:
        logger.error("Label validation could not start", error=e.message, details=e.details)
        return 2

    if ns.json:
        print(verdict.model_dump_json(indent=2))
    else:
        _print_verdict(verdict)
    if ns.metrics_file:
        Path(ns.metrics_file).write_bytes(export_metrics())
    return 0 if verdict.status.value == "APPROVED" else 1


async def _additive(name: str):
    from labelcheck.dependencies import build_regulatory_service

    service = build_regulatory_service(get_settings())
    try:
        return await service.check_additive_status(name)
    finally:
        await service.client.close()


def _cmd_additive(ns: argparse.Namespace) -> int:
    result = asyncio.run(_additive(ns.additive))
    print(result.model_dump_json(indent=2, by_alias=True))
    return 0 if getattr(result, "is_approved", False) else 1


async def _list_tools():
    from labelcheck.dependencies import build_regulatory_service

    service = build_regulatory_service(get_settings())
    try:
        return await service.client.list_tools()
    finally:
        await service.client.close()


def _cmd_tools(ns: argparse.Namespace) -> int:
    result = asyncio.run(_list_tools())
    if not isinstance(result, Ok):
        logger.error("Could not list regulatory tools", error=str(result))
        return 1
    for tool in result.value:
        print(f"{tool.get('name')}: {tool.get('description', '')}")
    return 0


def _cmd_regulatory_server(ns: argparse.Namespace) -> int:
    from labelcheck.infrastructure.regulatory import reference_server

    reference_server.main()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="labelcheck", description="Product label compliance checks")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Run the full pipeline on one label image")
    source = validate.add_mutually_exclusive_group(required=True)
    source.add_argument("image", nargs="?", help="Path to the label image")
    source.add_argument("--url", help="Fetch the label image from a URL")
    validate.add_argument("--filename", help="File name reported in the verdict")
    validate.add_argument("--json", action="store_true", help="Print the verdict as JSON")
    validate.add_argument("--metrics-file", help="Write prometheus metrics here after the run")
    validate.set_defaults(handler=_cmd_validate, logs=True)

    additive = subparsers.add_parser("additive", help="Look up the approval status of a food additive")
    additive.add_argument("additive")
    additive.set_defaults(handler=_cmd_additive, logs=True)

    tools = subparsers.add_parser("tools", help="List the tools the regulatory server exposes")
    tools.set_defaults(handler=_cmd_tools, logs=True)

    server = subparsers.add_parser(
        "regulatory-server", help="Serve the reference regulatory tools on stdin/stdout"
    )
    # the server logs to stderr itself; stdout carries responses only
    server.set_defaults(handler=_cmd_regulatory_server, logs=False)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)

    if ns.logs:
        settings = get_settings()
        setup_logging(log_level=settings.LOG_LEVEL, is_debug=settings.DEBUG)

    return ns.handler(ns)


if __name__ == "__main__":
    sys.exit(main())
