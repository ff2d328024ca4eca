"""Command-line interface: run a strategy stack locally or list providers."""

from __future__ import annotations

import argparse
import json
import sys

from .config import configure_logging
from .config_store import load_registry
from .orchestrator import StrategyStackOrchestrator
from .providers import build_default_registry
from .utils import ConfigNotFoundError, DocintakeError
from .validation import all_passed, validate_data


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""

    parser = argparse.ArgumentParser(
        prog="docintake",
        description="Extract structured data from scanned or digital documents.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a document type's strategy stack on one file.")
    run.add_argument("file_path", help="Path to the PDF or image.")
    run.add_argument(
        "--config",
        required=True,
        help="JSON file with tenants and documentTypes.",
    )
    run.add_argument("--doc-type", required=True, help="Document type slug.")
    run.add_argument(
        "--tenant",
        default=None,
        help="Tenant id (optional when the slug is unique in the config).",
    )
    run.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL env).")

    sub.add_parser("strategies", help="List available extraction providers.")
    return parser


def _find_doc_type(registry, slug: str, tenant_id: str | None):
    if tenant_id:
        return registry.get_document_type(tenant_id, slug)
    matches = [cfg for cfg in registry.document_types() if cfg.slug == slug]
    if len(matches) > 1:
        raise ConfigNotFoundError(f"Slug {slug!r} is defined for several tenants; pass --tenant")
    return matches[0] if matches else None


def _run(args: argparse.Namespace) -> dict:
    registry = load_registry(args.config)
    doc_config = _find_doc_type(registry, args.doc_type, args.tenant)
    if doc_config is None:
        raise ConfigNotFoundError(f"Config not found for document type {args.doc_type!r}")

    orchestrator = StrategyStackOrchestrator(build_default_registry())
    result = orchestrator.run(args.file_path, doc_config.strategy_stack, doc_config.json_schema)

    output = result.model_dump(mode="json")
    if result.success and doc_config.validation_rules:
        validation = validate_data(result.data, doc_config.validation_rules)
        output["validation_results"] = {
            field: [r.model_dump(mode="json") for r in results]
            for field, results in validation.items()
        }
        output["all_passed"] = all_passed(validation)
    return output


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "strategies":
            print(json.dumps(build_default_registry().describe(), indent=2))
            return 0

        configure_logging(args.log_level)
        output = _run(args)
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return 0 if output["success"] else 1
    except DocintakeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - safety net
        print(f"Unexpected error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
