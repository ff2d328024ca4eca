"""Strategy stack orchestrator.

Decides pre-processing for the input file, then runs the configured
providers in order until one succeeds (first success wins). Every log line
is pushed to an optional progress sink so observers can poll live progress.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from . import pdf_text
from .config import TEXT_LAYER_MIN_CHARS
from .providers import ProviderRegistry
from .schema import StackResult, StrategyStep
from .utils import PDF_MIME, guess_mime_type, truncate

logger = logging.getLogger(__name__)

ProgressSink = Callable[[str], None]

TEXT_LAYER_PROVIDER = "PdfText"
SUCCESS_PREVIEW_CHARS = 1000


class _RunLog:
    """Accumulates timestamped lines and forwards the full text to a sink."""

    def __init__(self, sink: Optional[ProgressSink]) -> None:
        self.lines: list[str] = []
        self._sink = sink

    def add(self, message: str, level: int = logging.INFO) -> None:
        line = f"[{datetime.now(timezone.utc).isoformat()}] {message}"
        self.lines.append(line)
        logger.log(level, line)
        if self._sink is not None:
            self._sink(self.text)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _as_step(step: Any) -> StrategyStep:
    if isinstance(step, StrategyStep):
        return step
    if isinstance(step, str):
        return StrategyStep(name=step)
    return StrategyStep.model_validate(step)


class StrategyStackOrchestrator:
    """Runs a strategy stack against one file using an injected registry."""

    def __init__(
        self,
        registry: ProviderRegistry,
        min_text_chars: int = TEXT_LAYER_MIN_CHARS,
    ) -> None:
        self.registry = registry
        self.min_text_chars = min_text_chars

    def _prepare(
        self, file_path: str, stack: list[StrategyStep], run_log: _RunLog
    ) -> tuple[str, list[StrategyStep]]:
        """PDF pre-processing: prioritise the text layer or rasterize page 1."""
        if not pdf_text.has_text_layer(file_path, min_chars=self.min_text_chars):
            run_log.add("PDF looks like a scanned image. Converting to image for OCR...")
            try:
                working_file = pdf_text.rasterize_first_page(file_path)
            except Exception as exc:
                run_log.add(
                    f"PDF conversion error: {exc}. Continuing with the original file.",
                    logging.WARNING,
                )
                return file_path, stack
            run_log.add(f"PDF converted to: {working_file}")
            return working_file, stack

        run_log.add(f"PDF with text layer detected. Prioritising {TEXT_LAYER_PROVIDER}.")
        if not any(step.name == TEXT_LAYER_PROVIDER for step in stack):
            stack = [StrategyStep(name=TEXT_LAYER_PROVIDER), *stack]
        return file_path, stack

    def run(
        self,
        file_path: str,
        stack: Sequence[StrategyStep | str | dict],
        json_schema: dict[str, Any],
        on_progress: Optional[ProgressSink] = None,
    ) -> StackResult:
        run_log = _RunLog(on_progress)
        steps = [_as_step(step) for step in stack]

        working_file = file_path
        initial_mime = guess_mime_type(file_path)
        run_log.add(f"Starting processing stack for: {file_path} ({initial_mime})")

        if not steps:
            run_log.add("No strategies defined for this document type.", logging.WARNING)
            return StackResult(success=False, error="No strategies defined", logs=run_log.text)

        if initial_mime == PDF_MIME:
            working_file, steps = self._prepare(file_path, steps, run_log)

        try:
            return self._run_steps(working_file, initial_mime, steps, json_schema, run_log)
        finally:
            if working_file != file_path:
                _remove_working_file(working_file)

    def _run_steps(
        self,
        working_file: str,
        initial_mime: str,
        steps: list[StrategyStep],
        json_schema: dict[str, Any],
        run_log: _RunLog,
    ) -> StackResult:
        last_result = StackResult(success=False, error="No strategies defined")
        current_mime = guess_mime_type(working_file, default=None) or initial_mime

        for step in steps:
            if step.mime_types and current_mime not in step.mime_types:
                run_log.add(f"Strategy {step.name} skipped: type {current_mime} not allowed.")
                continue

            provider = self.registry.get(step.name)
            if provider is None:
                run_log.add(f"WARNING: strategy NOT FOUND: {step.name}", logging.WARNING)
                continue

            run_log.add(f"Running {step.name}...")
            try:
                result = provider.process(working_file, json_schema)
            except Exception as exc:
                run_log.add(f"CRITICAL ERROR in {step.name}: {exc}", logging.ERROR)
                last_result = StackResult(success=False, error=str(exc))
                continue

            if result.success:
                preview = truncate(result.raw_text, SUCCESS_PREVIEW_CHARS)
                run_log.add(f"SUCCESS with {step.name}. Extracted text: {preview}...")
                return StackResult(
                    **result.model_dump(),
                    logs=run_log.text,
                    provider=step.name,
                )

            run_log.add(f"FAILURE {step.name}: {result.error}", logging.WARNING)
            last_result = StackResult(**result.model_dump())

        run_log.add("Stack finished without success.", logging.WARNING)
        return last_result.model_copy(update={"logs": run_log.text})


def _remove_working_file(path: str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Error removing rendered page %s: %s", path, exc)
