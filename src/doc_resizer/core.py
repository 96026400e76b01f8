from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from threading import Event
from typing import Any, Callable, Mapping

from .batching import BatchExecutor, ProgressCallback
from .client import BatchClient, DocsClient, RemoteError
from .config import AppConfig
from .document import Document, DocumentDecodeError, decode_document
from .logging import ChunkLogEntry, RunLogger, RunSummary, append_summary_row
from .models import ChunkOutcome, ExecutionResult, ResizeOptions, ResizeResult
from .outline import DocumentStructure, build_structure, collect_images
from .planner import ResizePlan, plan_resizes, relay_rewriter
from .utils import RunPaths, atomic_write, ensure_run_paths, generate_run_id

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], DocsClient]


class ResizeError(RuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class _RunContext:
    run_id: str
    document_id: str
    run_paths: RunPaths | None
    logger: RunLogger | None

    def record_chunk(self, outcome: ChunkOutcome) -> None:
        if self.logger is None:
            return
        try:
            self.logger.append(ChunkLogEntry.from_outcome(self.run_id, self.document_id, outcome))
        except OSError as exc:
            logger.warning("Run %s: could not record chunk %d: %s", self.run_id, outcome.index, exc)


class ResizeService:
    def __init__(
        self,
        config: AppConfig,
        *,
        client_factory: ClientFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or self._default_client
        self._sleep = sleep

    def _default_client(self, access_token: str) -> DocsClient:
        return DocsClient(
            access_token,
            base_url=self._config.remote.base_url,
            timeout_s=self._config.remote.timeout_s,
        )

    def open_client(self, access_token: str) -> DocsClient:
        if not access_token:
            raise ResizeError("UNAUTHENTICATED", "An access token is required")
        return self._client_factory(access_token)

    def fetch_document(self, client: DocsClient, document_id: str) -> Document:
        try:
            raw = client.get_document(document_id)
        except RemoteError as exc:
            raise ResizeError("FETCH_FAILED", f"Could not fetch document {document_id}: {exc}") from exc
        return self._decode(raw, document_id)

    def _decode(self, raw: Mapping[str, Any], document_id: str) -> Document:
        try:
            document = decode_document(raw)
        except DocumentDecodeError as exc:
            raise ResizeError("INVALID_DOCUMENT", str(exc)) from exc
        if not document.document_id:
            document.document_id = document_id
        return document

    def structure(self, access_token: str, document_id: str) -> DocumentStructure:
        with self.open_client(access_token) as client:
            document = self.fetch_document(client, document_id)
        return build_structure(document)

    def plan(self, document: Document, options: ResizeOptions) -> ResizePlan:
        if options.target_width_cm is None or options.target_width_cm <= 0:
            raise ResizeError("INVALID_WIDTH", "Target width must be greater than zero")
        strategy = options.strategy or self._config.planner.strategy
        template = self._config.planner.relay_template
        return plan_resizes(
            collect_images(document),
            options.target_width_cm,
            options.selection,
            in_place=strategy == "property_update",
            uri_rewriter=relay_rewriter(template) if template else None,
        )

    def resize(
        self,
        access_token: str,
        document_id: str,
        options: ResizeOptions,
        *,
        run_id: str | None = None,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
    ) -> ResizeResult:
        with self.open_client(access_token) as client:
            document = self.fetch_document(client, document_id)
            return self.resize_document(
                client,
                document,
                options,
                run_id=run_id,
                progress=progress,
                cancellation=cancellation,
            )

    def resize_document(
        self,
        client: BatchClient,
        document: Document | Mapping[str, Any],
        options: ResizeOptions,
        *,
        run_id: str | None = None,
        progress: ProgressCallback | None = None,
        cancellation: Event | None = None,
    ) -> ResizeResult:
        """Plan and execute a resize against an already fetched snapshot."""
        if not isinstance(document, Document):
            document = self._decode(document, str(document.get("documentId") or ""))
        callback = progress or (lambda _: None)
        plan = self.plan(document, options)
        run_id = run_id or generate_run_id()
        callback(0.0)

        if not plan.actions:
            callback(1.0)
            return ResizeResult(
                run_id=run_id,
                document_id=document.document_id,
                execution=ExecutionResult(),
                warnings=plan.warnings,
                summary="No images found to resize",
            )

        preset = self._resolve_preset(options.preset)
        context = self._build_context(run_id, document.document_id)
        executor = BatchExecutor(client, preset, sleep=self._sleep)
        start = time.perf_counter()
        logger.info(
            "Run %s: resizing %d image(s) in %s to %.3fpt, chunk size %d",
            run_id,
            plan.total,
            document.document_id,
            plan.target_width_pt,
            preset.chunk_size,
        )
        execution = executor.execute(
            document.document_id,
            plan.actions,
            cancellation=cancellation,
            progress=callback,
            on_chunk=context.record_chunk,
        )
        elapsed = time.perf_counter() - start
        summary = (
            f"Processed {execution.success_count} images successfully, "
            f"{execution.failed_count} failed in {elapsed:.2f}s."
        )
        if execution.cancelled:
            summary += f" Canceled with {execution.skipped_count} not submitted."
        logger.info("Run %s: %s", run_id, summary)
        self._record_result(context, execution, plan)
        callback(1.0)
        return ResizeResult(
            run_id=run_id,
            document_id=document.document_id,
            execution=execution,
            warnings=plan.warnings,
            summary=summary,
            run_dir=str(context.run_paths.base_dir) if context.run_paths else None,
        )

    def _resolve_preset(self, name: str | None):
        try:
            return self._config.batch.resolve(name)
        except KeyError as exc:
            raise ResizeError("UNKNOWN_PRESET", str(exc)) from exc

    def _build_context(self, run_id: str, document_id: str) -> _RunContext:
        if not self._config.runtime.record_runs:
            return _RunContext(run_id=run_id, document_id=document_id, run_paths=None, logger=None)
        run_paths = ensure_run_paths(self._config, run_id)
        return _RunContext(
            run_id=run_id,
            document_id=document_id,
            run_paths=run_paths,
            logger=RunLogger(run_paths.log_file),
        )

    def _record_result(self, context: _RunContext, execution: ExecutionResult, plan: ResizePlan) -> None:
        if context.run_paths is None:
            return
        payload = {
            "run_id": context.run_id,
            "document_id": context.document_id,
            "target_width_pt": plan.target_width_pt,
            "results": execution.to_payload(),
            "warnings": plan.warnings,
        }
        atomic_write(context.run_paths.result_file, json.dumps(payload, indent=2))
        summary_path = self._config.runtime.output_dir / self._config.runtime.summary_csv
        append_summary_row(
            summary_path,
            context.run_id,
            RunSummary(
                document_id=context.document_id,
                total=execution.total_count,
                successes=execution.success_count,
                failures=execution.failed_count,
            ),
        )


__all__ = ["ResizeError", "ResizeService"]
