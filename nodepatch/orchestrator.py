"""Batch controller coordinating index, select, plan, apply and validate per file."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from . import config
from .diff_engine import DiffEngine
from .errors import NodePatchError, SessionCancelled, StructuralViolation, WriteFailure
from .models import FileState, PatchOutcome, SessionReport, SourceFile
from .oracle import ContentOracle, OracleClient, OracleUsage
from .parser import MarkupIndexer, TreeSitterIndexer
from .planner import PatchPlanner, analyze_file_context
from .project import write_atomic
from .selector import RelevanceSelector
from .validation_engine import StructureValidator

logger = logging.getLogger(__name__)

Writer = Callable[[Path, str], None]


class PatchSession:
    """One modification session over a fixed set of project files.

    Files move through ``indexing -> selecting -> planning -> applying ->
    validating`` and end ``committed``, ``rolled_back`` or ``skipped``.
    Every per-file error becomes a :class:`PatchOutcome`; :meth:`run`
    always returns a report.
    """

    def __init__(
        self,
        oracle: ContentOracle,
        project_root: Path,
        files: Mapping[str, SourceFile],
        *,
        indexer: Optional[MarkupIndexer] = None,
        threshold: Optional[int] = None,
        max_workers: Optional[int] = None,
        oracle_concurrency: Optional[int] = None,
        dry_run: bool = False,
        writer: Optional[Writer] = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.files: Dict[str, SourceFile] = dict(files)
        self.threshold = config.RELEVANCE_THRESHOLD if threshold is None else threshold
        self.max_workers = max(1, config.MAX_WORKERS if max_workers is None else max_workers)
        self.dry_run = dry_run
        self.writer: Writer = writer or write_atomic

        self.usage = OracleUsage()
        self.client = OracleClient(
            oracle,
            usage=self.usage,
            max_concurrent=config.ORACLE_CONCURRENCY if oracle_concurrency is None else oracle_concurrency,
        )
        self.indexer = indexer or TreeSitterIndexer()
        self.selector = RelevanceSelector(self.client)
        self.planner = PatchPlanner(self.client)
        self.engine = DiffEngine()
        self.validator = StructureValidator()

        self._cancelled = threading.Event()
        self._files_lock = threading.Lock()
        self._path_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._path_locks_guard = threading.Lock()
        self.states: Dict[str, FileState] = {path: FileState.IDLE for path in self.files}

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop the session; committed files stay committed, others are abandoned."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, request: str, paths: Optional[Sequence[str]] = None) -> SessionReport:
        """Process *paths* (default: every loaded file) and return the report."""
        started = datetime.now(timezone.utc).isoformat()
        # One pipeline per path; a repeated path would patch a stale snapshot
        targets = list(dict.fromkeys(paths)) if paths is not None else list(self.files)

        if self.max_workers == 1 or len(targets) <= 1:
            outcomes = [self.process_file(request, path) for path in targets]
        else:
            outcomes = self._run_parallel(request, targets)

        report = SessionReport(
            request=request,
            outcomes=outcomes,
            oracle_calls=self.usage.calls,
            oracle_failures=self.usage.failures,
            started_at=started,
            finished_at=datetime.now(timezone.utc).isoformat(),
            dry_run=self.dry_run,
            cancelled=self.cancelled,
        )
        logger.info(
            "Session complete: %d/%d files committed, %d oracle calls",
            report.committed_count, report.files_analyzed, report.oracle_calls,
        )
        return report

    def _run_parallel(self, request: str, targets: List[str]) -> List[PatchOutcome]:
        results: Dict[int, PatchOutcome] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.process_file, request, path): index
                for index, path in enumerate(targets)
            }
            for future in concurrent.futures.as_completed(futures):
                index = futures[future]
                results[index] = future.result()
        return [results[index] for index in range(len(targets))]

    # ------------------------------------------------------------------
    # Per-file pipeline
    # ------------------------------------------------------------------

    def process_file(self, request: str, path: str) -> PatchOutcome:
        """Run the full pipeline for one file; never raises."""
        try:
            return self._pipeline(request, path)
        except SessionCancelled:
            self._transition(path, FileState.SKIPPED)
            return PatchOutcome(
                file_path=path, nodes_analyzed=0, nodes_selected=0, nodes_modified=0,
                success=False, reasoning="Session cancelled before commit", state=FileState.SKIPPED,
            )
        except NodePatchError as exc:
            logger.warning("%s: %s", path, exc)
            return self._failed(path, str(exc))
        except Exception as exc:
            logger.error("%s: unexpected error: %s", path, exc, exc_info=True)
            return self._failed(path, f"Unexpected error: {exc}")

    def _pipeline(self, request: str, path: str) -> PatchOutcome:
        with self._files_lock:
            source = self.files.get(path)
        if source is None:
            self._transition(path, FileState.SKIPPED)
            return PatchOutcome(
                file_path=path, nodes_analyzed=0, nodes_selected=0, nodes_modified=0,
                success=False, reasoning="File not loaded in this session", state=FileState.SKIPPED,
            )

        # Indexing
        self._transition(path, FileState.INDEXING)
        nodes = self.indexer.index(source)
        if not nodes:
            self._transition(path, FileState.SKIPPED)
            return PatchOutcome(
                file_path=path, nodes_analyzed=0, nodes_selected=0, nodes_modified=0,
                success=False, reasoning="No markup nodes found (unparsable or no JSX)",
                state=FileState.SKIPPED,
            )

        # Selecting
        self._transition(path, FileState.SELECTING)
        decision = self.selector.select_targets(request, source, nodes)
        if not decision.is_eligible(self.threshold):
            self._transition(path, FileState.SKIPPED)
            return PatchOutcome(
                file_path=path, nodes_analyzed=len(nodes), nodes_selected=0, nodes_modified=0,
                success=False, score=decision.score, state=FileState.SKIPPED,
                reasoning=f"Not selected (relevant={decision.is_relevant}, score={decision.score}, "
                          f"threshold={self.threshold}): {decision.reasoning}",
            )
        targets = [node for node in nodes if node.node_id in decision.target_node_ids]

        # Planning
        self._transition(path, FileState.PLANNING)
        with self._files_lock:
            project_files = list(self.files.values())
        context = analyze_file_context(source, project_files)
        plan = self.planner.plan(request, targets, context, all_nodes=nodes)

        with self._lock_for(path):
            # Spans are only valid for the content they were indexed from
            with self._files_lock:
                current = self.files[path]
            if current.content != source.content:
                logger.warning("%s: changed by another pipeline since indexing; edits discarded", path)
                self._transition(path, FileState.ROLLED_BACK)
                return PatchOutcome(
                    file_path=path, nodes_analyzed=len(nodes), nodes_selected=len(targets),
                    nodes_modified=0, success=False, score=decision.score,
                    state=FileState.ROLLED_BACK, follow_ups=tuple(plan.follow_ups),
                    reasoning="File changed during the session; edits discarded",
                )

            # Applying
            self._transition(path, FileState.APPLYING)
            if not plan.edits:
                return self._no_op(path, len(nodes), len(targets), decision.score, plan.follow_ups,
                                   "Oracle produced no edits; file left unchanged")

            fingerprint = self.validator.extract_fingerprint(source.content)
            applied = self.engine.apply_edits(source, targets, plan.edits)
            if applied.applied_count == 0:
                return self._no_op(path, len(nodes), len(targets), decision.score, plan.follow_ups,
                                   "No edits could be applied; file left unchanged")
            edited_spans = [node.span for node in targets if node.node_id in applied.applied_ids]

            # Validating
            self._transition(path, FileState.VALIDATING)
            try:
                new_content, validation = self.validator.enforce(
                    applied.new_content, fingerprint, source.content, edited_spans,
                )
            except StructuralViolation as exc:
                logger.warning("%s: %s", path, exc)
                self._transition(path, FileState.ROLLED_BACK)
                return PatchOutcome(
                    file_path=path, nodes_analyzed=len(nodes), nodes_selected=len(targets),
                    nodes_modified=0, success=False, score=decision.score,
                    state=FileState.ROLLED_BACK, errors=tuple(str(exc).split("; ")),
                    follow_ups=tuple(plan.follow_ups),
                    reasoning=f"Structural violation could not be repaired ({', '.join(exc.violations)}); "
                              "changes discarded",
                )
            if not validation.valid:
                logger.info("%s: structure repaired", path)

            self._check_cancelled()
            try:
                self._commit(source, new_content)
            except WriteFailure as exc:
                logger.error("%s: %s", path, exc)
                self._transition(path, FileState.ROLLED_BACK)
                return PatchOutcome(
                    file_path=path, nodes_analyzed=len(nodes), nodes_selected=len(targets),
                    nodes_modified=0, success=False, score=decision.score,
                    state=FileState.ROLLED_BACK, errors=(str(exc),),
                    follow_ups=tuple(plan.follow_ups),
                    reasoning="Write failed; original content kept",
                )

        self._transition(path, FileState.COMMITTED)
        reasoning = f"{applied.applied_count} node(s) updated"
        if validation.errors:
            reasoning += " after structural repair"
        if applied.dropped_ids:
            reasoning += f"; overlapping edits dropped: {', '.join(applied.dropped_ids)}"
        return PatchOutcome(
            file_path=path,
            nodes_analyzed=len(nodes),
            nodes_selected=len(targets),
            nodes_modified=applied.applied_count,
            success=True,
            reasoning=reasoning,
            state=FileState.COMMITTED,
            score=decision.score,
            errors=tuple(validation.errors),
            follow_ups=tuple(plan.follow_ups),
            diff=self.engine.create_diff(source.content, new_content, path),
        )

    def _commit(self, source: SourceFile, new_content: str) -> None:
        """Persist first, then update memory, so the two never diverge."""
        if not self.dry_run:
            try:
                self.writer(self.project_root / source.path, new_content)
            except OSError as exc:
                raise WriteFailure(f"Failed to write {source.path}: {exc}") from exc
        with self._files_lock:
            self.files[source.path] = source.with_content(new_content)
        logger.info("%s: committed%s", source.path, " (dry run)" if self.dry_run else "")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _no_op(
        self,
        path: str,
        analyzed: int,
        selected: int,
        score: int,
        follow_ups: Sequence[str],
        reasoning: str,
    ) -> PatchOutcome:
        self._transition(path, FileState.ROLLED_BACK)
        return PatchOutcome(
            file_path=path, nodes_analyzed=analyzed, nodes_selected=selected, nodes_modified=0,
            success=True, reasoning=reasoning, state=FileState.ROLLED_BACK, score=score,
            follow_ups=tuple(follow_ups),
        )

    def _failed(self, path: str, reason: str) -> PatchOutcome:
        self._transition(path, FileState.ROLLED_BACK)
        return PatchOutcome(
            file_path=path, nodes_analyzed=0, nodes_selected=0, nodes_modified=0,
            success=False, reasoning=reason, state=FileState.ROLLED_BACK, errors=(reason,),
        )

    def _transition(self, path: str, state: FileState) -> None:
        if state not in (FileState.SKIPPED, FileState.ROLLED_BACK, FileState.COMMITTED):
            self._check_cancelled()
        with self._files_lock:
            previous = self.states.get(path, FileState.IDLE)
            self.states[path] = state
        logger.debug("%s: %s -> %s", path, previous.value, state.value)

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise SessionCancelled("session cancelled")

    def _lock_for(self, path: str) -> threading.Lock:
        with self._path_locks_guard:
            return self._path_locks[path]
