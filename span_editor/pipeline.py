"""
Pipeline Orchestrator

Runs one pass over a corpus:
1. Load the corpus (read once)
2. Scan each document (optionally in parallel)
3. Build the report
4. Wait for the approval gate (skipped when there is nothing to report)
5. Apply approved findings per document
6. Verify and commit each rewritten document
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union
import logging
import os
import threading
import time

from span_editor.apply import MutationResult, apply_findings
from span_editor.corpus import CorpusProvider, InMemoryCorpus
from span_editor.errors import PipelineCancelled, SpanEditorError
from span_editor.gate import ApprovalGate
from span_editor.ir import Decision, Document, Report
from span_editor.report import build_report
from span_editor.rules.load_rules import RuleSet
from span_editor.scan import scan_corpus
from span_editor.verify import Violation, verify_idempotence

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class PipelineConfig:
    """Configuration for one pipeline run."""
    # Scanning
    max_workers: int = field(default_factory=lambda: int(os.environ.get("SPAN_EDIT_WORKERS", "4")))

    # After apply
    verify: bool = True     # rescan rewritten text for re-flagged edits
    commit: bool = True     # write rewritten documents back through the corpus


@dataclass
class StageError:
    stage: str              # scan | apply | verify | commit
    document: Optional[str]
    rule_id: Optional[str]
    message: str

    @classmethod
    def from_exception(cls, stage: str, exc: Exception, document: Optional[str] = None) -> "StageError":
        if isinstance(exc, SpanEditorError):
            return cls(stage=stage, document=exc.document or document, rule_id=exc.rule_id, message=exc.cause)
        return cls(stage=stage, document=document, rule_id=None, message=f"{type(exc).__name__}: {exc}")

    def __str__(self) -> str:
        where = self.document or "-"
        rule = f" [{self.rule_id}]" if self.rule_id else ""
        return f"{self.stage}: {where}{rule} {self.message}"


@dataclass
class PipelineResult:
    documents: List[Document]
    report: Report
    decision: Optional[Decision] = None
    gate_skipped: bool = False
    mutations: List[MutationResult] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)
    errors: List[StageError] = field(default_factory=list)
    written: List[str] = field(default_factory=list)
    total_time_s: float = 0.0

    @property
    def status(self) -> str:
        if self.gate_skipped:
            return "no_findings"
        if self.decision is None or not self.decision.approved:
            return "rejected"
        return "applied"

    @property
    def changed_documents(self) -> List[Document]:
        return [m.document for m in self.mutations if m.ok and m.changed]

    @property
    def applied_count(self) -> int:
        return sum(len(m.applied) for m in self.mutations if m.ok)


def _check_cancel(cancel: Optional[threading.Event], stage: str) -> None:
    if cancel is not None and cancel.is_set():
        logger.info(f"Run cancelled before {stage}")
        raise PipelineCancelled(stage)


def run_pipeline(
    corpus: Union[CorpusProvider, Sequence[Document]],
    rule_set: RuleSet,
    gate: ApprovalGate,
    config: Optional[PipelineConfig] = None,
    progress_callback: Optional[ProgressCallback] = None,
    cancel: Optional[threading.Event] = None,
) -> PipelineResult:
    """
    Detect, report, wait for approval, then apply.

    Nothing is written unless the gate returns an approved decision. Errors
    confined to one document (bad spans, inconsistent plans, failed rescans,
    failed writes) are collected in ``PipelineResult.errors`` and the other
    documents carry on; report and gate errors propagate.

    Args:
        corpus: Corpus provider, or a plain sequence of Documents
        rule_set: Detectors, in priority order
        gate: Approval gate consulted once per run
        config: Pipeline configuration
        progress_callback: Optional callback(stage, completed, total)
        cancel: Optional event; once set, the run stops before the next
            stage that could write

    Raises:
        PipelineCancelled: ``cancel`` was set before the apply stage.
        OrphanFindingError: a finding referenced a document outside the corpus.
    """
    config = config or PipelineConfig()
    if not hasattr(corpus, "load"):
        corpus = InMemoryCorpus(corpus)
    start_time = time.time()

    # Stage 1: Load
    documents = corpus.load()
    paths = [d.path for d in documents]
    if len(set(paths)) != len(paths):
        raise ValueError("corpus lists the same document more than once")
    _check_cancel(cancel, "scan")

    # Stage 2: Scan
    def scan_progress(completed: int, total: int) -> None:
        if progress_callback:
            progress_callback("scanning", completed, total)

    scanned = scan_corpus(documents, rule_set, max_workers=config.max_workers, progress_callback=scan_progress)
    errors = [StageError.from_exception("scan", e) for e in scanned.errors]

    # Stage 3: Report
    report = build_report(scanned.all_findings, documents)
    result = PipelineResult(documents=documents, report=report, errors=errors)
    if progress_callback:
        progress_callback("reporting", 1, 1)

    if report.is_empty:
        logger.info("No findings; skipping approval")
        result.gate_skipped = True
        result.total_time_s = time.time() - start_time
        return result

    # Stage 4: Gate
    _check_cancel(cancel, "approval")
    decision = gate.await_decision(report)
    result.decision = decision
    if not decision.approved:
        logger.info("Decision: rejected; corpus left unmodified")
        result.total_time_s = time.time() - start_time
        return result
    _check_cancel(cancel, "apply")

    # Stage 5: Apply, verify, commit
    by_path = {d.path: d for d in documents}
    pending = [s.document for s in report.documents]
    for i, path in enumerate(pending):
        if progress_callback:
            progress_callback("applying", i + 1, len(pending))
        eligible = [f for f in report.findings_for(path) if decision.is_eligible(f)]
        if not any(not f.advisory for f in eligible):
            continue

        mutation = apply_findings(by_path[path], eligible)
        result.mutations.append(mutation)
        if not mutation.ok:
            result.errors.append(StageError.from_exception("apply", mutation.error, path))
            continue

        if config.verify:
            # rescan failures are recorded; the document still commits
            try:
                found = verify_idempotence(mutation, rule_set)
            except SpanEditorError as e:
                logger.warning(f"Verify failed for {path}: {e}")
                result.errors.append(StageError.from_exception("verify", e, path))
                found = []
            for v in found:
                logger.warning(f"{v.document}: {v.message}")
            result.violations.extend(found)

        if config.commit and mutation.changed:
            try:
                corpus.commit(mutation.document)
                result.written.append(path)
            except (OSError, SpanEditorError) as e:
                logger.error(f"Commit failed for {path}: {e}")
                result.errors.append(StageError.from_exception("commit", e, path))

    result.total_time_s = time.time() - start_time
    logger.info(f"Pipeline complete: {result.applied_count} edits in {len(result.changed_documents)} documents, "
                f"{len(result.errors)} errors")
    return result
