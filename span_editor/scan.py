from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import hashlib
import logging
import time

from span_editor.errors import InvalidSpanError
from span_editor.ir import Document, Finding, Span
from span_editor.rules.load_rules import Detector, RuleSet

logger = logging.getLogger(__name__)


def _mk_id(seed: str) -> str:
    return hashlib.sha1(seed.encode("utf-8")).hexdigest()[:12]


def _proposals(detector: Detector, document: Document) -> List[Tuple[Span, Optional[str]]]:
    try:
        propose = getattr(detector, "propose", None)
        if callable(propose):
            return list(propose(document))
        return [(span, None) for span in detector.match(document)]
    except InvalidSpanError:
        raise
    except Exception as e:
        raise InvalidSpanError(document.path, detector.id, f"detector failed: {type(e).__name__}: {e}") from e


def _check_span(span: object, document: Document, rule_id: str) -> Span:
    start = getattr(span, "start", None)
    end = getattr(span, "end", None)
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (start, end)):
        raise InvalidSpanError(document.path, rule_id, f"malformed span {span!r}")
    if start > end:
        raise InvalidSpanError(document.path, rule_id, f"span start {start} is after end {end}")
    if start < 0 or end > len(document.text):
        raise InvalidSpanError(
            document.path, rule_id,
            f"span {start}-{end} is outside the document (length {len(document.text)})",
        )
    return span if isinstance(span, Span) else Span(start, end)


def scan(document: Document, rule_set: RuleSet) -> List[Finding]:
    """Run every detector of ``rule_set`` over ``document``.

    Findings come back in rule order, then in the order each detector
    produced them. Overlapping or identical spans from different detectors
    are all kept. The document is never modified.

    Raises:
        InvalidSpanError: a detector produced a span that does not fit the
            document, or failed outright.
    """
    findings: List[Finding] = []
    for rule_index, detector in enumerate(rule_set):
        rationale = " ".join(str(getattr(detector, "rationale", "") or detector.description).split())
        advisory = bool(getattr(detector, "advisory", False))
        seen: Dict[Tuple[int, int], int] = {}
        for raw, after in _proposals(detector, document):
            span = _check_span(raw, document, detector.id)
            occ = seen.get((span.start, span.end), 0) + 1
            seen[(span.start, span.end)] = occ
            findings.append(Finding(
                id=_mk_id(f"{document.path}|{detector.id}|{span.start}|{span.end}|{occ}"),
                document=document.path,
                span=span,
                rule_id=detector.id,
                rationale=rationale,
                text=document.text[span.start:span.end],
                replacement=after,
                rule_index=rule_index,
                advisory=advisory,
                source_digest=document.digest,
            ))
    logger.debug(f"{document.path}: {len(findings)} findings from {len(rule_set)} detectors")
    return findings


@dataclass
class CorpusScan:
    """Findings per document (corpus order) plus per-document scan failures."""
    findings: Dict[str, List[Finding]] = field(default_factory=dict)
    errors: List[InvalidSpanError] = field(default_factory=list)

    @property
    def all_findings(self) -> List[Finding]:
        return [f for fs in self.findings.values() for f in fs]


def scan_corpus(
    documents: Sequence[Document],
    rule_set: RuleSet,
    max_workers: int = 4,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> CorpusScan:
    """
    Scan every document, fanning out over a thread pool.

    A document whose scan raises InvalidSpanError contributes no findings;
    the error is recorded and the remaining documents are still scanned.

    Args:
        documents: Corpus in the order results should be reported
        rule_set: Detectors to run
        max_workers: Worker threads; 1 scans sequentially
        progress_callback: Optional callable(completed, total)
    """
    total = len(documents)
    results: List[Optional[List[Finding]]] = [None] * total
    errors: List[Optional[InvalidSpanError]] = [None] * total
    if not documents:
        return CorpusScan()

    logger.info(f"Scanning {total} documents with {len(rule_set)} detectors ({max_workers} workers)")
    start_time = time.time()
    completed = 0

    def _record(idx: int, run: Callable[[], List[Finding]]) -> None:
        try:
            results[idx] = run()
        except InvalidSpanError as e:
            logger.warning(f"Scan failed: {e}")
            errors[idx] = e

    if max_workers <= 1 or total == 1:
        for idx, doc in enumerate(documents):
            _record(idx, lambda doc=doc: scan(doc, rule_set))
            completed += 1
            if progress_callback:
                progress_callback(completed, total)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_idx = {
                executor.submit(scan, doc, rule_set): idx
                for idx, doc in enumerate(documents)
            }
            for future in as_completed(future_to_idx):
                idx = future_to_idx[future]
                _record(idx, future.result)
                completed += 1
                if progress_callback:
                    progress_callback(completed, total)

    out = CorpusScan()
    for doc, found, err in zip(documents, results, errors):
        if err is not None:
            out.errors.append(err)
        else:
            out.findings[doc.path] = found or []

    elapsed = time.time() - start_time
    logger.info(f"Scanned {total} documents in {elapsed:.2f}s: {len(out.all_findings)} findings, {len(out.errors)} failed")
    return out
