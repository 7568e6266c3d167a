from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Tuple
import logging

from span_editor.errors import ApplyConsistencyError
from span_editor.ir import Document, Finding, Span
from span_editor.verify import verify_non_interference

logger = logging.getLogger(__name__)

MutationState = Literal["unmodified", "spans_resolved", "rewritten", "committed"]


@dataclass
class Plan:
    """Non-overlapping operations, sorted by start descending."""
    operations: List[Finding] = field(default_factory=list)
    superseded: Dict[str, str] = field(default_factory=dict)  # loser id -> winner id


@dataclass
class MutationResult:
    original: Document
    document: Document                 # Document' once committed, else the original
    state: MutationState = "unmodified"
    applied: List[Finding] = field(default_factory=list)
    superseded: Dict[str, str] = field(default_factory=dict)
    edited_regions: List[Span] = field(default_factory=list)  # in rewritten coordinates
    error: Optional[ApplyConsistencyError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return self.document.text != self.original.text


def _priority(f: Finding) -> Tuple[int, int, int, str]:
    return (f.rule_index, f.span.start, f.span.length, f.id)


def resolve(findings: Iterable[Finding]) -> Plan:
    """
    Turn findings into a non-overlapping plan.

    Advisory findings never enter the plan. When spans overlap the finding
    from the earlier detector wins; ties go to the earlier start, then the
    shorter span. Losers are recorded against the winner that displaced them.
    """
    plan = Plan()
    kept: List[Finding] = []
    for f in sorted((f for f in findings if not f.advisory), key=_priority):
        winner = next((k for k in kept if k.span.overlaps(f.span)), None)
        if winner is None:
            kept.append(f)
        else:
            plan.superseded[f.id] = winner.id
    # equal starts: the longer span goes first so an insertion lands before it
    plan.operations = sorted(kept, key=lambda f: (f.span.start, f.span.end), reverse=True)
    return plan


def _check(document: Document, text: str, op: Finding) -> None:
    if op.document != document.path:
        raise ApplyConsistencyError(document.path, op.rule_id, f"finding {op.id} belongs to {op.document}")
    if op.source_digest and op.source_digest != document.digest:
        raise ApplyConsistencyError(
            document.path, op.rule_id,
            f"document changed since it was scanned (digest {document.digest}, finding {op.id} expects {op.source_digest})",
        )
    start, end = op.span.start, op.span.end
    if start < 0 or end > len(text) or start > end:
        raise ApplyConsistencyError(
            document.path, op.rule_id, f"span {start}-{end} of finding {op.id} is outside the text (length {len(text)})",
        )
    if text[start:end] != op.text:
        raise ApplyConsistencyError(
            document.path, op.rule_id, f"text at {start}-{end} no longer matches finding {op.id}",
        )


def _edited_regions(ops: List[Finding]) -> List[Span]:
    regions: List[Span] = []
    shift = 0
    for op in sorted(ops, key=lambda f: (f.span.start, f.span.end)):
        after = op.replacement or ""
        start = op.span.start + shift
        regions.append(Span(start, start + len(after)))
        shift += len(after) - op.span.length
    return regions


def apply_findings(document: Document, findings: Iterable[Finding]) -> MutationResult:
    """
    Apply approved findings to one document.

    The document moves unmodified -> spans_resolved -> rewritten -> committed.
    Any inconsistency between the plan and the text stops the rewrite: the
    result then holds the original document, state "unmodified" and the
    ApplyConsistencyError. Nothing is ever partially rewritten.
    """
    result = MutationResult(original=document, document=document)

    plan = resolve(findings)
    result.superseded = dict(plan.superseded)
    result.state = "spans_resolved"
    if plan.superseded:
        logger.debug(f"{document.path}: {len(plan.superseded)} findings superseded by overlapping spans")

    text = document.text
    try:
        for op in plan.operations:
            _check(document, text, op)
            # descending starts keep earlier offsets valid
            text = text[:op.span.start] + (op.replacement or "") + text[op.span.end:]
        result.state = "rewritten"

        ops = [(op.span, op.replacement) for op in plan.operations]
        violations = verify_non_interference(document.path, document.text, text, ops)
        if violations:
            raise ApplyConsistencyError(document.path, None, violations[0].message)
    except ApplyConsistencyError as e:
        logger.warning(f"Rewrite aborted, original kept: {e}")
        result.state = "unmodified"
        result.error = e
        result.superseded = {}
        return result

    result.applied = list(reversed(plan.operations))
    result.edited_regions = _edited_regions(plan.operations)
    result.document = document.with_text(text)
    result.state = "committed"
    logger.info(f"{document.path}: applied {len(result.applied)} edits")
    return result


def render(document: Document, findings: Iterable[Finding]) -> str:
    """Text the document would have if every non-advisory finding were applied."""
    result = apply_findings(document, findings)
    if result.error is not None:
        raise result.error
    return result.document.text
