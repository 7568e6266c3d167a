"""
Report construction.

Groups findings per document, notes which overlapping findings the
mutator would set aside, and fingerprints the text each document would
have if everything reported were approved. The one-line-per-finding
format produced here is what approval front-ends parse:

    <document>:<lineStart>-<lineEnd> [<ruleId>] <rationale>
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import re

from span_editor.apply import render, resolve
from span_editor.errors import OrphanFindingError
from span_editor.ir import Document, DocumentSummary, Finding, Report, text_digest

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(
    r"^(?P<document>.+):(?P<line_start>\d+)-(?P<line_end>\d+) \[(?P<rule_id>[^\]\s]+)\] (?P<rationale>.*)$"
)


@dataclass(frozen=True)
class ReportLine:
    document: str
    line_start: int
    line_end: int
    rule_id: str
    rationale: str


def line_range(document: Document, finding: Finding) -> Tuple[int, int]:
    start, end = finding.span.start, finding.span.end
    first = document.line_of(start)
    last = document.line_of(end - 1) if end > start else first
    return first, last


def format_line(document: Document, finding: Finding) -> str:
    first, last = line_range(document, finding)
    rationale = " ".join(finding.rationale.split())
    return f"{finding.document}:{first}-{last} [{finding.rule_id}] {rationale}"


def parse_report_line(line: str) -> ReportLine:
    m = _LINE_RE.match(line.rstrip("\r\n"))
    if not m:
        raise ValueError(f"not a report line: {line!r}")
    return ReportLine(
        document=m.group("document"),
        line_start=int(m.group("line_start")),
        line_end=int(m.group("line_end")),
        rule_id=m.group("rule_id"),
        rationale=m.group("rationale"),
    )


def _sort_key(f: Finding):
    return (f.span.start, f.rule_index, f.span.length, f.id)


def build_report(findings: Iterable[Finding], corpus: Sequence[Document]) -> Report:
    """
    Build the report for one scan.

    Raises:
        OrphanFindingError: a finding names a document that is not in ``corpus``.
    """
    docs: Dict[str, Document] = {d.path: d for d in corpus}
    by_doc: Dict[str, List[Finding]] = {}
    for f in findings:
        if f.document not in docs:
            raise OrphanFindingError(f.document, f.rule_id, f"finding {f.id} references a document outside the corpus")
        by_doc.setdefault(f.document, []).append(f)

    report = Report()
    for doc in corpus:
        doc_findings = sorted(by_doc.get(doc.path, []), key=_sort_key)
        if not doc_findings:
            continue
        plan = resolve(doc_findings)
        summary = DocumentSummary(
            document=doc.path,
            finding_count=len(doc_findings),
            superseded=[f.id for f in doc_findings if f.id in plan.superseded],
            advisory=sum(1 for f in doc_findings if f.advisory),
            original_digest=doc.digest,
            proposed_digest=text_digest(render(doc, doc_findings)),
        )
        for f in doc_findings:
            summary.by_rule[f.rule_id] = summary.by_rule.get(f.rule_id, 0) + 1
            report.findings.append(f)
            report.lines.append(format_line(doc, f))
        report.superseded.update(plan.superseded)
        report.documents.append(summary)

    logger.info(f"Report: {len(report.findings)} findings across {len(report.documents)} documents, "
                f"{len(report.superseded)} superseded")
    return report


def _describe(f: Finding, winner: Optional[Finding]) -> List[str]:
    notes = []
    if f.advisory:
        notes.append("advisory: needs an author, never applied")
    elif f.replacement is None:
        notes.append("delete")
    else:
        notes.append(f"replace with {f.replacement!r}")
    if winner is not None:
        notes.append(f"superseded by [{winner.rule_id}] {winner.id}")
    return notes


def render_report(report: Report) -> str:
    if report.is_empty:
        return "No findings."
    by_id = {f.id: f for f in report.findings}
    lines: List[str] = []
    lines.append(f"Findings ({len(report.findings)}) in {len(report.documents)} document(s)")
    lines.append("")
    for f, line in zip(report.findings, report.lines):
        winner = by_id.get(report.superseded.get(f.id, ""))
        lines.append(line)
        lines.append(f"    {f.id}: " + "; ".join(_describe(f, winner)))
    lines.append("")
    lines.append("Summary")
    for s in report.documents:
        rules = ", ".join(f"{k}={v}" for k, v in s.by_rule.items())
        lines.append(f"- {s.document}: {s.finding_count} findings ({rules})"
                     + (f", {len(s.superseded)} superseded" if s.superseded else "")
                     + (f", {s.advisory} advisory" if s.advisory else ""))
        lines.append(f"  digest {s.original_digest} -> {s.proposed_digest}")
    return "\n".join(lines)
