from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any, Dict, FrozenSet, Iterable, List, Optional
import hashlib
import re

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def detect_newline(text: str) -> Optional[str]:
    crlf = text.count("\r\n")
    lf = text.count("\n") - crlf
    cr = text.count("\r") - crlf
    kinds = [k for k, n in (("\r\n", crlf), ("\n", lf), ("\r", cr)) if n]
    if not kinds:
        return None
    if len(kinds) > 1:
        return "mixed"
    return kinds[0]


def text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class Document:
    path: str                        # identity within the corpus
    text: str                        # full text, line endings untouched
    encoding: str = "utf-8"
    newline: Optional[str] = None    # "\n" | "\r\n" | "\r" | "mixed" | None
    bom: bool = False
    metadata: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_text(cls, path: str, text: str, **kwargs: Any) -> "Document":
        return cls(path=path, text=text, newline=detect_newline(text), **kwargs)

    @cached_property
    def digest(self) -> str:
        return text_digest(self.text)

    @cached_property
    def _line_starts(self) -> List[int]:
        return [0] + [m.end() for m in _LINE_BREAK.finditer(self.text)]

    def line_of(self, offset: int) -> int:
        """1-based line number holding the character at ``offset``."""
        return bisect_right(self._line_starts, offset)

    def with_text(self, text: str) -> "Document":
        return replace(self, text=text)


@dataclass(frozen=True)
class Span:
    start: int
    end: int  # exclusive

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "Span") -> bool:
        if self.length == 0 and other.length == 0:
            return self.start == other.start
        if self.length == 0:
            return other.start < self.start < other.end
        if other.length == 0:
            return self.start < other.start < self.end
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class Finding:
    id: str
    document: str
    span: Span
    rule_id: str
    rationale: str
    text: str                          # flagged text as scanned
    replacement: Optional[str] = None  # None deletes the span
    rule_index: int = 0                # detector position in its rule set
    advisory: bool = False             # reported, never applied
    source_digest: str = ""            # digest of the text the span was found in

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document": self.document,
            "start": self.span.start,
            "end": self.span.end,
            "rule_id": self.rule_id,
            "rationale": self.rationale,
            "text": self.text,
            "replacement": self.replacement,
            "advisory": self.advisory,
        }


@dataclass
class DocumentSummary:
    document: str
    finding_count: int = 0
    by_rule: Dict[str, int] = field(default_factory=dict)
    superseded: List[str] = field(default_factory=list)
    advisory: int = 0
    original_digest: str = ""
    proposed_digest: str = ""

    @property
    def changes_proposed(self) -> bool:
        return self.original_digest != self.proposed_digest


@dataclass
class Report:
    findings: List[Finding] = field(default_factory=list)
    documents: List[DocumentSummary] = field(default_factory=list)
    superseded: Dict[str, str] = field(default_factory=dict)  # loser id -> winner id
    lines: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.findings

    def findings_for(self, document: str) -> List[Finding]:
        return [f for f in self.findings if f.document == document]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "findings": [
                dict(f.to_dict(), line=line, superseded_by=self.superseded.get(f.id))
                for f, line in zip(self.findings, self.lines)
            ],
            "documents": [
                {
                    "document": s.document,
                    "finding_count": s.finding_count,
                    "by_rule": dict(s.by_rule),
                    "superseded": list(s.superseded),
                    "advisory": s.advisory,
                    "original_digest": s.original_digest,
                    "proposed_digest": s.proposed_digest,
                }
                for s in self.documents
            ],
        }


@dataclass(frozen=True)
class Decision:
    approved: bool
    scope: Optional[FrozenSet[str]] = None  # rule ids and/or finding ids; None = everything

    @classmethod
    def approve(cls, scope: Optional[Iterable[str]] = None) -> "Decision":
        return cls(approved=True, scope=None if scope is None else frozenset(scope))

    @classmethod
    def reject(cls) -> "Decision":
        return cls(approved=False)

    def is_eligible(self, finding: Finding) -> bool:
        if not self.approved:
            return False
        if self.scope is None:
            return True
        return finding.id in self.scope or finding.rule_id in self.scope
