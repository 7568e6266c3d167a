from __future__ import annotations
from typing import Optional


class SpanEditorError(Exception):
    """Base class for pipeline errors.

    Every error names the document it concerns, the rule that produced the
    offending span (when there is one) and a human-readable cause.
    """

    def __init__(self, document: Optional[str], rule_id: Optional[str], cause: str):
        self.document = document
        self.rule_id = rule_id
        self.cause = cause
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.document:
            parts.append(self.document)
        if self.rule_id:
            parts.append(f"[{self.rule_id}]")
        parts.append(self.cause)
        return " ".join(parts)


class InvalidSpanError(SpanEditorError):
    """A detector returned an out-of-bounds or malformed span."""


class OrphanFindingError(SpanEditorError):
    """A finding references a document outside the known corpus."""


class ApplyConsistencyError(SpanEditorError):
    """The resolved plan no longer matches the document text."""


class RuleConfigError(SpanEditorError):
    """A rule pack could not be turned into a rule set."""

    def __init__(self, cause: str, source: Optional[str] = None, rule_id: Optional[str] = None):
        super().__init__(source, rule_id, cause)


class PipelineCancelled(SpanEditorError):
    """The caller abandoned the run before anything was written."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(None, None, f"run cancelled before {stage}")
