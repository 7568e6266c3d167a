"""
Span Editor

Staged, human-gated span editing: detectors flag spans, a report is built,
an approval gate decides, and only approved spans are rewritten. Everything
outside an approved span is left byte-for-byte as it was.
"""
from span_editor.apply import MutationResult, apply_findings, resolve
from span_editor.corpus import FileCorpus, InMemoryCorpus, open_corpus
from span_editor.errors import (
    ApplyConsistencyError,
    InvalidSpanError,
    OrphanFindingError,
    PipelineCancelled,
    RuleConfigError,
    SpanEditorError,
)
from span_editor.gate import ApprovalGate, PromptGate, StaticGate
from span_editor.ir import Decision, Document, Finding, Report, Span
from span_editor.pipeline import PipelineConfig, PipelineResult, run_pipeline
from span_editor.report import build_report, format_line, parse_report_line, render_report
from span_editor.rules.load_rules import RuleSet, load_rules
from span_editor.scan import scan, scan_corpus

__all__ = [
    # Data model
    "Document",
    "Span",
    "Finding",
    "Report",
    "Decision",
    # Stages
    "RuleSet",
    "load_rules",
    "scan",
    "scan_corpus",
    "build_report",
    "format_line",
    "parse_report_line",
    "render_report",
    "ApprovalGate",
    "StaticGate",
    "PromptGate",
    "resolve",
    "apply_findings",
    "MutationResult",
    # Orchestration
    "run_pipeline",
    "PipelineConfig",
    "PipelineResult",
    # Corpora
    "InMemoryCorpus",
    "FileCorpus",
    "open_corpus",
    # Errors
    "SpanEditorError",
    "InvalidSpanError",
    "OrphanFindingError",
    "ApplyConsistencyError",
    "RuleConfigError",
    "PipelineCancelled",
]
