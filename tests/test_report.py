import pytest

from span_editor.errors import OrphanFindingError
from span_editor.ir import Document, Finding, Span, text_digest
from span_editor.report import build_report, format_line, parse_report_line, render_report
from span_editor.rules.load_rules import RuleSet, load_rules
from span_editor.scan import scan

SEVEN_LINES = "".join(f"line {i}\n" for i in range(1, 8))


class Lines:
    """Flags whole lines first..last (1-based, inclusive)."""

    def __init__(self, id, first, last):
        self.id = id
        self.description = f"lines {first}-{last}"
        self.first, self.last = first, last

    def match(self, document):
        starts = [0]
        for i, c in enumerate(document.text):
            if c == "\n":
                starts.append(i + 1)
        return [Span(starts[self.first - 1], starts[self.last])]


def test_overlapping_findings_both_listed_with_winner_noted():
    doc = Document.from_text("notes.txt", SEVEN_LINES)
    rules = RuleSet([Lines("rule-a", 3, 5), Lines("rule-b", 4, 6)])
    findings = scan(doc, rules)
    report = build_report(findings, [doc])
    a, b = report.findings
    assert (a.rule_id, b.rule_id) == ("rule-a", "rule-b")
    assert report.lines == ["notes.txt:3-5 [rule-a] lines 3-5", "notes.txt:4-6 [rule-b] lines 4-6"]
    assert report.superseded == {b.id: a.id}
    assert report.documents[0].superseded == [b.id]
    text = render_report(report)
    assert f"superseded by [rule-a] {a.id}" in text


def test_findings_sorted_by_start_within_document():
    doc = Document.from_text("p.md", "Certainly! We leverage caching — often.")
    report = build_report(scan(doc, load_rules("ai-writing")), [doc])
    starts = [f.span.start for f in report.findings]
    assert starts == sorted(starts)
    assert [f.rule_id for f in report.findings] == ["ai-chat-artifact", "ai-hype-vocab", "ai-em-dash"]


def test_groups_by_corpus_order():
    first = Document.from_text("b.py", "x = 1  # was 2\n")
    second = Document.from_text("a.py", "# removed old handler\ny = 2\n")
    rules = load_rules("transient-comments")
    findings = scan(second, rules) + scan(first, rules)
    report = build_report(findings, [first, second])
    assert [s.document for s in report.documents] == ["b.py", "a.py"]
    assert [f.document for f in report.findings] == ["b.py", "a.py"]


def test_proposed_digest_matches_rewritten_text():
    doc = Document.from_text("Foo.c", "// moved to Foo.java\nint x = 1;")
    report = build_report(scan(doc, load_rules("transient-comments")), [doc])
    summary = report.documents[0]
    assert summary.original_digest == doc.digest
    assert summary.proposed_digest == text_digest("int x = 1;")
    assert summary.changes_proposed
    assert summary.by_rule == {"transient-history-comment": 1}


def test_orphan_finding_raises():
    doc = Document.from_text("known.txt", "abc")
    stray = Finding(id="1", document="unknown.txt", span=Span(0, 1), rule_id="r", rationale="r", text="a")
    with pytest.raises(OrphanFindingError) as exc:
        build_report([stray], [doc])
    assert exc.value.document == "unknown.txt"
    assert exc.value.rule_id == "r"


def test_empty_report():
    report = build_report([], [Document.from_text("a", "clean text")])
    assert report.is_empty
    assert report.documents == []
    assert render_report(report) == "No findings."


def test_line_format_collapses_rationale_whitespace():
    doc = Document.from_text("a.txt", "one\ntwo\nthree\n")
    f = Finding(id="1", document="a.txt", span=Span(4, 7), rule_id="r1",
                rationale="first line\n  second line", text="two")
    assert format_line(doc, f) == "a.txt:2-2 [r1] first line second line"


def test_line_numbers_with_crlf_and_empty_span():
    doc = Document.from_text("w.txt", "a\r\nb\r\nc")
    f = Finding(id="1", document="w.txt", span=Span(6, 6), rule_id="ins", rationale="insert", text="")
    assert format_line(doc, f).startswith("w.txt:3-3 ")


def test_parse_report_line():
    parsed = parse_report_line("C:/work/src/app.py:3-5 [ai-hype-vocab] Inflated word choice; use a plainer word.")
    assert parsed.document == "C:/work/src/app.py"
    assert (parsed.line_start, parsed.line_end) == (3, 5)
    assert parsed.rule_id == "ai-hype-vocab"
    assert parsed.rationale == "Inflated word choice; use a plainer word."
    with pytest.raises(ValueError):
        parse_report_line("not a report line")


def test_report_lines_parse_back():
    doc = Document.from_text("src/x.py", "a = 1\n# previously used a dict\nb = 2\n")
    report = build_report(scan(doc, load_rules("transient-comments")), [doc])
    for line, f in zip(report.lines, report.findings):
        parsed = parse_report_line(line)
        assert parsed.document == f.document
        assert parsed.rule_id == f.rule_id
        assert parsed.line_start == parsed.line_end == 2


def test_to_dict_is_structured():
    doc = Document.from_text("Foo.c", "// moved to Foo.java\nint x = 1;")
    data = build_report(scan(doc, load_rules("transient-comments")), [doc]).to_dict()
    assert data["findings"][0]["line"] == "Foo.c:1-1 [transient-history-comment] " + data["findings"][0]["rationale"]
    assert data["findings"][0]["superseded_by"] is None
    assert data["documents"][0]["finding_count"] == 1
