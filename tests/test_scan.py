import pytest

from span_editor.errors import InvalidSpanError
from span_editor.ir import Document, Span
from span_editor.rules.load_rules import RuleSet, load_rules
from span_editor.scan import scan, scan_corpus


class FixedSpans:
    def __init__(self, id, spans, description="fixed spans"):
        self.id = id
        self.description = description
        self._spans = spans

    def match(self, document):
        return list(self._spans)


def test_transient_comment_line_is_flagged_with_its_line_break():
    doc = Document.from_text("Foo.c", "// moved to Foo.java\nint x = 1;")
    findings = scan(doc, load_rules("transient-comments"))
    assert len(findings) == 1
    f = findings[0]
    assert f.rule_id == "transient-history-comment"
    assert (f.span.start, f.span.end) == (0, 21)
    assert f.text == "// moved to Foo.java\n"
    assert f.replacement is None


def test_trailing_history_comment_keeps_code():
    doc = Document.from_text("a.py", "retries = 3  # was 5\nok = True\n")
    findings = scan(doc, load_rules("transient-comments"))
    assert [f.rule_id for f in findings] == ["transient-trailing-comment"]
    assert findings[0].text == "  # was 5"


def test_overlapping_spans_are_not_deduplicated():
    doc = Document.from_text("d.txt", "abcdef")
    rules = RuleSet([FixedSpans("a", [Span(0, 3)]), FixedSpans("b", [Span(0, 3), Span(2, 5)])])
    findings = scan(doc, rules)
    assert [(f.rule_id, f.span.start, f.span.end) for f in findings] == [
        ("a", 0, 3), ("b", 0, 3), ("b", 2, 5),
    ]
    assert [f.rule_index for f in findings] == [0, 1, 1]
    assert len({f.id for f in findings}) == 3


def test_scan_is_pure():
    doc = Document.from_text("d.txt", "We leverage caching.")
    rules = load_rules("ai-writing")
    first = scan(doc, rules)
    second = scan(doc, rules)
    assert first == second
    assert doc.text == "We leverage caching."


@pytest.mark.parametrize("span", [Span(0, 99), Span(-1, 2), Span(4, 2)])
def test_bad_span_raises_with_rule_and_document(span):
    doc = Document.from_text("bad.txt", "hello")
    with pytest.raises(InvalidSpanError) as exc:
        scan(doc, RuleSet([FixedSpans("broken", [span])]))
    assert exc.value.document == "bad.txt"
    assert exc.value.rule_id == "broken"
    assert "bad.txt" in str(exc.value) and "[broken]" in str(exc.value)


def test_detector_crash_becomes_invalid_span_error():
    class Boom:
        id = "boom"
        description = "always fails"

        def match(self, document):
            raise RuntimeError("kaput")

    with pytest.raises(InvalidSpanError, match="kaput"):
        scan(Document.from_text("x", "text"), RuleSet([Boom()]))


def test_scan_corpus_isolates_failures_and_keeps_order():
    class FailsOn:
        id = "fails-on-bad"
        description = "flags the first char"

        def match(self, document):
            if document.path == "bad":
                return [Span(0, 1000)]
            return [Span(0, 1)]

    docs = [Document.from_text(f"doc{i}", "text") for i in range(6)]
    docs.insert(3, Document.from_text("bad", "text"))
    result = scan_corpus(docs, RuleSet([FailsOn()]), max_workers=4)
    assert list(result.findings) == [d.path for d in docs if d.path != "bad"]
    assert len(result.errors) == 1
    assert result.errors[0].document == "bad"
    assert len(result.all_findings) == 6


def test_scan_corpus_sequential_reports_progress():
    seen = []
    docs = [Document.from_text("a", "x"), Document.from_text("b", "y")]
    scan_corpus(docs, RuleSet(), max_workers=1, progress_callback=lambda c, t: seen.append((c, t)))
    assert seen == [(1, 2), (2, 2)]
