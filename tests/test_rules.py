import pytest

from span_editor.errors import RuleConfigError
from span_editor.ir import Document
from span_editor.rules.load_rules import (
    BUILTIN_PACKS,
    Detector,
    PhraseDetector,
    load_rule_pack,
    load_rule_set,
    load_rules,
)
from span_editor.scan import scan


@pytest.mark.parametrize("name", sorted(BUILTIN_PACKS))
def test_builtin_packs_load(name):
    rules = load_rules(name)
    assert len(rules) > 0
    assert rules.name == name
    assert all(isinstance(d, Detector) for d in rules)


def test_packs_combine_in_order():
    rules = load_rules("transient-comments", "ai-writing", "ambiguity")
    ids = rules.ids
    assert ids.index("transient-history-comment") < ids.index("ai-hype-vocab") < ids.index("ambiguity-weak-modal")
    assert rules.index_of("ai-hype-vocab") == ids.index("ai-hype-vocab")


def test_duplicate_ids_rejected():
    with pytest.raises(RuleConfigError, match="duplicate"):
        load_rules("ai-writing", "ai-writing")


def test_unknown_pack():
    with pytest.raises(RuleConfigError, match="built-in packs"):
        load_rules("no-such-pack")


def test_custom_pack_from_yaml(tmp_path):
    path = tmp_path / "house.yml"
    path.write_text(
        "name: house\n"
        "rules:\n"
        "  - id: no-fixme\n"
        "    pattern: 'FIXME\\([a-z]+\\): '\n"
        "    description: Drop FIXME owner tags\n"
        "  - id: colour\n"
        "    kind: phrases\n"
        "    rationale: House style is US spelling.\n"
        "    entries:\n"
        "      - {search: colour, replace: color}\n",
        encoding="utf-8",
    )
    rules = load_rules(str(path))
    assert rules.ids == ["no-fixme", "colour"]
    doc = Document.from_text("x.txt", "FIXME(ann): Colour the colour wheel.")
    found = {(f.rule_id, f.text, f.replacement) for f in scan(doc, rules)}
    assert found == {
        ("no-fixme", "FIXME(ann): ", None),
        ("colour", "Colour", "Color"),
        ("colour", "colour", "color"),
    }


@pytest.mark.parametrize("rule, message", [
    ({"id": "x", "pattern": "("}, "bad pattern"),
    ({"id": "x", "pattern": "a", "flags": ["unicode-ish"]}, "unknown regex flag"),
    ({"id": "x", "pattern": "a", "action": "explode"}, "unknown action"),
    ({"id": "x", "pattern": "a", "action": "replace"}, "needs a replace template"),
    ({"id": "x", "pattern": "a", "expand": "line", "replace": "b"}, "only supports deletion"),
    ({"id": "x", "kind": "phrases", "entries": []}, "without entries"),
    ({"id": "x", "kind": "magic"}, "unknown rule kind"),
    ({"pattern": "a"}, "without an id"),
])
def test_bad_rules_rejected(rule, message):
    with pytest.raises(RuleConfigError, match=message):
        load_rule_set({"name": "bad", "rules": [rule]}, source="bad.yml")


def test_phrase_detector_prefers_longest_and_keeps_case():
    d = PhraseDetector(id="p", description="p", entries={"in order": None, "in order to": "to"})
    doc = Document.from_text("x", "In order to win.")
    assert d.propose(doc)[0][1] == "To"
    assert d.match(doc)[0].end == len("In order to")


def test_whole_word_phrases_skip_substrings():
    rules = load_rules("ai-writing")
    doc = Document.from_text("x", "The leverages and deleverage are fine; leveraging is not.")
    hype = [f.text for f in scan(doc, rules) if f.rule_id == "ai-hype-vocab"]
    assert hype == ["leverages", "leveraging"]


def test_filler_opener_capitalizes_next_word():
    rules = load_rules("ai-writing")
    doc = Document.from_text("x", "It's worth noting that caching helps.")
    f = next(f for f in scan(doc, rules) if f.rule_id == "ai-filler-opener")
    assert f.replacement == "C"
    assert f.text == "It's worth noting that c"


def test_transient_rules_ignore_current_behaviour_comments():
    rules = load_rules("transient-comments")
    doc = Document.from_text("x.py", "# Parse the header and return its fields.\nvalue = 5  # seconds\n")
    assert scan(doc, rules) == []


def test_change_marker_is_case_sensitive():
    rules = load_rules("transient-comments")
    flagged = Document.from_text("x.js", "// NEW: retry loop\nretry();\n")
    prose = Document.from_text("y.js", "// new: lowercase is ordinary prose\n")
    assert [f.rule_id for f in scan(flagged, rules)] == ["transient-change-marker"]
    assert scan(prose, rules) == []


def test_ambiguity_rules_are_advisory():
    rules = load_rules("ambiguity")
    doc = Document.from_text("req.txt", "Logs shall be archived where applicable and/or purged.")
    findings = scan(doc, rules)
    assert findings and all(f.advisory for f in findings)
    assert {f.rule_id for f in findings} == {
        "ambiguity-open-ended", "ambiguity-escape-clause", "ambiguity-missing-actor",
    }


def test_rule_pack_yaml_has_rationale_for_every_rule():
    from span_editor.rules.load_rules import resolve_rule_pack
    for name in BUILTIN_PACKS:
        pack = load_rule_pack(resolve_rule_pack(name))
        for r in pack["rules"]:
            assert r.get("rationale"), f"{name}:{r['id']} has no rationale"
