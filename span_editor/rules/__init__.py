from __future__ import annotations

from span_editor.rules.load_rules import (
    BUILTIN_PACKS,
    Detector,
    PatternDetector,
    PhraseDetector,
    RuleSet,
    load_rule_pack,
    load_rule_set,
    load_rules,
    resolve_rule_pack,
)

__all__ = [
    "BUILTIN_PACKS",
    "Detector",
    "PatternDetector",
    "PhraseDetector",
    "RuleSet",
    "load_rule_pack",
    "load_rule_set",
    "load_rules",
    "resolve_rule_pack",
]
