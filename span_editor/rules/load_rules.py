from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple, Union, runtime_checkable
import re
import yaml

from span_editor.errors import RuleConfigError
from span_editor.ir import Document, Span

RULES_DIR = Path(__file__).parent

BUILTIN_PACKS: Dict[str, str] = {
    "transient-comments": "transient_comments.yml",
    "ai-writing": "ai_writing.yml",
    "ambiguity": "ambiguity.yml",
}

_FLAGS = {
    "ignorecase": re.IGNORECASE,
    "multiline": re.MULTILINE,
    "dotall": re.DOTALL,
    "verbose": re.VERBOSE,
}

Proposal = Tuple[Span, Optional[str]]

_BREAK = re.compile(r"\r\n|\r|\n")


@runtime_checkable
class Detector(Protocol):
    """Contract for rule authors.

    ``match`` returns the spans to flag. Detectors may also define
    ``rationale`` (defaults to ``description``), ``advisory`` (report only)
    and ``propose(document)`` returning ``(span, replacement)`` pairs when
    they suggest replacement text instead of deletion.
    """

    id: str
    description: str

    def match(self, document: Document) -> List[Span]:
        ...


def _one_line(s: str) -> str:
    return " ".join(str(s).split())


def _capitalize_first(s: str) -> str:
    return s[:1].upper() + s[1:] if s else s


def _line_bounds(text: str, start: int, end: int) -> Tuple[int, int]:
    """Widen [start, end) to whole lines, including the trailing line break."""
    line_start = max(text.rfind("\n", 0, start), text.rfind("\r", 0, start)) + 1
    last = end - 1 if end > start else start
    m = _BREAK.search(text, last)
    line_end = m.end() if m else len(text)
    return line_start, max(line_end, end)


@dataclass
class PatternDetector:
    id: str
    description: str
    pattern: "re.Pattern[str]"
    rationale: str = ""
    group: Union[int, str] = 0
    expand: Optional[str] = None      # "line" widens the span to the whole line
    replace: Optional[str] = None     # re template; None deletes
    capitalize: bool = False
    advisory: bool = False

    def propose(self, document: Document) -> List[Proposal]:
        out: List[Proposal] = []
        text = document.text
        for m in self.pattern.finditer(text):
            start, end = m.span(self.group)
            if start < 0:
                continue
            if self.expand == "line":
                start, end = _line_bounds(text, start, end)
            after = None
            if self.replace is not None:
                after = m.expand(self.replace)
                if self.capitalize:
                    after = _capitalize_first(after)
            out.append((Span(start, end), after))
        return out

    def match(self, document: Document) -> List[Span]:
        return [span for span, _ in self.propose(document)]


@dataclass
class PhraseDetector:
    id: str
    description: str
    entries: Dict[str, Optional[str]]   # lowercased search -> replacement
    rationale: str = ""
    whole_word: bool = True
    case_insensitive: bool = True
    advisory: bool = False
    pattern: "re.Pattern[str]" = field(init=False, repr=False)

    def __post_init__(self):
        # longest first so "in order to" wins over "in order"
        alts = sorted(self.entries, key=len, reverse=True)
        body = "|".join(re.escape(a) for a in alts)
        if self.whole_word:
            body = rf"(?<!\w)(?:{body})(?!\w)"
        self.pattern = re.compile(body, re.IGNORECASE if self.case_insensitive else 0)

    def _replacement(self, found: str) -> Optional[str]:
        key = found.lower() if self.case_insensitive else found
        after = self.entries.get(key)
        if after is None:
            return None
        if found[:1].isupper():
            after = _capitalize_first(after)
        return after

    def propose(self, document: Document) -> List[Proposal]:
        return [(Span(m.start(), m.end()), self._replacement(m.group(0)))
                for m in self.pattern.finditer(document.text)]

    def match(self, document: Document) -> List[Span]:
        return [span for span, _ in self.propose(document)]


class RuleSet:
    """Ordered, read-only collection of detectors. Earlier detectors win overlaps."""

    def __init__(self, detectors: Iterable[Detector] = (), name: str = ""):
        self.name = name
        self._detectors: Tuple[Detector, ...] = tuple(detectors)
        seen = set()
        for d in self._detectors:
            if d.id in seen:
                raise RuleConfigError("duplicate detector id", source=name or None, rule_id=d.id)
            seen.add(d.id)

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors)

    def __len__(self) -> int:
        return len(self._detectors)

    @property
    def ids(self) -> List[str]:
        return [d.id for d in self._detectors]

    def index_of(self, rule_id: str) -> int:
        return self.ids.index(rule_id)

    def combine(self, other: "RuleSet") -> "RuleSet":
        name = "+".join(n for n in (self.name, other.name) if n)
        return RuleSet(list(self) + list(other), name=name)


def load_rule_pack(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _compile(r: Dict[str, Any], source: Optional[str]) -> "re.Pattern[str]":
    flags = 0
    for name in r.get("flags", []) or []:
        if name not in _FLAGS:
            raise RuleConfigError(f"unknown regex flag {name!r}", source=source, rule_id=r.get("id"))
        flags |= _FLAGS[name]
    try:
        return re.compile(r["pattern"], flags)
    except (re.error, KeyError, TypeError) as e:
        raise RuleConfigError(f"bad pattern: {e}", source=source, rule_id=r.get("id")) from e


def _build_detector(r: Dict[str, Any], source: Optional[str]) -> Detector:
    if not isinstance(r, dict) or not r.get("id"):
        raise RuleConfigError("rule without an id", source=source)
    rid = str(r["id"])
    kind = r.get("kind", "pattern")
    action = r.get("action", "replace" if r.get("replace") is not None else "delete")
    if action not in ("delete", "replace", "flag"):
        raise RuleConfigError(f"unknown action {action!r}", source=source, rule_id=rid)
    description = _one_line(r.get("description", rid))
    rationale = _one_line(r.get("rationale", description))

    if kind == "pattern":
        replace = r.get("replace")
        if action == "delete":
            replace = None
        elif action == "replace" and replace is None:
            raise RuleConfigError("action 'replace' needs a replace template", source=source, rule_id=rid)
        expand = r.get("expand")
        if expand not in (None, "line"):
            raise RuleConfigError(f"unknown expand {expand!r}", source=source, rule_id=rid)
        if expand == "line" and replace is not None:
            raise RuleConfigError("expand: line only supports deletion", source=source, rule_id=rid)
        return PatternDetector(
            id=rid,
            description=description,
            rationale=rationale,
            pattern=_compile(r, source),
            group=r.get("group", 0),
            expand=expand,
            replace=replace,
            capitalize=bool(r.get("capitalize", False)),
            advisory=(action == "flag"),
        )

    if kind == "phrases":
        case_insensitive = bool(r.get("case_insensitive", True))
        entries: Dict[str, Optional[str]] = {}
        for e in r.get("entries", []) or []:
            if isinstance(e, str):
                search, after = e, None
            else:
                search, after = e.get("search"), e.get("replace")
            if not search:
                raise RuleConfigError("phrase entry without search text", source=source, rule_id=rid)
            entries[search.lower() if case_insensitive else search] = after
        if not entries:
            raise RuleConfigError("phrases rule without entries", source=source, rule_id=rid)
        return PhraseDetector(
            id=rid,
            description=description,
            rationale=rationale,
            entries=entries,
            whole_word=bool(r.get("whole_word", True)),
            case_insensitive=case_insensitive,
            advisory=(action == "flag"),
        )

    raise RuleConfigError(f"unknown rule kind {kind!r}", source=source, rule_id=rid)


def load_rule_set(rule_pack: Dict[str, Any], source: Optional[str] = None) -> RuleSet:
    detectors = [_build_detector(r, source) for r in rule_pack.get("rules", []) or []]
    return RuleSet(detectors, name=str(rule_pack.get("name", source or "")))


def resolve_rule_pack(name_or_path: str) -> str:
    if name_or_path in BUILTIN_PACKS:
        return str(RULES_DIR / BUILTIN_PACKS[name_or_path])
    if Path(name_or_path).is_file():
        return name_or_path
    known = ", ".join(sorted(BUILTIN_PACKS))
    raise RuleConfigError(f"no such rule pack (built-in packs: {known})", source=name_or_path)


def load_rules(*names_or_paths: str) -> RuleSet:
    """Load and concatenate rule packs, in the order given."""
    combined = RuleSet()
    for item in names_or_paths:
        path = resolve_rule_pack(item)
        combined = combined.combine(load_rule_set(load_rule_pack(path), source=path))
    return combined
