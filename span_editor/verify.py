from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

from span_editor.ir import Span
from span_editor.rules.load_rules import RuleSet
from span_editor.scan import scan

if TYPE_CHECKING:
    from span_editor.apply import MutationResult


@dataclass
class Violation:
    rule_id: str       # inv.non_interference | inv.idempotence
    document: str
    message: str
    details: Dict[str, str] = field(default_factory=dict)


def verify_non_interference(
    document: str,
    original: str,
    rewritten: str,
    operations: Sequence[Tuple[Span, Optional[str]]],
) -> List[Violation]:
    """Check that every character outside the edited spans survived unchanged."""
    violations: List[Violation] = []
    pos = 0        # position in original
    new_pos = 0    # matching position in rewritten
    for span, after in sorted(operations, key=lambda op: (op[0].start, op[0].end)):
        gap = original[pos:span.start]
        if rewritten[new_pos:new_pos + len(gap)] != gap:
            violations.append(Violation(
                rule_id="inv.non_interference",
                document=document,
                message=f"Text before offset {span.start} changed outside any approved span.",
                details={"original_start": str(pos), "original_end": str(span.start)},
            ))
            return violations
        new_pos += len(gap) + len(after or "")
        pos = span.end
    tail = original[pos:]
    if rewritten[new_pos:] != tail:
        violations.append(Violation(
            rule_id="inv.non_interference",
            document=document,
            message=f"Text after offset {pos} changed outside any approved span.",
            details={"original_start": str(pos), "original_end": str(len(original))},
        ))
    return violations


def verify_idempotence(result: "MutationResult", rule_set: RuleSet) -> List[Violation]:
    """Rescan the rewritten document; nothing may be flagged again where we just edited."""
    violations: List[Violation] = []
    if not result.edited_regions:
        return violations
    for f in scan(result.document, rule_set):
        if f.advisory:
            continue
        hit = next((r for r in result.edited_regions if f.span.overlaps(r) or f.span == r), None)
        if hit is not None:
            violations.append(Violation(
                rule_id="inv.idempotence",
                document=f.document,
                message=f"[{f.rule_id}] flags text that was just rewritten.",
                details={"start": str(f.span.start), "end": str(f.span.end), "text": f.text},
            ))
    return violations
