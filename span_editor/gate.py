from __future__ import annotations
from typing import Callable, List, Protocol, Set
import logging
import re

from span_editor.ir import Decision, Report
from span_editor.report import render_report

logger = logging.getLogger(__name__)

_YES = {"y", "yes", "a", "all"}
_NO = {"", "n", "no", "q", "quit"}


class ApprovalGate(Protocol):
    """Blocking checkpoint between the report and any mutation."""

    def await_decision(self, report: Report) -> Decision:
        ...


def _known_ids(report: Report) -> Set[str]:
    return {f.id for f in report.findings} | {f.rule_id for f in report.findings}


class StaticGate:
    """Gate with a decision fixed up front (command-line flags, API callers)."""

    def __init__(self, decision: Decision):
        self.decision = decision

    def await_decision(self, report: Report) -> Decision:
        if self.decision.approved and self.decision.scope:
            unknown = sorted(self.decision.scope - _known_ids(report))
            if unknown:
                logger.warning(f"Approved ids match no finding: {', '.join(unknown)}")
        logger.info(f"Static decision: approved={self.decision.approved} "
                    f"scope={sorted(self.decision.scope) if self.decision.scope else 'all'}")
        return self.decision


def parse_answer(answer: str, report: Report) -> Decision:
    """
    Turn a typed answer into a decision.

    "y"/"yes"/"all" approve everything; a comma or space separated list of
    rule ids and finding ids approves just those; anything else rejects.
    """
    a = answer.strip()
    if a.lower() in _YES:
        return Decision.approve()
    if a.lower() in _NO:
        return Decision.reject()
    tokens = [t for t in re.split(r"[,\s]+", a) if t]
    known = _known_ids(report)
    unknown = [t for t in tokens if t not in known]
    if unknown:
        logger.warning(f"Unknown rule or finding ids in answer: {', '.join(unknown)}; nothing approved")
        return Decision.reject()
    return Decision.approve(tokens)


class PromptGate:
    """Shows the report and asks on the terminal. End of input rejects."""

    def __init__(self, ask: Callable[[str], str] = input, echo: Callable[[str], None] = print):
        self.ask = ask
        self.echo = echo

    def await_decision(self, report: Report) -> Decision:
        self.echo(render_report(report))
        applicable: List[str] = [f.id for f in report.findings if not f.advisory]
        prompt = (f"\nApply {len(applicable)} change(s)? "
                  "[y]es / [n]o / rule or finding ids (comma separated): ")
        try:
            answer = self.ask(prompt)
        except EOFError:
            logger.warning("No answer on input; leaving the corpus unmodified")
            return Decision.reject()
        decision = parse_answer(answer, report)
        if decision.approved and decision.scope:
            self.echo(f"Approved scope: {', '.join(sorted(decision.scope))}")
        elif not decision.approved:
            self.echo("Nothing approved; no files changed.")
        return decision
