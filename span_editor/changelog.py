from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List
import json

from span_editor.pipeline import PipelineResult


def build_payload(result: PipelineResult) -> Dict[str, Any]:
    ts = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    d = result.decision
    return {
        "timestamp_utc": ts,
        "status": result.status,
        "decision": None if d is None else {
            "approved": d.approved,
            "scope": None if d.scope is None else sorted(d.scope),
        },
        "stats": {
            "documents": len(result.documents),
            "findings_total": len(result.report.findings),
            "findings_superseded": len(result.report.superseded),
            "findings_advisory": sum(1 for f in result.report.findings if f.advisory),
            "edits_applied": result.applied_count,
            "documents_changed": len(result.changed_documents),
            "documents_written": len(result.written),
            "errors": len(result.errors),
            "violations": len(result.violations),
        },
        "report": result.report.to_dict(),
        "mutations": [
            {
                "document": m.original.path,
                "state": m.state,
                "applied": [f.id for f in m.applied],
                "superseded": dict(m.superseded),
                "original_digest": m.original.digest,
                "final_digest": m.document.digest,
                "error": None if m.error is None else str(m.error),
            }
            for m in result.mutations
        ],
        "errors": [
            {"stage": e.stage, "document": e.document, "rule_id": e.rule_id, "message": e.message}
            for e in result.errors
        ],
        "violations": [
            {"rule_id": v.rule_id, "document": v.document, "message": v.message, "details": v.details}
            for v in result.violations
        ],
    }


def write_json(path: str, payload: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def write_txt(path: str, payload: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_txt(payload))


def render_txt(payload: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append(f"Span Edit Run - {payload.get('timestamp_utc')}")
    lines.append("")
    lines.append(f"Status: {payload.get('status')}")
    d = payload.get("decision")
    if d:
        scope = ", ".join(d["scope"]) if d.get("scope") else "all findings"
        lines.append(f"Decision: {'approved' if d['approved'] else 'rejected'} ({scope})")
    else:
        lines.append("Decision: none requested")
    lines.append("")
    stats = payload.get("stats", {})
    lines.append("Stats")
    for k, v in stats.items():
        lines.append(f"- {k}: {v}")
    lines.append("")
    findings = (payload.get("report") or {}).get("findings", []) or []
    if findings:
        lines.append("Findings")
        for fnd in findings[:100]:
            note = f" (superseded by {fnd['superseded_by']})" if fnd.get("superseded_by") else ""
            lines.append(f"- {fnd['line']}{note}")
        if len(findings) > 100:
            lines.append(f"... plus {len(findings)-100} more.")
        lines.append("")
    muts = payload.get("mutations", []) or []
    if muts:
        lines.append("Documents")
        for m in muts:
            lines.append(f"- {m['state']}: {m['document']} ({len(m['applied'])} edits)"
                         + (f" ERROR {m['error']}" if m.get("error") else ""))
        lines.append("")
    errors = payload.get("errors", []) or []
    if errors:
        lines.append("Errors")
        for e in errors:
            rule = f" [{e['rule_id']}]" if e.get("rule_id") else ""
            lines.append(f"- {e['stage']}: {e['document']}{rule} {e['message']}")
        lines.append("")
    violations = payload.get("violations", []) or []
    if violations:
        lines.append("Verification")
        for v in violations:
            lines.append(f"- {v['rule_id']}: {v['document']} {v['message']}")
    return "\n".join(lines)
