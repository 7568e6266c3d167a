from __future__ import annotations
import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from span_editor.changelog import build_payload, write_json, write_txt
from span_editor.corpus import open_corpus
from span_editor.errors import SpanEditorError
from span_editor.gate import PromptGate, StaticGate
from span_editor.ir import Decision
from span_editor.pipeline import PipelineConfig, run_pipeline
from span_editor.report import render_report
from span_editor.rules.load_rules import BUILTIN_PACKS, load_rule_pack, load_rules, resolve_rule_pack

logger = logging.getLogger(__name__)


def _list_rules() -> None:
    for name in BUILTIN_PACKS:
        pack = load_rule_pack(resolve_rule_pack(name))
        print(f"{name}: {' '.join(str(pack.get('description', '')).split())}")
        for r in pack.get("rules", []) or []:
            flag = " (advisory)" if r.get("action") == "flag" else ""
            print(f"  {r['id']}{flag}: {r.get('description', '')}")


def _pick_gate(args):
    if args.dry_run:
        return StaticGate(Decision.reject())
    if args.yes:
        return StaticGate(Decision.approve())
    if args.scope:
        return StaticGate(Decision.approve(args.scope))
    if sys.stdin.isatty() and not args.json:
        return PromptGate()
    logger.warning("No decision given and no terminal to ask on; nothing will be changed "
                   "(pass --yes or --scope to approve)")
    return StaticGate(Decision.reject())


def _write_changelog(out_dir: str, payload) -> str:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")
    stem = out / f"span_edit_{stamp}"
    write_json(str(stem) + ".changelog.json", payload)
    write_txt(str(stem) + ".changelog.txt", payload)
    return str(stem)


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        prog="span-edit",
        description="Flag spans with a rule set, report them, and apply only what you approve",
    )
    ap.add_argument("paths", nargs="*", help="Files to scan (text or .docx)")
    ap.add_argument(
        "--rules", action="append", metavar="PACK",
        help=f"Built-in pack ({', '.join(BUILTIN_PACKS)}) or a YAML rule pack path; repeatable, "
             "earlier packs win overlaps (default: $SPAN_EDIT_RULES or transient-comments)",
    )
    ap.add_argument("--encoding", default="utf-8", help="Text file encoding (default: utf-8)")
    ap.add_argument(
        "--workers", type=int, default=int(os.environ.get("SPAN_EDIT_WORKERS", "4")),
        help="Scan worker threads (default: $SPAN_EDIT_WORKERS or 4)",
    )

    approval = ap.add_argument_group("Approval")
    approval.add_argument("--yes", action="store_true", help="Approve every finding without asking")
    approval.add_argument("--scope", action="append", metavar="ID",
                          help="Approve only these rule ids or finding ids; repeatable")
    approval.add_argument("--dry-run", action="store_true", help="Report only; never change files")

    output = ap.add_argument_group("Output")
    output.add_argument("--json", action="store_true", help="Print the run as JSON")
    output.add_argument("--changelog", metavar="DIR", help="Write JSON and text changelogs into DIR")
    output.add_argument("--no-verify", action="store_true", help="Skip the post-apply rescan")
    output.add_argument("--list-rules", action="store_true", help="List built-in rule packs and exit")
    output.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    args = ap.parse_args(argv)

    logging.basicConfig(
        level=max(logging.DEBUG, logging.WARNING - 10 * args.verbose),
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.list_rules:
        _list_rules()
        return 0
    if not args.paths:
        ap.error("at least one path is required (or use --list-rules)")
    if sum(bool(x) for x in (args.yes, args.scope, args.dry_run)) > 1:
        ap.error("--yes, --scope and --dry-run are mutually exclusive")
    if args.workers < 1:
        ap.error("--workers must be at least 1")

    packs = args.rules or [p.strip() for p in os.environ.get("SPAN_EDIT_RULES", "transient-comments").split(",") if p.strip()]

    try:
        rule_set = load_rules(*packs)
        corpus = open_corpus(args.paths, encoding=args.encoding)
        gate = _pick_gate(args)
        result = run_pipeline(
            corpus,
            rule_set,
            gate,
            PipelineConfig(max_workers=args.workers, verify=not args.no_verify),
        )
    except KeyboardInterrupt:
        print("Cancelled; no files changed.", file=sys.stderr)
        return 130
    except (SpanEditorError, FileNotFoundError, UnicodeDecodeError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    payload = build_payload(result)
    if args.changelog:
        payload["changelog"] = _write_changelog(args.changelog, payload)

    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        if not isinstance(gate, PromptGate) and not result.report.is_empty:
            print(render_report(result.report))
            print()
        summary = {
            "status": result.status,
            "findings_total": payload["stats"]["findings_total"],
            "edits_applied": payload["stats"]["edits_applied"],
            "documents_written": payload["stats"]["documents_written"],
            "errors": payload["stats"]["errors"],
        }
        print(json.dumps(summary, indent=2))
        for e in result.errors:
            print(f"error: {e}", file=sys.stderr)

    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
