from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=False)

from issue_autofill.models import WorkItemCategory
from issue_autofill.services.provider import make_service
from issue_autofill.shared.config_loader import ConfigError


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Extract and format tracker field values from a free-text description")
    ap.add_argument("--category", "-c", default=WorkItemCategory.STORY.value, choices=[c.value for c in WorkItemCategory])
    ap.add_argument("--summary", "-s", default="", help="Issue summary (required with --create)")
    src = ap.add_mutually_exclusive_group()
    src.add_argument("--text", "-t", help="Description text")
    src.add_argument("--file", "-f", help="Read the description from a file ('-' for stdin)")
    ap.add_argument("--label", action="append", default=[], help="Label to attach (repeatable)")
    ap.add_argument("--refresh", action="store_true", help="Rediscover fields instead of using the cache")
    ap.add_argument("--autofill", action="store_true", help="Include proposals for unresolved required fields")
    ap.add_argument("--create", action="store_true", help="Create the issue with the resolved fields")
    return ap.parse_args()


def _read_text(args: argparse.Namespace) -> str:
    if args.text is not None:
        return args.text
    if args.file == "-" or args.file is None:
        return sys.stdin.read()
    return Path(args.file).read_text(encoding="utf-8")


def main() -> None:
    args = parse_args()
    text = _read_text(args)
    try:
        svc = make_service()
    except ConfigError as ex:
        print(json.dumps({"ok": False, "error": str(ex)}, indent=2))
        raise SystemExit(1)
    report = svc.resolve(text, args.category, args.summary or None, refresh=args.refresh)
    if not report.ok:
        print(json.dumps({"ok": False, "error": report.error}, indent=2))
        raise SystemExit(1)

    out = {
        "ok": True,
        "issue_type": report.mapping.issue_type_name,
        "source": report.mapping.source,
        "extracted": [e.model_dump(mode="json") for e in report.extraction.extracted_fields],
        "missing": report.extraction.missing_fields,
        "suggestions": report.extraction.suggestions,
        "fields": report.formatted_fields,
        "gaps": [f.id for f in report.gaps],
        "proposals": report.proposals if args.autofill else {},
    }

    if args.create:
        values = dict(report.formatted_fields)
        if args.autofill:
            values.update(svc.formatter.format_fields(report.gaps, report.proposals))
        created = svc.create_issue(args.category, args.summary, text, values, args.label)
        out["created"] = created.model_dump(mode="json")
        out["ok"] = created.ok

    print(json.dumps(out, indent=2, default=str))
    if not out["ok"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
