from __future__ import annotations

import argparse
import json

from dotenv import load_dotenv

# Searches upward from this file, so a repo-root .env is picked up
load_dotenv(override=False)

from issue_autofill.models import WorkItemCategory
from issue_autofill.services.provider import make_service
from issue_autofill.shared.config_loader import ConfigError


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Discover the creatable fields for a work item category and print them as JSON")
    ap.add_argument("--category", "-c", default=WorkItemCategory.STORY.value, choices=[c.value for c in WorkItemCategory])
    ap.add_argument("--refresh", action="store_true", help="Ignore the cached mapping and rediscover")
    ap.add_argument("--clear", action="store_true", help="Drop every cached mapping before discovering")
    return ap.parse_args()


def main() -> None:
    args = parse_args()
    try:
        svc = make_service()
    except ConfigError as ex:
        print(json.dumps({"ok": False, "error": str(ex)}, indent=2))
        raise SystemExit(1)
    if args.clear:
        svc.clear_cache()
    res = svc.get_mapping(args.category, refresh=args.refresh)
    out = {
        "ok": res.ok,
        "error": res.error,
        "mapping": res.mapping.model_dump(mode="json", by_alias=True) if res.mapping else None,
    }
    print(json.dumps(out, indent=2))
    if not res.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
