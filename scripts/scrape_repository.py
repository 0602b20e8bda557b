#!/usr/bin/env python3
"""
Retrieve a repository and scrape the resources inside it.

Usage:
  python scripts/scrape_repository.py --repo-type git --url https://github.com/acme/cookbooks.git --kind cookbook
  python scripts/scrape_repository.py --repo-type download --url https://example.com/cookbook.tgz --kind cookbook
  python scripts/scrape_repository.py --repo-type svn --url svn://example.com/repo --tag 42 --no-print
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from reposcrape.core.config import RetrievalBudget, load_settings
from reposcrape.repositories.descriptor import RepositoryDescriptor, RepositoryKind
from reposcrape.resources.models import ResourceKind
from reposcrape.scraper import Scraper

LOGGER = logging.getLogger("scrape_repository")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Retrieve a repository and scrape its resources.")
    parser.add_argument("--repo-type", required=True, choices=[kind.value for kind in RepositoryKind])
    parser.add_argument("--url", required=True, help="Repository or archive URL.")
    parser.add_argument("--tag", default="", help="Branch, tag, commit or revision (default: repository default).")
    parser.add_argument(
        "--kind",
        default=None,
        choices=[kind.value for kind in ResourceKind],
        help="Resource kind to scrape; retrieve only when omitted.",
    )
    parser.add_argument("--first-credential", default=None, help="Username or SSH private key.")
    parser.add_argument("--second-credential", default=None, help="Password.")
    parser.add_argument("--basedir", default=None, help="Mirror root (default: REPO_SCRAPER_BASEDIR or a temp dir).")
    parser.add_argument("--max-bytes", type=int, default=None, help="Byte budget for the mirror.")
    parser.add_argument("--max-seconds", type=float, default=None, help="Time budget for retrieval.")
    parser.add_argument("--no-incremental", action="store_true", help="Discard any existing mirror first.")
    parser.add_argument(
        "--print",
        dest="do_print",
        action="store_true",
        default=True,
        help="Print resources as JSONL (default: true).",
    )
    parser.add_argument(
        "--no-print",
        dest="do_print",
        action="store_false",
        help="Disable JSONL output of resources.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    settings = load_settings()
    budget = RetrievalBudget(
        max_bytes=args.max_bytes if args.max_bytes is not None else settings.max_bytes,
        max_seconds=args.max_seconds if args.max_seconds is not None else settings.max_seconds,
    )
    scraper = Scraper(args.kind, basedir=args.basedir, settings=settings, budget=budget)
    repository = RepositoryDescriptor(
        kind=args.repo_type,
        url=args.url,
        tag=args.tag,
        first_credential=args.first_credential,
        second_credential=args.second_credential,
    )

    ok = scraper.scrape(repository, incremental=not args.no_incremental)
    if args.do_print:
        for resource in scraper.resources:
            print(json.dumps(resource.to_dict(), ensure_ascii=False, sort_keys=True))

    for warning in scraper.warnings:
        LOGGER.warning("warning: %s", warning)
    for record in scraper.errors:
        LOGGER.error("error during %s: %s %s", record.phase, record.exception, record.explanation)
    summary = {
        "changed": scraper.last_changed,
        "resources": len(scraper.resources),
        "errors": len(scraper.errors),
        "warnings": len(scraper.warnings),
    }
    print(json.dumps({"summary": summary}, ensure_ascii=False))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
