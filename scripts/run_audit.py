"""Run a LIFT audit for a saved page snapshot from the command line.

Usage:
    python -m scripts.run_audit snapshot.json
    python -m scripts.run_audit snapshot.json --mock response.json --json
"""

import argparse
import json
import sys
from pathlib import Path

from api.config import get_settings
from api.exceptions import LiftError
from api.logging import setup_logging
from worker.audit.calculator import score_breakdown
from worker.audit.generator import MockProvider, ProviderConfig, ProviderType, get_provider
from worker.tasks.audit import run_audit_sync


def main() -> int:
    parser = argparse.ArgumentParser(description="Run a LIFT audit for a page snapshot")
    parser.add_argument("snapshot", type=Path, help="Path to a page snapshot JSON file")
    parser.add_argument(
        "--mock",
        type=Path,
        default=None,
        help="Use a canned provider reply from this file instead of calling OpenAI",
    )
    parser.add_argument("--json", action="store_true", help="Print the full audit document as JSON")
    args = parser.parse_args()

    setup_logging()
    settings = get_settings()
    snapshot = json.loads(args.snapshot.read_text(encoding="utf-8"))

    if args.mock:
        provider = MockProvider(responses=[args.mock.read_text(encoding="utf-8")])
    else:
        provider = get_provider(ProviderType.OPENAI, ProviderConfig.from_settings(settings))

    try:
        document = run_audit_sync(snapshot, provider)
    except LiftError as e:
        print(f"Audit failed: {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(document.to_dict(), indent=2))
        return 0

    print(f"URL: {document.url}")
    print(score_breakdown(document).show_the_math())
    print()
    print(f"Critical issues ({len(document.critical_issues)}):")
    for issue in document.critical_issues:
        print(f"  [{issue.impact}] {issue.category}: {issue.title}")
    print(f"Tests ({len(document.tests)}):")
    for test in document.tests:
        print(f"  PXL {test.pxl_score:>3}  {test.title}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
