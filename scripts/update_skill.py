"""Update an installed skill from a .skill package."""

from __future__ import annotations

import argparse
import json
import sys

from skill_guard.cancellation import CancellationToken, handle_signals
from skill_guard.types import exit_code_for
from skill_guard.update import update_skill


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Update an installed skill")
    parser.add_argument("skill_name", help="Name of the installed skill")
    parser.add_argument("package", help="Path to the new .skill package")
    parser.add_argument("--scope", default="project", help="project or personal")
    parser.add_argument("--force", action="store_true", help="Proceed despite hard links or size limits")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without modifying anything")
    parser.add_argument("--keep-backup", action="store_true", help="Keep the backup after a successful update")
    parser.add_argument("--no-backup", action="store_true", help="Skip the backup (a failure cannot be rolled back)")
    parser.add_argument("--quiet", action="store_true", help="Only print the result JSON")
    args = parser.parse_args(argv)

    token = CancellationToken()
    with handle_signals(token):
        result = update_skill(
            args.skill_name,
            args.package,
            scope=args.scope,
            force=args.force,
            dry_run=args.dry_run,
            keep_backup=args.keep_backup,
            no_backup=args.no_backup,
            cancel_token=token,
        )

    if not args.quiet:
        if result.type == "update-success":
            print(f"Updated {result.skill_name}: {result.previous_file_count} -> {result.current_file_count} files")
        elif result.type == "update-dry-run-preview":
            comparison = result.comparison
            print(f"=== Update preview for {result.skill_name} ===")
            print(f"Added:    {comparison.added_count}")
            print(f"Modified: {comparison.modified_count}")
            print(f"Removed:  {comparison.removed_count}")
            print(f"Size change: {comparison.size_change:+d} bytes")
        elif result.type == "update-rolled-back":
            print(f"Update failed and was rolled back: {result.failure_reason}", file=sys.stderr)
        elif result.type == "update-rollback-failed":
            print("CRITICAL: update and rollback both failed.", file=sys.stderr)
            print(result.recovery_instructions, file=sys.stderr)
        elif result.type == "update-cancelled":
            print("Update cancelled.", file=sys.stderr)
        else:
            print(f"Failed: {result.error.message}", file=sys.stderr)

    print(json.dumps(result.model_dump(), indent=2))
    return int(exit_code_for(result))


if __name__ == "__main__":
    sys.exit(main())
