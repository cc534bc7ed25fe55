"""Uninstall one or more installed skills."""

from __future__ import annotations

import argparse
import sys

from skill_guard.cancellation import CancellationToken, handle_signals
from skill_guard.types import exit_code_for
from skill_guard.uninstall import uninstall_skills


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Uninstall skills")
    parser.add_argument("skill_names", nargs="+", help="Skills to remove")
    parser.add_argument("--scope", default="project", help="project or personal")
    parser.add_argument("--force", action="store_true", help="Remove despite warnings")
    parser.add_argument("--dry-run", action="store_true", help="List what would be removed")
    args = parser.parse_args(argv)

    token = CancellationToken()
    with handle_signals(token):
        result = uninstall_skills(
            args.skill_names,
            scope=args.scope,
            force=args.force,
            dry_run=args.dry_run,
            cancel_token=token,
        )

    for preview in result.previews:
        print(f"{preview.skill_name}: would remove {preview.file_count} file(s), {preview.total_size} bytes")
        for rel in preview.files:
            print(f"  {rel}")
    for removed in result.succeeded:
        print(f"Uninstalled {removed.skill_name} ({removed.files_removed} files, {removed.bytes_freed} bytes)")
        for warning in removed.warnings:
            print(f"  warning: {warning}", file=sys.stderr)
    for failed in result.failed:
        if failed.type == "uninstall-cancelled":
            print(f"{failed.skill_name}: cancelled ({failed.files_remaining} entries remain)", file=sys.stderr)
        else:
            print(f"{failed.skill_name}: {failed.error.message}", file=sys.stderr)

    return int(exit_code_for(result))


if __name__ == "__main__":
    sys.exit(main())
