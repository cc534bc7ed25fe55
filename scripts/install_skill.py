"""Install a skill from a .skill package."""

from __future__ import annotations

import argparse
import json
import sys

from skill_guard.cancellation import CancellationToken, handle_signals
from skill_guard.fs_utils import format_size
from skill_guard.install import install_skill
from skill_guard.types import exit_code_for


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Install a skill package")
    parser.add_argument("package", help="Path to the .skill package")
    parser.add_argument("--name", help="Expected skill name; must match the package root")
    parser.add_argument("--scope", default="project", help="project or personal")
    parser.add_argument("--force", action="store_true", help="Replace an existing skill of the same name")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be installed without installing")
    parser.add_argument("--quiet", action="store_true", help="Only print the result JSON")
    args = parser.parse_args(argv)

    token = CancellationToken()
    with handle_signals(token):
        result = install_skill(
            args.package,
            skill_name=args.name,
            scope=args.scope,
            force=args.force,
            dry_run=args.dry_run,
            cancel_token=token,
        )

    if not args.quiet:
        if result.type == "install-success":
            action = "Reinstalled" if result.was_overwritten else "Installed"
            print(f"{action} {result.skill_name}: {result.file_count} files, {format_size(result.size)}")
        elif result.type == "install-dry-run-preview":
            print(f"=== Install preview for {result.skill_name} ===")
            print(f"Target: {result.path}")
            print(f"Files:  {sum(1 for entry in result.files if not entry.is_directory)}")
            print(f"Size:   {format_size(result.total_size)}")
            if result.would_overwrite:
                print(f"Would overwrite {len(result.conflicts)} existing file(s)")
        elif result.type == "overwrite-required":
            print(
                f"{result.skill_name} is already installed at {result.path}; use --force to replace it.",
                file=sys.stderr,
            )
        elif result.type == "install-cancelled":
            print("Install cancelled.", file=sys.stderr)
        else:
            print(f"Failed: {result.error.message}", file=sys.stderr)
            if result.backup_path:
                print(f"The previous version is kept at {result.backup_path}", file=sys.stderr)

    print(json.dumps(result.model_dump(), indent=2))
    return int(exit_code_for(result))


if __name__ == "__main__":
    sys.exit(main())
