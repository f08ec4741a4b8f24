#!/usr/bin/env python3
"""
Grade Calculator Workbook Tool

Exports the saved grading workspace to an Excel file, or imports an Excel
file into it, without opening the web app.

Usage:
    python generate.py export [-o calculadora_notas.xlsx]
    python generate.py import grades.xlsx [--append]
"""

import argparse
import asyncio
import json
from pathlib import Path

from gradecalc import (
    FileBlobStore,
    GradebookSession,
    WorkbookDecodeError,
    get_default_config,
    merge_config,
    validate_config,
)


def load_config(config_path: Path) -> dict:
    """Load configuration from a JSON file, falling back to defaults when it is absent."""
    if not config_path.exists():
        return get_default_config()
    with open(config_path, "r", encoding="utf-8") as f:
        return merge_config(json.load(f))


def check_config(config: dict) -> bool:
    """Print configuration issues; returns False when any of them is an error."""
    issues = validate_config(config)
    for issue in issues:
        icon = "❌" if issue["type"] == "error" else "⚠️ "
        print(f"{icon} {issue['message']}")
    return not any(issue["type"] == "error" for issue in issues)


def open_session(config: dict) -> GradebookSession:
    blob_store = FileBlobStore(config["persistence"]["directory"])
    return GradebookSession(blob_store, config)


def export_command(config: dict, output_file: str | None) -> int:
    session = open_session(config)
    sheets = session.store.sheets
    if not sheets:
        print("❌ Error: the saved workspace has no sheets to export.")
        return 1

    output_file = output_file or session.export_filename
    Path(output_file).write_bytes(session.export_file())
    print(f"✓ Exported {len(sheets)} sheet(s) to {output_file}")
    for sheet in sheets:
        print(f"   {sheet.name}: {len(sheet.evaluations)} evaluation(s), {len(sheet.students)} student(s)")
    return 0


def import_command(config: dict, input_file: str, append: bool) -> int:
    path = Path(input_file)
    if not path.exists():
        print(f"❌ Error: {input_file} not found!")
        return 1

    session = open_session(config)
    try:
        result = asyncio.run(session.import_file(path.read_bytes()))
    except WorkbookDecodeError as e:
        print(f"❌ Error: {e}")
        for title, reason in e.skipped:
            print(f"   {title}: {reason}")
        return 1

    for title, reason in result.skipped:
        print(f"⚠️  Skipped worksheet {title}: {reason}")

    if append:
        session.confirm_import_append()
    else:
        session.confirm_import_replace()
    session.saver.flush()

    print(f"✓ Imported {len(result.sheets)} sheet(s) from {input_file}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Import or export grade calculator workbooks.")
    parser.add_argument("-c", "--config", default="config.json", help="Optional JSON config file")
    commands = parser.add_subparsers(dest="command", required=True)

    export_parser = commands.add_parser("export", help="Write the saved workspace to an .xlsx file")
    export_parser.add_argument("-o", "--output", help="Output file name")

    import_parser = commands.add_parser("import", help="Load an .xlsx file into the saved workspace")
    import_parser.add_argument("file", help="Workbook to import")
    import_parser.add_argument("--append", action="store_true", help="Keep existing sheets")

    args = parser.parse_args(argv)
    config = load_config(Path(args.config))
    if not check_config(config):
        return 1

    if args.command == "export":
        return export_command(config, args.output)
    return import_command(config, args.file, args.append)


if __name__ == "__main__":
    raise SystemExit(main())
