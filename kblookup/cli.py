#!/usr/bin/env python3
"""
kblookup - lookup expressions over a knowledge-base graph

Command-line interface for importing sites and evaluating lookup
expressions against them.
"""
import sys
import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kblookup.config import get_config, init_config
from kblookup.db import get_db
from kblookup.lookup import (
    LookupEvaluationError, LookupParseError, parse_lookup, run_lookup
)
from kblookup.utils import setup_logging

logger = logging.getLogger(__name__)


console = Console()


def format_value(value: Dict[str, Any]) -> str:
    """Format a serialized value as short plain text, e.g. 'Entry _abc'."""
    kind = value["type"]
    if kind in ("Integer", "String"):
        return value["value"]
    if kind == "Null":
        return "null"
    if kind == "Error":
        return f"{value['errorClass']}: {value['message']}"
    if kind == "Page":
        return f"Page of {len(value['values'])} (total {value['totalCount']})"
    return f"{kind} {value['id']}"


def output_result(result: Dict[str, Any], format: str = "table"):
    """Print a serialized lookup result."""
    if format == "json":
        print(json.dumps(result, indent=2))
        return

    console.print(f"[bold]{escape(result['expressionNormalized'])}[/bold]")
    value = result["resultValue"]
    if value["type"] != "Page":
        style = "red" if value["type"] == "Error" else "green"
        console.print(f"[{style}]{escape(format_value(value))}[/{style}]")
        return

    annotation_names: List[str] = []
    for item in value["values"]:
        for name in item.get("annotations", {}):
            if name not in annotation_names:
                annotation_names.append(name)

    start = value["startedAt"]
    end = start + len(value["values"])
    table = Table(title=f"{start}-{end} of {value['totalCount']}")
    table.add_column("#", style="dim")
    table.add_column("Entry", style="cyan")
    for name in annotation_names:
        table.add_column(name.title(), style="green")

    for i, item in enumerate(value["values"], start=start + 1):
        annotations = item.get("annotations", {})
        row = [str(i), escape(item["id"])]
        row += [escape(format_value(annotations[name])) if name in annotations else "" for name in annotation_names]
        table.add_row(*row)

    console.print(table)


# =================
# COMMANDS
# =================

def cmd_import(args):
    """Import a site from a YAML or JSON file."""
    from kblookup.importer import import_file

    db = get_db(args.db)
    path = Path(args.file)
    try:
        summary = import_file(db, path, args.format)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Import error: {escape(str(e))}[/red]")
        sys.exit(1)
    if not args.quiet:
        console.print(f"[green]Imported {summary}[/green]")


def cmd_eval(args):
    """Evaluate a lookup expression."""
    site = args.site or get_config().default_site
    if not site:
        console.print("[red]No site given (use --site or set default_site)[/red]")
        sys.exit(1)

    db = get_db(args.db)
    try:
        response = run_lookup(
            db,
            site,
            args.expression,
            entry_id=args.entry,
            page_size=args.page_size,
            capture_errors=args.capture_errors,
        )
    except LookupParseError as e:
        console.print(f"[red]Invalid lookup expression: {escape(str(e))}[/red]")
        sys.exit(2)
    except LookupEvaluationError as e:
        console.print(f"[red]Lookup failed: {escape(str(e))}[/red]")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)

    output_result(response.to_dict(), args.output)


def cmd_parse(args):
    """Parse an expression and print its normalized form."""
    try:
        expr = parse_lookup(args.expression)
    except LookupParseError as e:
        console.print(f"[red]Invalid lookup expression: {escape(str(e))}[/red]")
        sys.exit(2)

    if args.output == "json":
        print(json.dumps({"expressionNormalized": expr.to_text()}, indent=2))
    else:
        print(expr.to_text())


def cmd_sites(args):
    """List sites in the database."""
    db = get_db(args.db)
    sites = db.list_sites()

    if args.output == "json":
        data = [{"id": s.id, "key": s.key, "name": s.name, **db.site_stats(s.id)} for s in sites]
        print(json.dumps(data, indent=2))
        return

    if not sites:
        console.print("[yellow]No sites[/yellow]")
        return

    table = Table(title="Sites")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Entries", style="green")
    table.add_column("Relationships", style="green")
    for site in sites:
        stats = db.site_stats(site.id)
        table.add_row(escape(site.key), escape(site.name), str(stats["entries"]), str(stats["relationships"]))
    console.print(table)


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="kblookup - evaluate lookup expressions over a knowledge-base graph",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kblookup import plants.yaml
  kblookup eval "this.ancestors()" --site plants --entry pine
  kblookup eval "related(this.andAncestors(), via=RT[_HAS_A])" --site plants --entry pine -o json
  kblookup eval 'related(E[_CONE], via=RT[_HAS_A], direction="to")' --site plants
  kblookup eval "count(descendants(E[_PINALES]))" --site plants
  kblookup parse "this.ancestors().slice(start=2, size=5)"
  kblookup sites

Configuration:
  Default database: ./kblookup.db or from config
  Config file: ~/.config/kblookup/config.toml
  Environment: KBLOOKUP_DATABASE, KBLOOKUP_DEFAULT_SITE, KBLOOKUP_OUTPUT_FORMAT
        """
    )

    # Global options
    parser.add_argument("--db", help="Database file (default: kblookup.db)")
    parser.add_argument("--config", help="Config file path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal output")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug)")
    parser.add_argument("-o", "--output", choices=["table", "json"], help="Output format")

    subparsers = parser.add_subparsers(dest="command", required=True, help="Commands")

    import_parser = subparsers.add_parser("import", help="Import a site from YAML or JSON")
    import_parser.add_argument("file", help="File to import")
    import_parser.add_argument("--format", choices=["yaml", "json"],
                               help="File format (default: from extension)")
    import_parser.set_defaults(func=cmd_import)

    eval_parser = subparsers.add_parser("eval", help="Evaluate a lookup expression")
    eval_parser.add_argument("expression", help="Lookup expression")
    eval_parser.add_argument("--site", "-s", help="Site key (default: from config)")
    eval_parser.add_argument("--entry", "-e", help="Id or key of the current entry ('this')")
    eval_parser.add_argument("--page-size", type=int, help="Default page size")
    eval_parser.add_argument("--capture-errors", action="store_true",
                             help="Report evaluation errors as an Error value")
    eval_parser.set_defaults(func=cmd_eval)

    parse_parser = subparsers.add_parser("parse", help="Print the normalized form of an expression")
    parse_parser.add_argument("expression", help="Lookup expression")
    parse_parser.set_defaults(func=cmd_parse)

    sites_parser = subparsers.add_parser("sites", help="List sites")
    sites_parser.set_defaults(func=cmd_sites)

    args = parser.parse_args(argv)

    # Initialize configuration with CLI overrides
    config_args = {}
    if args.output:
        config_args["output_format"] = args.output
    if args.config:
        config_args["config_file"] = Path(args.config)

    config = init_config(database=args.db, **config_args)

    if not args.output:
        args.output = config.output_format

    level = {0: config.log_level, 1: "INFO"}.get(args.verbose, "DEBUG")
    setup_logging(level)

    try:
        args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
