#!/usr/bin/env python3
"""
Clay content migration tool - main CLI entry point.

This script provides the command-line interface for exporting content from
Clay sites as dispatches or bootstraps, importing it into other sites,
linting references, and managing saved key and url aliases.
"""

import argparse
import logging
import sys
from typing import Iterable, Optional

import yaml
from tqdm import tqdm

from clay_client import ClayApiError, ClayClient, MissingApiKeyError
from config_loader import ClayConfig, ConfigLoader, ConfigurationError, get_nested, validate_url
from exporters import Exporter, ExportError
from formatting import ChunkValidationError, InputParseError, dump_bootstrap, dump_dispatch
from importers import Importer
from linters import Linter
from logger import ProgressTracker, log_config, log_section, setup_logging
from orchestrator import RunReport
from prefixes import PrefixError

# Version
__version__ = "1.0.0"

logger = logging.getLogger('claycli.cli')


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='clay',
        description="Export, import and lint content on Clay sites",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Save a key and a site alias
  clay config --key prod as8d7s9d
  clay config --url prod domain.com

  # Export dispatches, or a bootstrap with layouts
  clay export domain.com/_pages/foo > db_dump.clay
  clay export --layout --yaml domain.com/_pages/foo > bootstrap.yml

  # Export every page a search query matches
  clay export --key prod --query query.yml domain.com

  # Import dispatches or a bootstrap from stdin
  clay import --key prod domain.com < db_dump.clay
  clay import --key prod --yaml --publish domain.com < bootstrap.yml

  # Copy a page straight from one site to another
  clay import --key prod --source staging.domain.com/_pages/foo domain.com

  # Lint a page, or a bootstrap from stdin
  clay lint domain.com/_pages/foo
  clay lint < bootstrap.yml
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--settings',
        type=str,
        help='Path to settings YAML file'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Write logs to this file as well'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        help='Explicit log level (overrides -v)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    config_parser = subparsers.add_parser('config', help='View or set key and url aliases')
    alias_group = config_parser.add_mutually_exclusive_group()
    alias_group.add_argument('-k', '--key', type=str, help='Key alias to view or set')
    alias_group.add_argument('-u', '--url', type=str, help='Url alias to view or set')
    config_parser.add_argument('value', nargs='?', help='Value to save for the alias')

    export_parser = subparsers.add_parser('export', help='Export data from clay')
    export_parser.add_argument('url', nargs='?', help='Url or url alias to export')
    export_parser.add_argument('-k', '--key', type=str, help='API key or key alias')
    export_parser.add_argument('-c', '--concurrency', type=int, help='Maximum simultaneous requests')
    export_parser.add_argument('-s', '--size', type=int, help='Number of query results to export')
    export_parser.add_argument('-l', '--layout', action='store_true', help='Include page layouts')
    export_parser.add_argument('-y', '--yaml', action='store_true', help='Export a bootstrap instead of dispatches')
    export_parser.add_argument(
        '-q', '--query',
        type=str,
        help="YAML file with a search query ('-' for stdin); url is then the site prefix"
    )

    import_parser = subparsers.add_parser('import', help='Import data into clay')
    import_parser.add_argument('url', nargs='?', help='Target site prefix or url alias')
    import_parser.add_argument('-k', '--key', type=str, help='API key or key alias')
    import_parser.add_argument('-c', '--concurrency', type=int, help='Maximum simultaneous requests')
    import_parser.add_argument('-p', '--publish', action='store_true', help='Also publish imported components and pages')
    import_parser.add_argument('-y', '--yaml', action='store_true', help='Read bootstrap YAML instead of dispatches')
    import_parser.add_argument('-f', '--file', type=str, help='Bootstrap file (YAML or JSON) to import')
    import_parser.add_argument(
        '--source',
        action='append',
        help='Source url to copy from another site (repeatable)'
    )
    import_parser.add_argument(
        '--overwrite-layouts',
        action='store_true',
        help='Replace layouts that already exist on the target'
    )
    import_parser.add_argument(
        '--overwrite',
        type=str,
        help='Comma-separated asset classes to overwrite (lists, components, pages, layouts, all)'
    )
    import_parser.add_argument('--report', type=str, help='Write a JSON run report to this path')

    lint_parser = subparsers.add_parser('lint', help='Lint urls or bootstraps')
    lint_parser.add_argument('url', nargs='?', help='Url or url alias to lint; reads a bootstrap from stdin if omitted')
    lint_parser.add_argument('-c', '--concurrency', type=int, help='Maximum simultaneous requests')
    lint_parser.add_argument('--prefix', type=str, help='Site to check bootstrap references against')

    for subparser in (import_parser, lint_parser):
        subparser.add_argument(
            '--progress',
            action=argparse.BooleanOptionalAction,
            default=None,
            help='Show a progress bar (default: when stderr is a terminal)'
        )

    return parser


def _show_progress(args: argparse.Namespace) -> bool:
    if args.progress is not None:
        return args.progress
    return sys.stderr.isatty()


def _read_input(path: Optional[str]) -> str:
    if path in (None, '-'):
        return sys.stdin.read()
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def _finish(report: RunReport, results: Iterable, args: argparse.Namespace, unit: str) -> int:
    """Drain a result stream through the report and print the summary."""
    with ProgressTracker(item_type=unit) as tracker:
        stream = report.track(results)
        if _show_progress(args):
            stream = tqdm(stream, desc=report.operation.capitalize(), unit=unit, file=sys.stderr)

        for result in stream:
            status = result.status.value
            tracker.increment(success=status != 'error', skipped=status == 'skipped')

    report.finish()
    summary = report.generate_report()
    print("\n" + report.format_console_report(summary), file=sys.stderr)

    if getattr(args, 'report', None):
        report.export_json_report(summary, args.report)

    if report.has_failures:
        logger.warning(f"{report.operation.capitalize()} completed with {len(report.failures)} errors")
        return 1
    logger.info(f"{report.operation.capitalize()} completed successfully")
    return 0


def run_config(args: argparse.Namespace, aliases: ClayConfig) -> int:
    """View or save an alias, or print every saved alias."""
    section, alias = ('key', args.key) if args.key else ('url', args.url)

    if not alias:
        if args.value:
            logger.error("Please provide either --key or --url")
            return 2
        print(yaml.safe_dump(aliases.get_all(), default_flow_style=False), end='')
        return 0

    if args.value:
        aliases.set(section, alias, args.value)
        print(f"set {alias} {args.value}")
    else:
        print(aliases.get(section, alias) or '')
    return 0


def run_export(args: argparse.Namespace, config: dict, aliases: ClayConfig) -> int:
    """Stream an export to stdout."""
    url = aliases.get('url', args.url)
    key = aliases.get('key', args.key)
    client = ClayClient.from_config(config, key=key)
    exporter = Exporter(client, config)
    as_yaml = get_nested(config, 'export.yaml', False)
    layout = get_nested(config, 'export.layout', False)

    try:
        if args.query:
            query = yaml.safe_load(_read_input(args.query)) or {}
            results = exporter.from_query(
                url, query, size=get_nested(config, 'export.size'), layout=layout, yaml=as_yaml, key=key
            )
        else:
            results = exporter.from_url(url, layout=layout, yaml=as_yaml)

        count = 0
        for item in results:
            sys.stdout.write(dump_bootstrap(item) if as_yaml else dump_dispatch(item) + '\n')
            count += 1
    except ExportError as e:
        logger.error(f"Unable to export: {e}")
        return 1
    finally:
        client.close()

    logger.info(f"Exported {count} {'bootstrap' if as_yaml else 'dispatch'}(s)")
    return 0


def run_import(args: argparse.Namespace, config: dict, aliases: ClayConfig) -> int:
    """Import from stdin, a file, or other sites, then report."""
    target = aliases.get('url', args.url)
    if not target:
        logger.error("URL is not defined! Please specify a site prefix to import into")
        return 2

    validate_url(target, 'target url')
    client = ClayClient.from_config(config, key=aliases.get('key', args.key))
    importer = Importer(client, config)
    publish = get_nested(config, 'import.publish', False)

    try:
        if args.source:
            overwrite = [item.strip() for item in args.overwrite.split(',')] if args.overwrite else None
            results = importer.import_assets(
                [aliases.get('url', source) for source in args.source],
                target,
                overwrite_layouts=get_nested(config, 'import.overwrite_layouts', False),
                overwrite=overwrite
            )
        elif args.file:
            results = importer.import_file(args.file, target, publish=publish)
        else:
            results = importer.import_text(
                _read_input(None), target, yaml=args.yaml, publish=publish
            )

        return _finish(RunReport('import'), results, args, unit='asset')
    except ExportError as e:
        logger.error(f"Unable to import: {e}")
        return 1
    finally:
        client.close()


def run_lint(args: argparse.Namespace, config: dict, aliases: ClayConfig) -> int:
    """Lint a url, or a bootstrap read from stdin."""
    client = ClayClient.from_config(config)
    linter = Linter(client, config)

    try:
        if args.url:
            results = linter.lint_url(aliases.get('url', args.url))
        else:
            prefix = aliases.get('url', args.prefix) if args.prefix else None
            results = linter.lint_bootstrap_text(_read_input(None), prefix=prefix)

        return _finish(RunReport('lint'), results, args, unit='reference')
    finally:
        client.close()


COMMANDS = {
    'export': run_export,
    'import': run_import,
    'lint': run_lint,
}


def main(argv: Optional[list] = None) -> int:
    """Main entry point for CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        setup_logging(verbosity=args.verbose, level=args.log_level)
        log_section("Clay CLI")
        logger.info(f"Version: {__version__}")

        if args.settings:
            logger.info(f"Loading settings from {args.settings}")
            config = ConfigLoader.load(args.settings)
        else:
            config = ConfigLoader.with_defaults({})

        # CLI takes precedence
        config = ConfigLoader.merge_with_args(config, args)
        ConfigLoader.validate(config)

        setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=args.log_level or get_nested(config, 'logging.level')
        )
        log_config(config)

        aliases = ClayConfig()
        if args.command == 'config':
            return run_config(args, aliases)
        return COMMANDS[args.command](args, config, aliases)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except (MissingApiKeyError, ConfigurationError, InputParseError, ChunkValidationError, PrefixError, yaml.YAMLError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except ClayApiError as e:
        print(f"ERROR: {e.message}: {e.url}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
