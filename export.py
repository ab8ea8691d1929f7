#!/usr/bin/env python3
"""
Confluence Offline Copy - Main CLI Entry Point

Exports labelled Confluence pages and page trees to dated PDF snapshots with
their attachments, then prunes snapshots older than the retention window.
"""

import argparse
import asyncio
import logging
import sys

import yaml

from config_loader import ConfigLoader, get_nested
from logger import DEFAULT_LOG_FILE, log_config, log_section, setup_logging
from orchestrator import RunOrchestrator, RunReport

# Version
__version__ = "1.0.0"


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Create offline PDF copies of labelled Confluence pages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Export every configured source using ./config.json
  confluence-offline-copy

  # Use a YAML configuration
  confluence-offline-copy --config config.yaml

  # Preview discovered pages without rendering
  confluence-offline-copy --dry-run

  # Write a JSON run report, debug logging
  confluence-offline-copy --report-path report.json -v
        """
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    parser.add_argument(
        '--config',
        type=str,
        default='config.json',
        help='Path to configuration JSON or YAML file (default: config.json)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        default=None,
        help=f'Log file path (default: logging.file from config, else {DEFAULT_LOG_FILE})'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Discover and list pages without rendering or pruning'
    )

    parser.add_argument(
        '--report-path',
        type=str,
        default=None,
        help='Write the run report as JSON to this path'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for DEBUG)'
    )

    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Only configuration problems map to exit code 2
    try:
        setup_logging(verbosity=args.verbose, log_file=args.log_file or DEFAULT_LOG_FILE)
        logger = logging.getLogger('confluence_offline_copy')

        log_section("Confluence Offline Copy")
        logger.info(f"Version: {__version__}")

        # Load and validate every source before anything runs
        logger.info(f"Loading configuration from {args.config}")
        config = ConfigLoader.load(args.config)
        sources = ConfigLoader.resolve_sources(config)

        # Reconfigure logging with config file settings
        log_file = args.log_file or get_nested(config, 'logging.file', DEFAULT_LOG_FILE)
        level = None if args.verbose else get_nested(config, 'logging.level')
        setup_logging(verbosity=args.verbose, log_file=log_file, level=level)

    except FileNotFoundError as e:
        print(f"ERROR: File not found: {e}", file=sys.stderr)
        return 2
    except yaml.YAMLError as e:
        print(f"ERROR: Could not parse configuration: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nExport interrupted by user", file=sys.stderr)
        return 130

    try:
        log_config([source.to_dict() for source in sources])

        orchestrator = RunOrchestrator(logger=logger.getChild('orchestrator'))
        report = asyncio.run(orchestrator.run_all(sources, dry_run=args.dry_run))

        report_generator = RunReport(logger)
        print("\n" + report_generator.format_console_report(report))

        if args.report_path:
            report_generator.export_json_report(report, args.report_path)

        failed = report['totals']['failed']
        if failed:
            logger.warning(f"Run completed with {failed} failed page(s)")
        else:
            logger.info("Run completed successfully")
        return 0

    except KeyboardInterrupt:
        print("\nExport interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
