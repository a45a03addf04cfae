#!/usr/bin/env python3
"""
TM1Rest - Command Line Entry Point

Bulk load and export cube data and run TI processes against an instance
configured in tm1_config.json.

Usage:
    python main.py import-csv Sales data.csv
    python main.py import-json Sales data.json --skip-errors
    python main.py export-csv "SELECT ... FROM [Sales]" --output sales.csv
    python main.py run-process Load.Sales --param pYear=2024 --poll
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tm1rest import (
    ClientConfig,
    CSVImportOptions,
    ExportOptions,
    JSONImportOptions,
    TM1Error,
    TM1Service,
)
from tm1rest.utils.logging import setup_logging

logger = logging.getLogger("tm1rest.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="TM1Rest - bulk data and process client for TM1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py import-csv Sales data.csv --delimiter ";"
  python main.py export-csv "SELECT {[Year].[2024]} ON COLUMNS FROM [Sales]"
  python main.py run-process Load.Sales --param pYear=2024 --poll --timeout 600

Configuration:
  tm1_config.json is read from --config, $TM1REST_CONFIG, ./tm1_config.json
  or ~/.tm1rest/tm1_config.json (first match wins).
""",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to tm1_config.json")
    parser.add_argument(
        "--instance", type=str, default=None, help="Instance name (default: settings.default_instance)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    import_csv = commands.add_parser("import-csv", help="Write CSV rows into a cube")
    import_csv.add_argument("cube")
    import_csv.add_argument("file", type=Path)
    import_csv.add_argument("--delimiter", default=",")
    import_csv.add_argument("--no-header", action="store_true", dest="no_header")
    import_csv.add_argument("--batch-size", type=int, default=1000, dest="batch_size")
    import_csv.add_argument("--skip-errors", action="store_true", dest="skip_errors")
    import_csv.add_argument("--sandbox", default=None)

    import_json = commands.add_parser("import-json", help="Write a JSON array of cells into a cube")
    import_json.add_argument("cube")
    import_json.add_argument("file", type=Path)
    import_json.add_argument("--batch-size", type=int, default=1000, dest="batch_size")
    import_json.add_argument("--skip-errors", action="store_true", dest="skip_errors")
    import_json.add_argument("--sandbox", default=None)

    export_csv = commands.add_parser("export-csv", help="Export an MDX query as CSV")
    export_csv.add_argument("mdx")
    export_csv.add_argument("--output", type=Path, default=None, help="File to write (default: stdout)")
    export_csv.add_argument("--delimiter", default=",")
    export_csv.add_argument("--skip-zeros", action="store_true", dest="skip_zeros")
    export_csv.add_argument("--sandbox", default=None)

    run_process = commands.add_parser("run-process", help="Execute a TI process")
    run_process.add_argument("process")
    run_process.add_argument(
        "--param", action="append", default=[], metavar="NAME=VALUE", help="Process parameter"
    )
    run_process.add_argument(
        "--poll", action="store_true", help="Execute asynchronously and poll for the result"
    )
    run_process.add_argument("--timeout", type=float, default=None)
    run_process.add_argument("--poll-interval", type=float, default=None, dest="poll_interval")

    return parser


def parse_parameters(pairs: list[str]) -> dict[str, str]:
    parameters = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"Invalid parameter '{pair}', expected NAME=VALUE")
        parameters[name] = value
    return parameters


async def run_command(args: argparse.Namespace, config: ClientConfig) -> int:
    async with TM1Service.from_config(config, args.instance) as tm1:
        if args.command == "import-csv":
            options = CSVImportOptions(
                delimiter=args.delimiter,
                has_header=not args.no_header,
                batch_size=args.batch_size,
                skip_errors=args.skip_errors,
                sandbox_name=args.sandbox,
            )
            count = await tm1.bulk.import_csv(
                args.cube, args.file.read_text(encoding="utf-8"), options
            )
            sys.stdout.write(f"Imported {count} cell(s) into {args.cube}\n")

        elif args.command == "import-json":
            rows = json.loads(args.file.read_text(encoding="utf-8"))
            options = JSONImportOptions(
                batch_size=args.batch_size, skip_errors=args.skip_errors, sandbox_name=args.sandbox
            )
            count = await tm1.bulk.import_json(args.cube, rows, options)
            sys.stdout.write(f"Imported {count} cell(s) into {args.cube}\n")

        elif args.command == "export-csv":
            options = ExportOptions(
                delimiter=args.delimiter, skip_zeros=args.skip_zeros, sandbox_name=args.sandbox
            )
            text = await tm1.bulk.export_csv(args.mdx, options)
            if args.output:
                args.output.write_text(text + "\n", encoding="utf-8")
                sys.stdout.write(f"Exported to {args.output}\n")
            else:
                sys.stdout.write(text + "\n")

        elif args.command == "run-process":
            parameters = parse_parameters(args.param)
            if args.poll:
                polling = config.polling_settings()
                result = await tm1.processes.poll_execute_with_return(
                    args.process,
                    parameters,
                    timeout=args.timeout or polling.timeout,
                    poll_interval=(
                        args.poll_interval if args.poll_interval is not None else polling.poll_interval
                    ),
                )
                sys.stdout.write(json.dumps(result, indent=2, default=str) + "\n")
            else:
                success, status, error_log = await tm1.processes.execute_with_return(
                    args.process, parameters
                )
                sys.stdout.write(f"{args.process}: {status}\n")
                if error_log:
                    sys.stdout.write(f"Error log: {error_log}\n")
                if not success:
                    return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ClientConfig.load(args.config)
    except FileNotFoundError as e:
        sys.stderr.write(f"{e}\n")
        return 2

    log_settings = config.logging_settings()
    setup_logging(
        log_dir=log_settings.log_dir,
        log_level=log_settings.log_level,
        use_json=log_settings.use_json,
        console_output=log_settings.console_output,
    )

    try:
        return asyncio.run(run_command(args, config))
    except (TM1Error, ValueError, KeyError) as e:
        logger.error(f"{args.command} failed: {e}")
        sys.stderr.write(f"Error: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
