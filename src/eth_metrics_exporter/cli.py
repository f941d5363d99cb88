import argparse
import json
import logging
import shlex
import sys
from pathlib import Path
from typing import List, Optional

from .config import build_config
from .disk import DiskUsage
from .metrics import MetricsSink
from .types import ExporterError


def setup_logging(debug=False):
    """Configure logging with the specified debug level."""
    log_level = logging.DEBUG if debug else logging.INFO

    # Configure the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S%z'
    ))
    root_logger.addHandler(console)

    log = logging.getLogger("eth-metrics-exporter")
    log.setLevel(log_level)
    return log


def build_parser() -> argparse.ArgumentParser:
    """Build the command line argument parser."""
    parser = argparse.ArgumentParser(
        prog="eth-metrics-exporter",
        description="Export Ethereum consensus node and disk usage metrics for Prometheus."
    )
    subparsers = parser.add_subparsers(dest="cmd", required=True)

    # 'serve' command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the collectors and serve /metrics over HTTP."
    )
    serve_parser.add_argument("--config", help="Path to a JSON config file.", default=None)
    serve_parser.add_argument(
        "--consensus-url",
        help="Beacon node HTTP API URL (also ETH_EXPORTER_CONSENSUS_URL).",
        default=None
    )
    serve_parser.add_argument(
        "--disk-dir",
        dest="disk_directories",
        action="append",
        default=None,
        help="Directory to measure; may be given more than once."
    )
    serve_parser.add_argument("--namespace", default=None, help="Metric name prefix (default: eth).")
    serve_parser.add_argument("--node-name", default=None, help="node_name label (default: hostname).")
    serve_parser.add_argument("--host", default=None, help="Address to bind (default: 0.0.0.0).")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind (default: 9090).")
    serve_parser.add_argument("--debug", action="store_true", default=None, help="Enable debug output.")

    # 'disk-usage' command
    disk_parser = subparsers.add_parser(
        "disk-usage",
        help="Measure directories once and print the result as JSON."
    )
    disk_parser.add_argument("directories", nargs="+", help="Directories to measure.")
    disk_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout).",
        type=Path,
        default=None
    )
    disk_parser.add_argument("--debug", action="store_true", help="Enable debug output.")

    return parser


def _serve(parsed_args, log) -> int:
    # Imported here so 'disk-usage' does not pull in the HTTP server
    from .daemon import ExporterDaemon

    try:
        config = build_config(
            parsed_args.config,
            overrides={
                "consensus_url": parsed_args.consensus_url,
                "disk_directories": parsed_args.disk_directories,
                "namespace": parsed_args.namespace,
                "node_name": parsed_args.node_name,
                "host": parsed_args.host,
                "port": parsed_args.port,
                "debug": parsed_args.debug,
            },
        )
    except ExporterError as e:
        log.error(f"Configuration error: {e}")
        return 1

    if config.debug:
        log.setLevel(logging.DEBUG)
        logging.getLogger().setLevel(logging.DEBUG)
    log.debug(f"Configuration: {config.to_dict()}")

    daemon = ExporterDaemon(config)
    try:
        daemon.start()
    except KeyboardInterrupt:
        log.info("Shutting down...")
    except OSError as e:
        log.error(f"Fatal error: {e}")
        return 1
    finally:
        daemon.stop()
    return 0


def _disk_usage(parsed_args, log) -> int:
    usage = DiskUsage(MetricsSink("eth"), parsed_args.directories).get_usage()
    output = json.dumps([record.to_dict() for record in usage], indent=2)

    if parsed_args.output:
        try:
            parsed_args.output.write_text(output)
            log.info(f"Results written to {parsed_args.output}")
        except OSError as e:
            log.error(f"Error writing to {parsed_args.output}: {str(e)}", exc_info=parsed_args.debug)
            return 1
    else:
        print(output)
    return 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    # Allow a single string of arguments (e.g., when VS Code passes one promptString)
    if args is None and len(sys.argv) == 2 and isinstance(sys.argv[1], str):
        args = shlex.split(sys.argv[1])
    elif isinstance(args, list) and len(args) == 1 and isinstance(args[0], str):
        args = shlex.split(args[0])

    parser = build_parser()
    parsed_args = parser.parse_args(args)

    log = setup_logging(debug=bool(parsed_args.debug))
    log.debug("CLI main() started")

    if parsed_args.cmd == "serve":
        return _serve(parsed_args, log)
    if parsed_args.cmd == "disk-usage":
        return _disk_usage(parsed_args, log)
    return 0


if __name__ == "__main__":
    sys.exit(main())
