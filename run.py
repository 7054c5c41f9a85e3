#!/usr/bin/env python
"""
Entry point for running the TableDB API server.

Usage:
    python run.py                         # Start server with defaults
    python run.py --port 8080             # Custom port
    python run.py --data-dir /var/tabledb # Custom data directory
    python run.py --connection memory://  # In-memory store
"""

import argparse
import logging
from dataclasses import replace

import uvicorn

from tabledb.config import DEFAULT_CONFIG, parse_table_list
from tabledb.index import create_app


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="TableDB API Server")
    parser.add_argument(
        "--host",
        type=str,
        default=DEFAULT_CONFIG.host,
        help=f"Host to bind to (default: {DEFAULT_CONFIG.host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_CONFIG.http_port,
        help=f"Port to bind to (default: {DEFAULT_CONFIG.http_port})"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help=f"Table directory (default: {DEFAULT_CONFIG.data_dir})"
    )
    parser.add_argument(
        "--connection",
        type=str,
        default=None,
        help="Connection string, e.g. fast://./data or memory://"
    )
    parser.add_argument(
        "--preload",
        type=str,
        default=None,
        help="Comma separated tables to cache at startup"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=DEFAULT_CONFIG.log_level.value.lower(),
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)"
    )

    args = parser.parse_args()

    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=args.log_level.upper()
    )

    config = replace(DEFAULT_CONFIG, host=args.host, http_port=args.port)
    if args.connection:
        config = config.with_connection_string(args.connection)
    if args.data_dir:
        config = replace(config, data_dir=args.data_dir)
    if args.preload is not None:
        config = replace(config, preload=parse_table_list(args.preload))

    print(f"""
TableDB API Server
  Server running at: http://{config.host}:{config.http_port}
  API Documentation: http://{config.host}:{config.http_port}/docs
  Storage:           {config.storage_backend.value} ({config.data_dir})
""")

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.http_port,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
