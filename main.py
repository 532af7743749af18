#!/usr/bin/env python3
"""
OrderDesk - Main Entrypoint

USAGE:
    python main.py serve --config config/config.yaml
    python main.py serve --config config/config.yaml --host 0.0.0.0 --port 8080
    python main.py check-config --config config/config.yaml
"""

from __future__ import annotations

import sys
import argparse
import json
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from orderdesk.config import ConfigLoader, load_env
from orderdesk.logging import setup_logging


def _serve(config_path: Path, host: str | None, port: int | None) -> int:
    import uvicorn

    from orderdesk.api import create_app
    from orderdesk.di import Container

    container = Container()
    container.initialize(config_path)
    config = container.get_config()

    log_cfg = config.logging
    setup_logging(
        log_dir=log_cfg.log_dir,
        log_level=log_cfg.log_level.value,
        console_level=log_cfg.console_level.value,
        json_logs=log_cfg.json_logs,
        max_bytes=log_cfg.max_bytes,
        backup_count=log_cfg.backup_count,
    )

    app = create_app(container)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )
    return 0


def _check_config(config_path: Path) -> int:
    loader = ConfigLoader(config_path)
    try:
        config = loader.load_and_validate()
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    print(json.dumps(ConfigLoader.scrub_secrets(config.model_dump(mode="json")), indent=2))
    print("-" * 60)
    print(f"OK: {len(config.merchants)} merchants, {len(config.auth.tokens)} tokens")
    return 0


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="OrderDesk - Order lifecycle and live order streams",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')
    subparsers.required = True

    # HTTP server
    serve_parser = subparsers.add_parser('serve', help='Run the HTTP API server')
    serve_parser.add_argument(
        '--config',
        type=str,
        default='config/config.yaml',
        help='Path to config file (default: config/config.yaml)'
    )
    serve_parser.add_argument(
        '--host',
        type=str,
        default=None,
        help='Bind address (overrides server.host)'
    )
    serve_parser.add_argument(
        '--port',
        type=int,
        default=None,
        help='Bind port (overrides server.port)'
    )

    # Config validation
    check_parser = subparsers.add_parser('check-config', help='Validate config and print it with secrets redacted')
    check_parser.add_argument(
        '--config',
        type=str,
        default='config/config.yaml',
        help='Path to config file (default: config/config.yaml)'
    )

    args = parser.parse_args()

    load_env()

    # Validate config file exists
    config_path = Path(args.config)
    if not config_path.exists():
        print(f"ERROR: Config file not found: {config_path}")
        print("Create config file or specify --config path")
        sys.exit(1)

    if args.command == 'serve':
        print("Starting OrderDesk API...")
        print(f"Config: {config_path}")
        print("Press Ctrl+C to stop")
        print("-" * 60)
        sys.exit(_serve(config_path, args.host, args.port))

    elif args.command == 'check-config':
        sys.exit(_check_config(config_path))


if __name__ == '__main__':
    main()
