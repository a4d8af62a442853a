#!/usr/bin/env python3
"""crvs-workflow CLI - management utility for the workflow service."""

import argparse
import sys
from pathlib import Path

from crvs_workflow.settings import settings
from crvs_workflow.utils.logger import logger

SETTINGS_TEMPLATE = """# CRVS workflow configuration file

# Server settings
port = 5050
host = "127.0.0.1"
debug = true

# Collaborating services
hearth_url = "http://localhost:3447/fhir"
user_mgnt_url = "http://localhost:3030"
country_config_url = "http://localhost:3040"
events_url = "http://localhost:5050"

# Registrations wait for the country system when enabled
external_validation_enabled = false

# Token validation (set jwt_public_key_path for RS256 tokens)
jwt_issuer = "opencrvs:auth-service"
jwt_audience = ["opencrvs:workflow-user"]
"""


def init_project(path: str) -> None:
    """Write a starter settings.toml into ``path``."""
    project_path = Path(path).resolve()
    project_path.mkdir(parents=True, exist_ok=True)

    settings_file = project_path / "settings.toml"
    if settings_file.exists():
        logger.warning(f"Settings file already exists: {settings_file}")
        return
    settings_file.write_text(SETTINGS_TEMPLATE)
    logger.info(f"Created settings file: {settings_file}")

    env_example = """# Environment variables (optional, override settings.toml)
# CRVS_HEARTH_URL=http://hearth:3447/fhir
# CRVS_JWT_PUBLIC_KEY_PATH=/secrets/public-key.pem
"""
    env_file = project_path / ".env.example"
    env_file.write_text(env_example)
    logger.info(f"Created .env.example: {env_file}")


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the workflow API server."""
    import uvicorn

    host = host or settings.host
    port = port or settings.port

    logger.info(f"Starting workflow service at http://{host}:{port}")

    uvicorn.run(
        "crvs_workflow.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="crvs-workflow", description="Registration-record workflow service"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", help="Write a starter settings.toml")
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Directory for the settings file (default: current directory)",
    )

    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    run_parser.add_argument("--port", type=int, default=None, help="Port to bind to")

    args = parser.parse_args()

    if args.command == "init":
        init_project(args.path)
    elif args.command == "run":
        run_server(args.host, args.port)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
