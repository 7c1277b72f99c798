# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Entry points for the builder.

`gitbuilder server` runs the SSH server that accepts pushes.
`gitbuilder git-receive` is run by the pre-receive hook: it reads the ref
update lines on stdin and builds each pushed commit.
"""

import argparse
import logging
import os
import sys
from typing import TextIO

from . import __version__
from .auth import AuthGate
from .config import Config, get_config
from .exceptions import BuilderError, ConfigurationError
from .git_receiver import GitReceiver
from .keys import load_authorized_key, load_host_keys
from .models import HookContext
from .orchestrator import Orchestrator
from .scheduler import KubernetesScheduler
from .sshd import SSHServer
from .storage import HttpObjectStorage


def setup_logging(debug: bool = False) -> logging.Logger:
    """
    Configure logging based on debug mode.

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    # paramiko logs every packet at DEBUG
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    return logging.getLogger("gitbuilder")


def run_server(config: Config, logger: logging.Logger) -> int:
    """Load keys and serve SSH until interrupted."""
    host_keys = load_host_keys(config.HOST_KEY_TYPES, config.HOST_KEY_PATTERN, logger=logger)
    auth_gate = AuthGate(load_authorized_key(config.AUTHORIZED_KEY_PATH, logger=logger), logger=logger)
    receiver = GitReceiver(config, logger=logger)
    server = SSHServer(config, auth_gate, receiver, host_keys, logger=logger)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.shutdown()
    return 0


def run_git_receive(config: Config, logger: logging.Logger, stdin: TextIO | None = None) -> int:
    """Build every ref update of the push being received."""
    context = HookContext.from_environ(os.environ)
    logger.debug(f"Running git hook for {context.repository}")

    scheduler = KubernetesScheduler(logger=logger)
    with HttpObjectStorage(config.STORAGE_ENDPOINT, logger=logger) as storage:
        orchestrator = Orchestrator(config, context, storage, scheduler, logger=logger)
        orchestrator.run(stdin or sys.stdin)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gitbuilder", description="Git push build trigger")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("server", help="Run the SSH server that accepts git pushes")
    subparsers.add_parser("git-receive", help="Build pushed refs (run by the pre-receive hook)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main execution function.

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)

    try:
        config = get_config()
    except ConfigurationError as e:
        setup_logging().error(f"Configuration error: {e}")
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(config.DEBUG_MODE)

    try:
        if args.command == "server":
            return run_server(config, logger)
        return run_git_receive(config, logger)

    except BuilderError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"❌ ERROR: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Unexpected error during {args.command}: {e}", exc_info=True)
        print(f"❌ FATAL ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
