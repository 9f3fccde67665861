#!/usr/bin/env python3
"""
Confirm Gateway - Main entry point
"""
import argparse
import asyncio
import importlib
import logging
import signal
import sys
from pathlib import Path

from utils.constants import (
    DEFAULT_ISSUER,
    DEFAULT_PENDING_TTL_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
    DEFAULT_TOTP_VALID_WINDOW,
)
from utils.helpers import load_config


def parse_cli_args(argv=None):
    """Parse runtime CLI arguments."""
    parser = argparse.ArgumentParser(description="Confirm Gateway")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml)",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate config and route policies, print a summary, then exit",
    )
    return parser.parse_args(argv)


def load_plugins(config: dict) -> list:
    """Import route modules listed under ``plugins`` so their @command routes register.

    Built-in routes are registered first so plugin patterns cannot shadow
    ``confirm``. An invalid confirmation policy in any of them raises
    ConfigurationError here.
    """
    import core.commands  # noqa: F401

    loaded = []
    for name in config.get("plugins", []) or []:
        importlib.import_module(str(name))
        loaded.append(str(name))
    return loaded


def print_runtime_summary(config: dict, args, routes) -> None:
    conf = config.get("confirmation", {})
    print("✅ Config validation passed")
    print(f"config: {args.config}")
    print(f"confirmation.twofactor_default: {conf.get('twofactor_default', 'block')}")
    print(f"confirmation.twofactor_secure: {conf.get('twofactor_secure', True)}")
    print(f"confirmation.ttl_seconds: {conf.get('ttl_seconds', DEFAULT_PENDING_TTL_SECONDS)}")
    print(f"confirmation.state_file: {conf.get('state_file')}")
    print(f"logging.file: {config.get('logging', {}).get('file')}")
    print(f"routes: {len(routes)} ({sum(1 for s in routes if s.guarded)} guarded)")


# Configure logging
def setup_logging(config: dict):
    """Setup logging based on configuration"""
    log_config = config.get('logging', {})
    level = getattr(logging, log_config.get('level', 'INFO'))
    log_file = log_config.get('file', './logs/gateway.log')

    # Create logs directory
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    # Configure root logger
    logging.basicConfig(
        level=level,
        format='[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stderr)
        ]
    )


def setup_audit_logger(config: dict):
    """Setup dedicated JSONL audit logger if enabled."""
    audit_conf = config.get('logging', {}).get('audit', {})
    if not audit_conf.get('enabled', False):
        return None

    audit_file = audit_conf.get('file', './logs/audit.log')
    Path(audit_file).parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger('audit')
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.handlers.clear()
    handler = logging.FileHandler(audit_file)
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    return logger


def build_components(config: dict, audit_logger=None):
    """Construct auth, secret store, 2FA manager, registry and gateway from config."""
    from core.auth import Auth
    from core.confirmation import PendingCommandRegistry
    from core.gateway import ConfirmationGateway
    from core.secret_store import JsonFileSecretStore, MemorySecretStore
    from core.two_factor import TotpEngine, TwoFactorManager

    auth_conf = config.get('auth', {})
    auth = Auth(
        groups=auth_conf.get('groups', {}),
        admin_users=[str(u) for u in auth_conf.get('admin_users', [])],
        state_file=auth_conf.get('state_file'),
    )

    conf = config.get('confirmation', {})
    state_file = conf.get('state_file')
    store = JsonFileSecretStore(state_file) if state_file else MemorySecretStore()
    two_factor = TwoFactorManager(
        store,
        TotpEngine(valid_window=conf.get('valid_window', DEFAULT_TOTP_VALID_WINDOW)),
        secure=conf.get('twofactor_secure', True),
        issuer=conf.get('issuer', DEFAULT_ISSUER),
    )
    registry = PendingCommandRegistry(ttl_seconds=conf.get('ttl_seconds', DEFAULT_PENDING_TTL_SECONDS))
    gateway = ConfirmationGateway(
        registry,
        two_factor,
        auth,
        default_policy=conf.get('twofactor_default', 'block'),
        audit_logger=audit_logger,
    )
    return auth, two_factor, gateway


async def main(argv=None):
    """Main application entry point"""
    args = parse_cli_args(argv)

    # Load configuration
    try:
        config = load_config(args.config)
        logger = logging.getLogger(__name__)
    except Exception as e:
        print(f"❌ Failed to load configuration: {e}")
        sys.exit(1)

    from core.policy import ConfigurationError

    try:
        load_plugins(config)
        if args.validate_only:
            from core.command_registry import registry as routes

            build_components(config)
            print_runtime_summary(config, args, routes.list_all())
            return
    except ConfigurationError as e:
        print(f"❌ Invalid confirmation configuration: {e}")
        sys.exit(1)

    # Setup logging
    setup_logging(config)
    audit_logger = setup_audit_logger(config)
    logger.info("Starting Confirm Gateway... config=%s", args.config)

    from core.router import Router
    from channels.console import ConsoleChannel

    try:
        auth, two_factor, gateway = build_components(config, audit_logger)
        logger.info(
            "✅ Confirmation gateway initialized (default=%s secure=%s ttl=%ss)",
            gateway.default_policy.value,
            two_factor.secure,
            gateway.registry.ttl_seconds,
        )

        channel = ConsoleChannel(config.get('channels', {}).get('console', {}))
        router = Router(auth, gateway, two_factor, channel, config)
        channel.set_message_handler(router.handle_message)
        logger.info("✅ %d route(s) registered", len(router.routes.list_all()))

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()

        def _request_shutdown(sig_num: int):
            logger.info(f"Received signal {sig_num}, shutting down...")
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _request_shutdown, int(sig))
            except NotImplementedError:
                signal.signal(sig, lambda s, _f: _request_shutdown(int(s)))

        sweep_interval = float(
            config.get('confirmation', {}).get('sweep_interval_seconds', DEFAULT_SWEEP_INTERVAL_SECONDS)
        )
        sweeper = None
        if sweep_interval > 0:
            sweeper = asyncio.create_task(gateway.registry.run_sweeper(sweep_interval, shutdown_event))

        await channel.start()
        logger.info("🚀 Confirm Gateway is running")

        closed = asyncio.create_task(channel.closed.wait())
        stopped = asyncio.create_task(shutdown_event.wait())
        await asyncio.wait({closed, stopped}, return_when=asyncio.FIRST_COMPLETED)
        shutdown_event.set()
        for task in (closed, stopped):
            task.cancel()

        logger.info("Shutting down...")
        await channel.stop()
        if sweeper is not None:
            await sweeper
        logger.info("✅ Shutdown complete")

    except ConfigurationError as e:
        logger.error("Invalid confirmation configuration: %s", e)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n👋 Interrupted by user")


if __name__ == "__main__":
    cli()
