"""CLI entry point for graceful."""

import argparse
import json
import logging
import signal
import sys
import threading

from .config import GracefulConfig, load_config, merge_cli_args
from .registration import AutoServiceRegistration
from .registry import (
    InMemoryRegistry,
    RegistryError,
    ServiceRegistryClient,
    start_registry_server,
)
from .server import DEREGISTER_PATH, create_server

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _add_serve_args(parser: argparse.ArgumentParser) -> None:
    """Add config flags for `graceful serve`."""
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument(
        "--service-name", type=str, dest="service_name",
        help="Logical service name, used as the registry service type",
    )
    parser.add_argument(
        "--service-id", type=str, dest="service_id",
        help="Registry id for this instance (default: <service-name>-<host>-<port>)",
    )
    parser.add_argument("--host", type=str, help="Address advertised to the registry")
    parser.add_argument("--port", type=int, help="HTTP port of this service (default: 8080)")
    parser.add_argument(
        "--bind-host", type=str, dest="bind_host",
        help="Address the HTTP server binds to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--registry-host", type=str, dest="registry_host",
        help="Hostname of the registry server (default: localhost)",
    )
    parser.add_argument(
        "--registry-port", type=int, dest="registry_port",
        help="Port of the registry HTTP API (default: 8471)",
    )
    parser.add_argument(
        "--no-register", action="store_false", dest="register_enabled", default=None,
        help="Serve without registering this instance",
    )
    parser.add_argument(
        "--no-deregister-on-shutdown", action="store_false",
        dest="deregister_on_shutdown", default=None,
        help="Leave the registration in place when SIGTERM/SIGINT arrives",
    )


def _add_log_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level", type=str, default="INFO", dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )


def _build_config(args) -> GracefulConfig:
    """Build a GracefulConfig from a config file + CLI overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = GracefulConfig()
    merge_cli_args(config, args)
    return config


def _install_shutdown_handlers(server, registration: AutoServiceRegistration,
                               deregister: bool) -> None:
    """On SIGTERM/SIGINT: destroy the registration, then stop the server."""

    def _shutdown() -> None:
        try:
            if deregister:
                registration.destroy()
        except Exception:
            logger.exception("Deregistration during shutdown failed")
        finally:
            server.shutdown()

    def _handle_signal(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        # server.shutdown() blocks until serve_forever returns, which runs on
        # this (main) thread.
        threading.Thread(target=_shutdown, daemon=True).start()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, _handle_signal)


def cmd_serve(args) -> None:
    """Register this instance and serve /deregister until signalled."""
    config = _build_config(args)

    client = ServiceRegistryClient(host=config.registry_host, port=config.registry_port)
    registration = AutoServiceRegistration(
        client, config.to_service_info(), enabled=config.register_enabled,
    )
    # Bind first; a failed bind must leave nothing registered.
    try:
        server = create_server(registration, host=config.bind_host, port=config.port)
    except OSError as exc:
        print(f"Error: could not bind {config.bind_host}:{config.port}: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        registration.start()
    except RegistryError as exc:
        server.server_close()
        print(f"Error: could not register with registry: {exc}", file=sys.stderr)
        sys.exit(1)

    _install_shutdown_handlers(server, registration, config.deregister_on_shutdown)

    print(
        f"Serving {DEREGISTER_PATH} on {config.bind_host}:{config.port} "
        f"as {config.resolved_service_id}",
        file=sys.stderr,
    )
    try:
        server.serve_forever()
    finally:
        server.server_close()
    print("Server stopped.", file=sys.stderr)


# ---------------------------------------------------------------------------
# graceful registry subcommand
# ---------------------------------------------------------------------------

def _format_service(s) -> str:
    return f"{s.service_id}  {s.host}:{s.port}  {s.service_type}  registered_at={s.registered_at:.1f}"


def _format_services(services, fmt: str) -> str:
    """Format a list of ServiceInfo objects for output."""
    if fmt == "json":
        return json.dumps([s.to_dict() for s in services], indent=2)
    lines = [_format_service(s) for s in services]
    return "\n".join(lines) if lines else "(no services)"


def cmd_registry_serve(args) -> None:
    """Run the in-memory registry in the foreground."""
    registry = InMemoryRegistry()
    server = start_registry_server(registry, host=args.host, port=args.port)
    print(f"Registry server listening on {args.host}:{args.port}", file=sys.stderr)

    stopped = threading.Event()
    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, lambda signum, frame: stopped.set())
    stopped.wait()

    server.shutdown()
    server.server_close()
    print("Registry server stopped.", file=sys.stderr)


def cmd_registry_list(args) -> None:
    client = ServiceRegistryClient(host=args.registry_host, port=args.registry_port)
    services = client.list_services(service_type=args.type)
    print(_format_services(services, args.format))


def cmd_registry_get(args) -> None:
    client = ServiceRegistryClient(host=args.registry_host, port=args.registry_port)
    service = client.get_service(args.service_id)
    if service is None:
        print(f"Service '{args.service_id}' not found.", file=sys.stderr)
        sys.exit(1)
    if args.format == "json":
        print(json.dumps(service.to_dict(), indent=2))
    else:
        print(_format_service(service))


def cmd_registry_count(args) -> None:
    client = ServiceRegistryClient(host=args.registry_host, port=args.registry_port)
    count = client.get_service_count(service_type=args.type)
    print(count)


def _add_registry_args(parser: argparse.ArgumentParser) -> None:
    """Add --registry-host and --registry-port to a registry sub-parser."""
    parser.add_argument(
        "--registry-host", type=str, default="localhost",
        help="Hostname of the registry server (default: localhost)",
    )
    parser.add_argument(
        "--registry-port", type=int, default=8471,
        help="Port of the registry HTTP API (default: 8471)",
    )
    parser.add_argument(
        "--format", choices=["text", "json"], default="text",
        help="Output format (default: text)",
    )


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="graceful",
        description="graceful: deregister from service discovery before shutdown",
    )
    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser(
        "serve", help="Register this instance and serve the /deregister endpoint",
    )
    _add_serve_args(serve_parser)
    _add_log_args(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    # registry
    registry_parser = subparsers.add_parser(
        "registry", help="Run or query the service registry",
    )
    registry_sub = registry_parser.add_subparsers(dest="registry_command")

    # registry serve
    reg_serve = registry_sub.add_parser("serve", help="Run the in-memory registry server")
    reg_serve.add_argument("--host", type=str, default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    reg_serve.add_argument("--port", type=int, default=8471, help="Bind port (default: 8471)")
    _add_log_args(reg_serve)
    reg_serve.set_defaults(func=cmd_registry_serve)

    # registry list
    reg_list = registry_sub.add_parser("list", help="List all registered services")
    _add_registry_args(reg_list)
    reg_list.add_argument("--type", type=str, default=None, help="Filter by service type")
    reg_list.set_defaults(func=cmd_registry_list)

    # registry get
    reg_get = registry_sub.add_parser("get", help="Get a single service by ID")
    _add_registry_args(reg_get)
    reg_get.add_argument("service_id", type=str, help="Service identifier")
    reg_get.set_defaults(func=cmd_registry_get)

    # registry count
    reg_count = registry_sub.add_parser("count", help="Count registered services")
    _add_registry_args(reg_count)
    reg_count.add_argument("--type", type=str, default=None, help="Filter by service type")
    reg_count.set_defaults(func=cmd_registry_count)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "registry" and not args.registry_command:
        registry_parser.print_help()
        sys.exit(1)

    _configure_logging(getattr(args, "log_level", "INFO"))
    args.func(args)
