"""CLI entry point for rest-engine.

Handles argument parsing and dispatches to execute or validate mode.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from rest_engine.config_loader import load_engine_config, load_request
from rest_engine.engine import RestEngine
from rest_engine.errors import ConfigurationError
from rest_engine.models import (
    ApiKeyAuth,
    ApiKeyLocation,
    EngineConfig,
    OAuth2ClientCredentials,
    OAuth2Password,
    RequestDescriptor,
    Success,
)
from rest_engine.request_builder import target_url

REDACTED = "***"

# Header names whose values never reach the terminal
_SECRET_HEADERS = {"authorization", "proxy-authorization", "cookie", "x-api-key"}


@dataclass
class ExecuteArgs:
    """Parsed arguments for execute mode."""

    request: Path
    config: Path | None
    verbose: bool


@dataclass
class ValidateArgs:
    """Parsed arguments for validate mode."""

    request: Path
    config: Path | None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with execute and validate subcommands."""
    parser = argparse.ArgumentParser(
        prog="rest-engine",
        description="Execute authenticated REST calls described in JSON or YAML files.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Mode")

    execute_parser = subparsers.add_parser(
        "execute",
        help="Execute a request file and print the result as JSON",
    )
    execute_parser.add_argument(
        "--request",
        type=Path,
        required=True,
        help="Path to request descriptor file (JSON or YAML)",
    )
    execute_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to engine config file (YAML)",
    )
    execute_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log request flow at DEBUG level to stderr",
    )

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate request and config files without sending anything",
    )
    validate_parser.add_argument(
        "--request",
        type=Path,
        required=True,
        help="Path to request descriptor file (JSON or YAML)",
    )
    validate_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to engine config file (YAML)",
    )

    return parser


def parse_args(args: list[str] | None = None) -> ExecuteArgs | ValidateArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "execute":
        return ExecuteArgs(
            request=namespace.request,
            config=namespace.config,
            verbose=namespace.verbose,
        )
    elif namespace.command == "validate":
        return ValidateArgs(request=namespace.request, config=namespace.config)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)

        if isinstance(parsed, ExecuteArgs):
            configure_logging(parsed.verbose)
            return run_execute(parsed)
        configure_logging(False)
        return run_validate(parsed)

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def _load_inputs(request_path: Path, config_path: Path | None) -> tuple[RequestDescriptor, EngineConfig] | None:
    """Load both files, printing the error and returning None on failure."""
    try:
        config = load_engine_config(config_path)
    except ConfigurationError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None

    try:
        descriptor = load_request(request_path)
    except ConfigurationError as e:
        print(f"Error loading request: {e}", file=sys.stderr)
        return None

    return descriptor, config


def run_execute(args: ExecuteArgs) -> int:
    """Run execute mode. Exit 0 only for a Success with status < 400."""
    loaded = _load_inputs(args.request, args.config)
    if loaded is None:
        return 1
    descriptor, config = loaded

    try:
        engine = RestEngine(config=config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result = engine.execute(descriptor)
    print(result.model_dump_json(by_alias=True, indent=2))

    if isinstance(result, Success) and not result.is_error:
        return 0
    return 1


def run_validate(args: ValidateArgs) -> int:
    """Run validate mode: print a redacted summary of what would be sent."""
    loaded = _load_inputs(args.request, args.config)
    if loaded is None:
        print("Validation failed")
        return 1
    descriptor, config = loaded

    for line in describe_request(descriptor, config):
        print(line)
    print()
    print("Validation successful")
    return 0


def describe_request(descriptor: RequestDescriptor, config: EngineConfig) -> list[str]:
    """Human-readable, secret-free summary of a descriptor."""
    lines = [
        f"Request: {descriptor.method.value} {target_url(descriptor)}",
        f"  Auth: {_describe_auth(descriptor)}",
        f"  Timeout: {descriptor.timeout_ms}ms",
        f"  Follow redirects: {descriptor.follow_redirects}",
    ]
    if not descriptor.verify_ssl:
        lines.append("  WARNING: TLS verification disabled (insecure)")
    if descriptor.has_body:
        lines.append(
            f"  Body: {len(descriptor.body)} chars ({descriptor.content_type.value})"
        )

    headers = {**config.default_headers, **descriptor.headers}
    if headers:
        lines.append("  Headers:")
        for name, value in headers.items():
            shown = REDACTED if name.lower() in _SECRET_HEADERS else value
            lines.append(f"    {name}: {shown}")
    return lines


def _describe_auth(descriptor: RequestDescriptor) -> str:
    auth = descriptor.auth
    if isinstance(auth, ApiKeyAuth):
        placement = "query" if auth.location is ApiKeyLocation.QUERY else "header"
        return f"apiKey ({placement} '{auth.key_name}')"
    if isinstance(auth, (OAuth2ClientCredentials, OAuth2Password)):
        return f"{auth.auth_type} via {auth.token_url}"
    return auth.auth_type


if __name__ == "__main__":
    sys.exit(main())
