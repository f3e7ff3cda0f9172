"""
ContractMock CLI

Command-line interface for the contract-driven mock server.

Commands:
    mock        - Start mock HTTP server for an OpenAPI contract

Examples:
    # Start mock server on the default port
    contractmock mock api-contract.yaml

    # Realistic data, reproducible, reachable from a browser app
    contractmock mock api-contract.yaml --scenario realistic --seed 42 --cors

    # Read contract path and settings from a project file
    contractmock mock --config contractmock.yaml
"""

import argparse
import errno
import socket
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .mock import MockConfig, MockServer, Scenario
from .mock.server import read_project_file


DEFAULT_CONTRACT = './api-contract.yaml'


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError as e:
            return e.errno == errno.EADDRINUSE
    return False


def _print_failure(message: str, suggestions: List[str]):
    print(f"\n❌ Mock server failed to start:")
    print(f"   {message}")
    if suggestions:
        print("\n💡 Suggestions:")
        for suggestion in suggestions:
            print(f"   • {suggestion}")


def resolve_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Merge project file settings with command-line flags (flags win).

    Returns:
        Dict with 'contract' (path) and 'mock' (MockConfig keys)
    """
    settings: Dict[str, Any] = {}
    contract: Optional[str] = args.contract

    if args.config:
        project = read_project_file(args.config)
        settings.update(project.get('mock') or {})
        if not contract and project.get('contract'):
            contract = str(Path(args.config).parent / project['contract'])

    overrides = {
        'host': args.host,
        'port': args.port,
        'scenario': args.scenario,
        'seed': args.seed,
        'faker_locale': args.locale,
        'cors_enabled': True if args.cors else None,
        'admin_enabled': False if args.no_admin else None,
        'log_level': args.log_level,
        'verbose_mode': True if args.verbose else None,
    }
    settings.update({key: value for key, value in overrides.items() if value is not None})

    return {'contract': contract or DEFAULT_CONTRACT, 'mock': settings}


def cmd_mock(args):
    """
    Start mock HTTP server for a contract.

    Args:
        args: Parsed command-line arguments
    """
    print(f"🎭 ContractMock Mock Server")

    try:
        settings = resolve_settings(args)
        config = MockConfig.from_dict(settings['mock'])
    except (FileNotFoundError, ValueError, TypeError) as e:
        _print_failure(str(e), ["Check the --config file and its 'mock:' section"])
        sys.exit(1)

    contract_path = settings['contract']
    print(f"   Contract: {contract_path}")
    print(f"   Scenario: {config.scenario}")
    print(f"   CORS: {'enabled' if config.cors_enabled else 'disabled'}")

    if config.seed is not None:
        print(f"🎲 Seed: {config.seed} (locale: {config.faker_locale})")

    if config.verbose_mode:
        print(f"📋 Verbose mode enabled (one line per request)")

    try:
        server = MockServer(contract_path, config=config)
    except FileNotFoundError as e:
        _print_failure(str(e), [
            "Check your OpenAPI contract file exists",
            "Pass the contract path explicitly: contractmock mock path/to/api.yaml"
        ])
        sys.exit(1)
    except Exception as e:
        _print_failure(f"Failed to create mock server: {e}", [
            "Check the contract is a valid OpenAPI 3 document with a 'paths' section"
        ])
        sys.exit(1)

    if _port_in_use(config.host, config.port):
        _print_failure(f"Port {config.port} is already in use", [
            f"Try a different port: contractmock mock {contract_path} --port {config.port + 1}",
            f"Check what's running on port {config.port}: lsof -i :{config.port}"
        ])
        sys.exit(1)

    print(f"\n📊 Endpoints available:")
    for route in server.routes:
        summary = f" - {route.endpoint.summary}" if route.endpoint.summary else ""
        print(f"   {route.method.value:<7} {route.endpoint.path}{summary}")
    print()

    # Start server (blocking)
    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='contractmock',
        description="ContractMock - Contract-driven mock API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start mock server with demo data
  %(prog)s mock api-contract.yaml

  # Realistic data on another port
  %(prog)s mock api-contract.yaml --port 4000 --scenario realistic

  # Random failures for resilience testing
  %(prog)s mock api-contract.yaml --scenario errors
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- MOCK command ---
    mock_parser = subparsers.add_parser('mock', help='Start mock HTTP server')
    mock_parser.add_argument('contract', nargs='?', help=f'OpenAPI contract file (default: {DEFAULT_CONTRACT})')
    mock_parser.add_argument('--config', help='Project file with contract path and mock settings')
    mock_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    mock_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 3001)')
    mock_parser.add_argument('-s', '--scenario', choices=[s.value for s in Scenario],
                             help='Data scenario (default: demo)')
    mock_parser.add_argument('--seed', type=int, help='Seed for reproducible data')
    mock_parser.add_argument('--locale', help='Faker locale (default: en_US)')
    mock_parser.add_argument('--cors', action='store_true', help='Enable CORS for all origins')
    mock_parser.add_argument('--no-admin', action='store_true', help='Disable admin API')
    mock_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                             help='Logging level (default: info)')
    mock_parser.add_argument('--verbose', action='store_true', help='Print each request and response status')

    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # Dispatch to command handler
    if args.command == 'mock':
        cmd_mock(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
