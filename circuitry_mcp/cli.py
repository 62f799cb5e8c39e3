"""
circuitry-mcp command line.

  circuitry-mcp              start the MCP server (default)
  circuitry-mcp setup        store the EServer access key
  circuitry-mcp status       show the current configuration
  circuitry-mcp help         show help
  circuitry-mcp version      print the version

Unknown commands start the server, since MCP clients launch it with no
arguments at all.
"""
import argparse
import getpass
import logging
import sys

from circuitry_mcp import config
from circuitry_mcp.channel import PeerChannel
from circuitry_mcp.models import Endpoint
from circuitry_mcp.server import VERSION, run

log = logging.getLogger("circuitry_mcp.cli")

_EPILOG = """\
environment:
  CIRCUITRY_ESERVER_URL   override EServer URL (default: http://localhost:3030)
  CIRCUITRY_ACCESS_KEY    override access key from config
  CIRCUITRY_CONFIG_DIR    use another config directory (default: ~/.circuitry)
  CIRCUITRY_LOG_LEVEL     DEBUG, INFO, WARNING or ERROR
"""


def _mask(key: str) -> str:
    if not key:
        return "(not set)"
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}{'*' * (len(key) - 8)}{key[-4:]}"


def cmd_setup() -> int:
    current = config.load_config()
    print("Circuitry MCP Server Setup")
    print("-" * 40)
    print("In Circuitry Server go to Server -> Preferences -> Generate New Access Key,")
    print("then paste the key below.\n")

    url = input(f"EServer URL [{current.eserver_url}]: ").strip() or current.eserver_url
    key = getpass.getpass("Access key: ").strip()
    if not key:
        print("No access key entered, configuration unchanged.", file=sys.stderr)
        return 1

    current.eserver_url = url.rstrip("/")
    current.access_key = key
    current.configured = True
    path = config.save_config(current)
    print(f"Saved configuration to {path}")

    channel = PeerChannel(Endpoint(base_url=current.eserver_url, access_key=key))
    if channel.probe():
        print(f"EServer reachable at {current.eserver_url}")
    else:
        print(f"Warning: EServer not reachable at {current.eserver_url}. "
              "Start Circuitry Server before using the MCP tools.")
    return 0


def cmd_status() -> int:
    stored = config.load_config()
    print(f"Config file:  {config.config_path()}")
    print(f"EServer URL:  {config.get_eserver_url()}")
    print(f"Access key:   {_mask(config.get_access_key())}")
    print(f"Configured:   {'yes' if config.is_configured() else 'no'}")
    if not stored.configured:
        print('\nRun "circuitry-mcp setup" to configure.')
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="circuitry-mcp",
        description="Model Context Protocol server bridging MCP clients to Circuitry.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("command", nargs="?", default="serve",
                        help="serve (default), setup, status, help or version")
    parser.add_argument("-v", "--version", action="version", version=VERSION)
    return parser


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=config.get_log_level(),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    command = args.command.lower()

    if command == "setup":
        return cmd_setup()
    if command == "status":
        return cmd_status()
    if command == "help":
        parser.print_help()
        return 0
    if command == "version":
        print(VERSION)
        return 0
    run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
