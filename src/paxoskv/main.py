"""
main.py
=======

Main entry point for the paxoskv replicated key-value store.
Starts a replica node from configuration, or runs an in-process demo.
"""

import asyncio
import argparse
import logging
import sys
import json
import os
from typing import Dict, Any

from paxoskv.node import create_node
from paxoskv.simulation import scenarios


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level"""
    level = {
        0: logging.WARNING,
        1: logging.INFO,
        2: logging.DEBUG
    }.get(verbosity, logging.DEBUG)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def load_config(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a file

    Args:
        config_file: Path to the configuration file

    Returns:
        Dict with configuration
    """
    if not os.path.exists(config_file):
        logging.warning(f"Config file {config_file} not found, using default configuration")
        return {}

    try:
        with open(config_file, 'r') as f:
            config = json.load(f)

        logging.info(f"Loaded configuration from {config_file}")
        return config
    except (OSError, json.JSONDecodeError) as e:
        logging.error(f"Error loading configuration from {config_file}: {e}")
        return {}


def apply_overrides(config: Dict[str, Any], address: str = None, ring: str = None) -> Dict[str, Any]:
    """
    Apply command line overrides to a configuration

    Args:
        config: Configuration loaded from file
        address: Listening address of this node
        ring: Comma separated ring addresses

    Returns:
        The updated configuration
    """
    if address:
        config["address"] = address
    if ring:
        config["ring"] = [peer.strip() for peer in ring.split(",") if peer.strip()]

    config.setdefault("address", "localhost:9001")
    config.setdefault("ring", [config["address"]])
    return config


async def run_node(config: Dict[str, Any]) -> None:
    """
    Run a node until interrupted

    Args:
        config: Node configuration
    """
    node = None

    try:
        node = create_node(config)
        await node.start()

        logging.info(f"Node {node.address} running, press Ctrl+C to stop")

        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        logging.info("Interrupted by user")
    finally:
        if node:
            await node.stop()


async def run_demo(scenario: str) -> None:
    """
    Run a demonstration scenario

    Args:
        scenario: Scenario to run
    """
    try:
        await scenarios.run(scenario)
    except Exception as e:
        logging.error(f"Error running demo scenario {scenario}: {e}")


def main() -> int:
    """
    Main entry point

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(description='Paxos replicated key-value store')

    # Mode selection
    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument('--node', action='store_true', help='Run as a node')
    mode_group.add_argument('--demo', choices=sorted(scenarios.SCENARIOS),
                            help='Run a demonstration scenario')

    # Node options
    parser.add_argument('--config', type=str, default='config.json',
                        help='Path to configuration file')
    parser.add_argument('--address', type=str,
                        help='Listening address (host:port), overrides the config file')
    parser.add_argument('--ring', type=str,
                        help='Comma separated ring of node addresses, overrides the config file')

    # Verbosity
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Increase verbosity (can be used multiple times)')

    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        if args.node:
            config = apply_overrides(load_config(args.config), args.address, args.ring)
            asyncio.run(run_node(config))
        elif args.demo:
            asyncio.run(run_demo(args.demo))

        return 0
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 0
    except Exception as e:
        logging.error(f"Error in main: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
