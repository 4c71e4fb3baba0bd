"""
CLI for the AWS resource adapters.

Reads one event body (a JSON document) from a file or stdin, processes it for
the given subject, and prints the response document to stdout.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import AdapterConfig, load_adapter_config
from .dispatcher import handle_event


def _read_body(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, "r") as f:
        return f.read()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point for the aws-adapters CLI.

    Returns:
        0: Event completed
        1: Event errored
        2: Configuration or input file error
    """
    parser = argparse.ArgumentParser(
        description="AWS resource adapters: reconcile one event against the provider."
    )
    parser.add_argument(
        "--subject",
        required=True,
        help="Event subject, '<type>.<action>.aws' (e.g., firewall.create.aws).",
    )
    parser.add_argument(
        "--body",
        default="-",
        help="Path to the JSON event body. Default: '-' (stdin).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the adapter configuration YAML file. Defaults to searching for '.aws-adapters.yml'.",
    )
    parser.add_argument(
        "--crypto-key",
        default=None,
        help="Key used to decrypt the credentials in the event. Overrides the config file.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Overrides the config file.",
    )
    args = parser.parse_args(argv)

    try:
        config = load_adapter_config(config_path=args.config)
        overrides = {}
        if args.crypto_key:
            overrides["crypto_key"] = args.crypto_key
        if args.log_level:
            overrides["log_level"] = args.log_level.upper()
        if overrides:
            config = AdapterConfig.model_validate({**config.model_dump(), **overrides})
        body = _read_body(args.body)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    response = handle_event(args.subject, body, config=config)
    print(response.to_json())
    return 0 if response.completed else 1


if __name__ == "__main__":
    sys.exit(main())
