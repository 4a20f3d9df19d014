"""Interactive command-line shell.

Reads utterances from stdin, one per line, and prints the assistant's
answers. End of input closes the session.
"""

import argparse
import asyncio
import sys
from typing import Optional

from shared.config import get_settings
from shared.logging import get_logger, setup_logging
from tool_host.client import ToolHostError
from orchestrator.gateway import Orchestrator, OrchestratorError
from orchestrator.session import open_session

logger = get_logger(__name__)

PROMPT = ">> "


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chat with the Mealie assistant.")
    parser.add_argument(
        "--config",
        default=None,
        help="YAML settings file (default: env MEALIE_ASSISTANT_CONFIG or config/settings.yaml).",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    return parser.parse_args(argv)


async def chat_loop(orchestrator: Orchestrator) -> None:
    """Prompt until end of input. A failed turn is reported and the loop continues."""
    while True:
        try:
            line = await asyncio.to_thread(input, PROMPT)
        except EOFError:
            print()
            return

        utterance = line.strip()
        if not utterance:
            continue

        try:
            answer = await orchestrator.handle_utterance(utterance)
        except OrchestratorError as e:
            print(f"Error: {e}", file=sys.stderr)
            continue

        print(answer)


async def run(config_path: Optional[str], log_level: Optional[str]) -> int:
    settings = get_settings(config_path)
    # stdout belongs to the conversation
    setup_logging(log_level or settings.log_level, json_output=settings.json_logs, stream=sys.stderr)

    try:
        async with open_session(settings) as orchestrator:
            await chat_loop(orchestrator)
    except ToolHostError as e:
        logger.error("Session could not start", error=str(e))
        print(f"Tool host unavailable: {e}", file=sys.stderr)
        return 1

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return asyncio.run(run(args.config, args.log_level))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
