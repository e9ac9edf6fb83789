"""Hook entry point: reads one tool invocation from stdin, prints the decision."""

import sys

import structlog

from bashscan.app import build_handler, configure_logging
from bashscan.core.config import BashscanSettings
from bashscan.exceptions import HookInputError
from bashscan.hooks import HookInput

logger = structlog.get_logger()


def main(stdin=None, stdout=None) -> int:
    if stdin is None:
        stdin = sys.stdin
    if stdout is None:
        stdout = sys.stdout

    try:
        settings = BashscanSettings()
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings, log_dir=settings.log_dir)

    try:
        hook_input = HookInput.from_json(stdin.read())
    except HookInputError as e:
        logger.error("hook_input_invalid", error=str(e))
        print(f"Invalid hook input: {e}", file=sys.stderr)
        return 1

    handler = build_handler(settings, cwd=hook_input.cwd or None)
    output = handler.handle(hook_input)
    stdout.write(output.to_json() + "\n")
    stdout.flush()
    return 0


def run() -> None:
    sys.exit(main())
