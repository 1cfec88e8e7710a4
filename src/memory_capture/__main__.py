"""Entry point for the post-tool memory capture hook.

Always exits 0: the hook must never block the tool call that fired it.
"""

import asyncio
import sys

from memory_capture.capture.models import RunOutcome
from memory_capture.capture.pipeline import CapturePipeline
from memory_capture.capture.reader import open_stdin_reader
from memory_capture.constants import COMPONENT_TAG
from memory_capture.logging import get_logger, setup_logging


async def capture() -> RunOutcome:
    """Run the capture pipeline against this process's stdin."""
    pipeline = CapturePipeline()
    stream = await open_stdin_reader()
    try:
        return await pipeline.run(stream)
    finally:
        stream.close()


def main() -> None:
    """Run the hook and exit cleanly whatever happens."""
    outcome = RunOutcome.PROCEED
    try:
        setup_logging()
    except Exception as exc:
        # Logging is not configured yet, so write the line by hand
        print(f"[{COMPONENT_TAG}] Error (non-fatal): {exc}", file=sys.stderr)
        sys.exit(outcome.exit_code)

    try:
        outcome = asyncio.run(capture())
    except (Exception, KeyboardInterrupt) as exc:
        get_logger("memory_capture.main").error("capture_error_non_fatal", error=str(exc))
    sys.exit(outcome.exit_code)


if __name__ == "__main__":
    main()
