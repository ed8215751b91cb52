#!/usr/bin/env python3
"""
Scripted Voice Interview Call Simulator.

Runs a local call controller against a scripted voice provider, exactly as the
call service would run it against Vapi, and saves the interview setup through
a running call service when the call ends.

Usage:
    # Start the call service first (needed for saving):
    uv run python call_service.py

    # In another terminal, run the simulator:
    uv run python simulate_call.py

    # Fixed questions, no save:
    uv run python simulate_call.py --mode interview --question "Why this role?" --no-save
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Final

import httpx

from interview_call import (
    AudioEnvironment,
    CallSessionController,
    CallSettings,
    InterviewConfig,
    ReportedMicrophoneAccess,
)
from interview_platform import SaveInterviewClient, ScriptedVoiceProvider

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_CONNECTION_ERROR: Final[int] = 1
EXIT_CALL_FAILED: Final[int] = 3
EXIT_INTERRUPTED: Final[int] = 130  # Standard SIGINT exit code


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_SERVICE_URL: Final[str] = "http://127.0.0.1:8765"
DEFAULT_USER_NAME: Final[str] = "Sarah Chen"
DEFAULT_USER_ID: Final[str] = "simulated-user"
DEFAULT_ROLE: Final[str] = "Backend Engineer"
DEFAULT_TYPE: Final[str] = "Technical"
DEFAULT_LEVEL: Final[str] = "Intermediate"
DEFAULT_TECH_STACK: Final[str] = "Python, PostgreSQL, Docker"

DEFAULT_QUESTIONS: Final[tuple[str, ...]] = (
    "Tell me about yourself and what drew you to backend engineering.",
    "How would you design a rate limiter for a public API?",
    "Describe a production incident you helped resolve.",
)

# Identifiers the scripted provider accepts; it never contacts a real platform.
SCRIPTED_SETTINGS: Final[CallSettings] = CallSettings(
    web_token="scripted",
    workflow_id="scripted-workflow",
    interviewer_assistant_id="scripted-interviewer",
    redirect_delay_seconds=0.0,
)


# =============================================================================
# Simulation Runner
# =============================================================================


async def check_service(service_url: str) -> bool:
    """Return True when the call service answers its health check."""
    async with httpx.AsyncClient(timeout=10.0) as client:
        try:
            resp = await client.get(f"{service_url}/health")
        except httpx.ConnectError:
            logger.error("Cannot connect to call service at %s. Is it running?", service_url)
            logger.error("Start it with: uv run python call_service.py")
            return False
    if resp.status_code != 200:
        logger.error("Call service not healthy: %d", resp.status_code)
        return False
    logger.info("Call service healthy: %s", resp.json())
    return True


async def run_simulation(
    service_url: str,
    mode: str,
    config: InterviewConfig,
    questions: list[str],
    turn_delay: float,
    save: bool,
) -> int:
    """
    Run one scripted call through the call controller.

    Args:
        service_url: Call service used for saving the interview setup.
        mode: "generate" (workflow) or "interview" (fixed questions).
        config: Interview setup saved when the call ends.
        questions: Questions used in interview mode.
        turn_delay: Pause in seconds before each scripted line.
        save: Whether to save through the call service.

    Returns:
        Exit code indicating success or failure.
    """
    if save and not await check_service(service_url):
        return EXIT_CONNECTION_ERROR

    provider = ScriptedVoiceProvider(turn_delay_seconds=turn_delay, pace_by_length=turn_delay > 0)
    finished = asyncio.Event()
    controller = CallSessionController(
        provider,
        ReportedMicrophoneAccess(granted=True),
        SaveInterviewClient(service_url) if save else None,
        SCRIPTED_SETTINGS,
        environment=AudioEnvironment(),
        config=config,
        navigate=finished.set,
    )

    logger.info("\n%s", "=" * 60)
    logger.info("Starting %s call for: %s", mode, config.user_name)
    logger.info("%s\n", "=" * 60)

    async with controller:
        await controller.start(config if mode == "generate" else questions)
        if controller.error_note:
            logger.error("Call failed to start: %s", controller.error_note)
            await provider.aclose()
            return EXIT_CALL_FAILED

        await finished.wait()
        await controller.wait_until_settled()

    await provider.aclose()

    transcript = controller.transcript
    logger.info("\n%s", "=" * 60)
    logger.info("Call finished with %d transcript lines", len(transcript))
    logger.info("%s", "=" * 60)
    for i, entry in enumerate(transcript, 1):
        text = f"{entry.text[:80]}..." if len(entry.text) > 80 else entry.text
        logger.info("[%d/%d] %s: %s", i, len(transcript), entry.speaker.value, text)

    return EXIT_SUCCESS


def main(
    service_url: str | None = None,
    mode: str = "generate",
    questions: list[str] | None = None,
    turn_delay: float = 1.0,
    save: bool = True,
    user_name: str | None = None,
) -> int:
    """
    Main entry point for the call simulator.

    Returns:
        Exit code indicating success or failure.
    """
    resolved_url = service_url or os.environ.get("CALL_SERVICE_URL", DEFAULT_SERVICE_URL)
    config = InterviewConfig(
        role=os.environ.get("SIM_ROLE", DEFAULT_ROLE),
        type=os.environ.get("SIM_TYPE", DEFAULT_TYPE),
        seniority_level=os.environ.get("SIM_LEVEL", DEFAULT_LEVEL),
        tech_stack=os.environ.get("SIM_TECH_STACK", DEFAULT_TECH_STACK),
        user_reference=os.environ.get("SIM_USER_ID", DEFAULT_USER_ID),
        user_name=user_name or os.environ.get("SIM_USER_NAME", DEFAULT_USER_NAME),
    )
    resolved_questions = questions or list(DEFAULT_QUESTIONS)

    logger.info("=" * 60)
    logger.info("Voice Interview Call Simulator")
    logger.info("=" * 60)
    logger.info("Mode: %s", mode)
    logger.info("Save target: %s", resolved_url if save else "disabled")
    logger.info("")

    try:
        return asyncio.run(
            run_simulation(
                service_url=resolved_url,
                mode=mode,
                config=config,
                questions=resolved_questions,
                turn_delay=turn_delay,
                save=save,
            )
        )
    except KeyboardInterrupt:
        logger.info("\nSimulation interrupted")
        return EXIT_INTERRUPTED


def cli() -> None:
    """Command-line interface entry point with argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Run a scripted voice interview call through the call controller.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Generation workflow, saving through a local call service
    uv run python simulate_call.py

    # Fixed questions, fast playback, no save
    uv run python simulate_call.py --mode interview --question "Why Python?" --delay 0 --no-save

Environment Variables:
    CALL_SERVICE_URL  Call service URL (default: http://127.0.0.1:8765)
    SIM_ROLE, SIM_TYPE, SIM_LEVEL, SIM_TECH_STACK, SIM_USER_ID, SIM_USER_NAME
        """,
    )

    parser.add_argument(
        "--service-url",
        type=str,
        default=None,
        help=f"Call service URL (default: {DEFAULT_SERVICE_URL})",
    )
    parser.add_argument(
        "--mode",
        choices=("generate", "interview"),
        default="generate",
        help="generate: workflow mode; interview: fixed questions",
    )
    parser.add_argument(
        "--question",
        action="append",
        dest="questions",
        default=None,
        help="Interview question (repeatable, interview mode)",
    )
    parser.add_argument(
        "--user-name",
        type=str,
        default=None,
        help=f"Caller display name (default: {DEFAULT_USER_NAME})",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=1.0,
        help="Seconds before each scripted line (default: 1.0)",
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not save the interview setup when the call ends",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    exit_code = main(
        service_url=args.service_url,
        mode=args.mode,
        questions=args.questions,
        turn_delay=args.delay,
        save=not args.no_save,
        user_name=args.user_name,
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
