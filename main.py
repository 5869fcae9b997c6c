"""
Voice agent entry point.

Serves the Twilio voice webhooks, or runs the offline console demo for
development.

Usage:
    Webhooks:     python main.py serve
    Console mode: python main.py console
"""

import logging
import sys

from spark_voice.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the Twilio webhook server (needs the webhook URLs configured)."""
    import uvicorn

    from spark_voice.telephony.app import create_app

    app = create_app()
    logger.info("Serving voice webhooks on port %d", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())


def _run_console_mode() -> None:
    """Start the offline console demo (no webhooks or API keys required)."""
    from console_demo import ConsoleSession

    session = ConsoleSession()
    session.run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_server()
