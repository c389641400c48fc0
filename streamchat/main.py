"""Main application entry point.

Runs the NiceGUI chat interface (port 8080 by default).
Environment variables are loaded from .env file.
"""

import logging
import os
import sys

from dotenv import load_dotenv

# Load environment variables before any other imports that might need them
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Run the chat UI against the configured backend."""
    from nicegui import ui

    from streamchat.streaming.config import get_stream_settings
    from streamchat.ui.chat_page import chat_page  # noqa: F401 - Registers the page

    settings = get_stream_settings()
    port = int(os.getenv("PORT", "8080"))

    logger.info(f"Answers streamed from {settings.ask_url} ({settings.framing.value} framing)")
    logger.info(f"Pacing policy: {settings.pacing.kind}")
    logger.info(f"Chat UI available at http://localhost:{port}/")

    ui.run(
        title="Chat",
        host=os.getenv("HOST", "0.0.0.0"),
        port=port,
        reload=False,
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "streamchat-secret"),
    )


if __name__ in {"__main__", "__mp_main__"}:
    main()
