"""Main entry point for the knowledge search backend."""

import asyncio
import logging
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from knowledge_search.config import get_settings
from knowledge_search.search import QueryTemplateError
from knowledge_search.web_server import WebServer

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


async def main() -> None:
    """Main application entry point."""
    try:
        settings = get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Configuration error: ES_URL, API_KEY and INDEX_NAME must be set ({e.error_count()} errors)")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info(f"Starting knowledge search in {settings.environment.value} mode")

    try:
        web_server = WebServer(settings=settings)
    except QueryTemplateError as e:
        logger.error(f"Query template error: {e}")
        sys.exit(1)

    runner = await web_server.start()
    try:
        await asyncio.Event().wait()  # Keep web server running
    finally:
        logger.info("Shutting down...")
        await web_server.stop(runner)


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
