"""Static content served to the browser: sample questions and the system prompt."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CachedContent:
    """Content loaded once at startup."""

    data: Any = None
    last_updated: datetime | None = None
    loaded: bool = False


class ContentStore:
    """Loads sample questions and the system prompt from disk."""

    def __init__(self, questions_path: Path, system_prompt_path: Path):
        self.questions_path = Path(questions_path)
        self.system_prompt_path = Path(system_prompt_path)
        self.questions = CachedContent()
        self.system_prompt = CachedContent()

    def load_questions(self) -> dict[str, Any]:
        """Load the sample questions file.

        Raises:
            OSError: If the file cannot be read
            ValueError: If it is not valid JSON
        """
        try:
            data = json.loads(self.questions_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"{self.questions_path} must hold a JSON object")
        except (OSError, ValueError):
            self.questions.loaded = False
            raise

        self.questions = CachedContent(data=data, last_updated=datetime.now(timezone.utc), loaded=True)
        categories = data.get("categories") or []
        total = sum(len(category.get("questions") or []) for category in categories)
        logger.info(f"Loaded {total} questions from {len(categories)} categories")
        return data

    def load_system_prompt(self) -> str:
        """Load the system prompt file.

        Raises:
            OSError: If the file cannot be read
        """
        try:
            content = self.system_prompt_path.read_text(encoding="utf-8")
        except OSError:
            self.system_prompt.loaded = False
            raise

        self.system_prompt = CachedContent(data=content, last_updated=datetime.now(timezone.utc), loaded=True)
        logger.info(f"Loaded system prompt ({len(content)} characters)")
        return content

    def load_all(self) -> None:
        """Load everything, logging failures instead of raising."""
        try:
            self.load_questions()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load sample questions at startup: {e}")
        try:
            self.load_system_prompt()
        except OSError as e:
            logger.error(f"Failed to load system prompt at startup: {e}")
