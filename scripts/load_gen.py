"""Generate synthetic traffic against a running knowledge search backend.

Each simulated visitor gets its own session and user ids and a rotating
User-Agent, runs searches picked from the sample questions, and clicks a
result some of the time (top results are favoured). Every interaction goes
through the public API, so the usage index fills up exactly as it would
from real users.

Usage: python scripts/load_gen.py [--url URL] [--searches N] [--questions FILE]
Example: python scripts/load_gen.py --url http://localhost:3000 --searches 20
"""

import argparse
import asyncio
import json
import random
import secrets
import sys
import time
from pathlib import Path
from typing import Any

import httpx

DEFAULT_URL = "http://localhost:3000"
DEFAULT_QUESTIONS = Path("./Questions.json")
SEARCH_DELAY_MS = (5000, 30000)
CLICK_DELAY_MS = (2000, 15000)
CLICK_PROBABILITY = 0.7
RESULTS_PER_SEARCH = 5

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Edge/120.0.0.0",
    "Mozilla/5.0 (iPad; CPU OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
]


def load_questions(path: Path) -> list[str]:
    """Flatten the sample questions file into a list of query strings.

    Questions may be plain strings or objects with a ``question`` key.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    questions = []
    for category in data.get("categories") or []:
        for entry in category.get("questions") or []:
            question = entry if isinstance(entry, str) else (entry or {}).get("question")
            if question:
                questions.append(question)
    return questions


def weighted_position(count: int, rng: random.Random) -> int:
    """Pick a result position; each one is half as likely as the one above it."""
    weights = [0.5**i for i in range(count)]
    return rng.choices(range(count), weights=weights)[0]


def describe_document(source: dict[str, Any]) -> tuple[str, str, str]:
    """Title, filename and author of a hit, with fallbacks for sparse documents."""
    attachment = source.get("attachment") or {}
    title = attachment.get("title") or source.get("title") or attachment.get("filename") or source.get("filename") or "Unknown"
    filename = source.get("filename") or attachment.get("filename") or "unknown.pdf"
    author = attachment.get("author") or "Unknown"
    return title, filename, author


class UserSession:
    """One simulated visitor."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        questions: list[str],
        rng: random.Random | None = None,
        search_delay_ms: tuple[int, int] = SEARCH_DELAY_MS,
        click_delay_ms: tuple[int, int] = CLICK_DELAY_MS,
        click_probability: float = CLICK_PROBABILITY,
    ):
        self.client = client
        self.questions = questions
        self.rng = rng or random.Random()
        self.search_delay_ms = search_delay_ms
        self.click_delay_ms = click_delay_ms
        self.click_probability = click_probability

        self.session_id = f"sess_{secrets.token_hex(16)}"
        self.user_id = f"user_{secrets.token_hex(16)}"
        self.user_agent = self.rng.choice(USER_AGENTS)
        self.search_count = 0
        self.click_count = 0

        print("\n👤 New user session started")
        print(f"   Session ID: {self.session_id[:20]}...")
        print(f"   User ID: {self.user_id[:20]}...")
        print(f"   User Agent: {self.user_agent[:60]}...")

    def _headers(self, page_url: str | None = None) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "X-Session-Id": self.session_id,
            "X-User-Id": self.user_id,
        }
        if page_url:
            headers["X-Page-Url"] = page_url
        return headers

    async def _sleep_ms(self, bounds: tuple[int, int]) -> int:
        delay = self.rng.randint(*bounds)
        await asyncio.sleep(delay / 1000)
        return delay

    async def search(self, query: str) -> dict[str, Any] | None:
        """Run one search and maybe click a result."""
        print(f"\n🔍 Searching: \"{query}\"")
        start = time.monotonic()
        try:
            response = await self.client.post(
                "/api/search",
                json={
                    "query": query,
                    "filters": {"author": [], "content_type": [], "creator_tool": []},
                    "size": RESULTS_PER_SEARCH,
                },
                headers=self._headers(page_url=str(self.client.base_url)),
            )
        except httpx.HTTPError as e:
            print(f"   ❌ Search error: {e}")
            return None

        if response.is_error:
            print(f"   ❌ Search failed: {response.status_code} {response.reason_phrase}")
            return None

        data = response.json()
        results = data.get("results") or []
        self.search_count += 1
        print(f"   ✅ Found {len(results)} results in {int((time.monotonic() - start) * 1000)}ms")

        if results and self.rng.random() < self.click_probability:
            time_to_click = await self._sleep_ms(self.click_delay_ms)
            position = weighted_position(len(results), self.rng)
            await self.click(query, results[position], position, time_to_click)

        return data

    async def click(self, query: str, result: dict[str, Any], position: int, time_to_click: int) -> bool:
        """Report a click on a search result."""
        title, filename, author = describe_document(result.get("source") or {})
        print(f"   👆 Clicking result #{position + 1}: \"{title[:50]}{'...' if len(title) > 50 else ''}\"")
        try:
            response = await self.client.post(
                "/api/telemetry/click",
                json={
                    "query": query,
                    "document_id": result.get("id"),
                    "document_title": title,
                    "document_filename": filename,
                    "document_author": author,
                    "position": position,
                    "score": result.get("score"),
                    "time_to_click_ms": time_to_click,
                },
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            print(f"   ❌ Click error: {e}")
            return False

        if response.is_error:
            print(f"   ❌ Click tracking failed: {response.status_code}")
            return False
        self.click_count += 1
        print(f"   ✅ Click tracked (position: {position}, time: {time_to_click}ms)")
        return True

    async def run(self, num_searches: int | None = None) -> None:
        """Search repeatedly; forever when ``num_searches`` is None."""
        print(f"\n🚀 Starting session with {'infinite' if num_searches is None else num_searches} searches...")
        performed = 0
        while num_searches is None or performed < num_searches:
            await self.search(self.rng.choice(self.questions))
            performed += 1
            if num_searches is None or performed < num_searches:
                delay = await self._sleep_ms(self.search_delay_ms)
                print(f"   ⏳ Waited {delay / 1000:.1f}s before next search")

        print("\n✅ Session completed")
        print(f"   Searches: {self.search_count}")
        print(f"   Clicks: {self.click_count}")
        if self.search_count:
            print(f"   Click-through rate: {self.click_count / self.search_count * 100:.1f}%")


async def generate_load(url: str, questions_path: Path, num_searches: int | None) -> bool:
    print("⚡ Knowledge Search Load Generator")
    print("=" * 50)
    print(f"📋 Target URL: {url}")
    print(f"📂 Questions file: {questions_path}")
    print(f"⏱️  Search interval: {SEARCH_DELAY_MS[0] / 1000:.0f}-{SEARCH_DELAY_MS[1] / 1000:.0f}s")
    print(f"👆 Click probability: {CLICK_PROBABILITY * 100:.0f}%")

    try:
        questions = load_questions(questions_path)
    except (OSError, ValueError) as e:
        print(f"❌ Error loading questions: {e}")
        return False
    if not questions:
        print("❌ No questions loaded")
        return False
    print(f"✅ Loaded {len(questions)} questions")

    async with httpx.AsyncClient(base_url=url, timeout=60.0) as client:
        await UserSession(client, questions).run(num_searches)
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate users searching and clicking results")
    parser.add_argument("--url", default=DEFAULT_URL, help="Base URL of the backend")
    parser.add_argument("--questions", type=Path, default=DEFAULT_QUESTIONS, help="Sample questions file")
    parser.add_argument("--searches", type=int, default=None, help="Number of searches (default: run until interrupted)")
    args = parser.parse_args()

    try:
        ok = asyncio.run(generate_load(args.url, args.questions, args.searches))
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted, shutting down")
        ok = True
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
