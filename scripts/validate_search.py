"""Live validation of the cluster integration: health, search, facets and a streamed answer."""

import asyncio
import sys

from dotenv import load_dotenv

from knowledge_search.completion import CompletionError, CompletionRelay
from knowledge_search.config import get_settings
from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError
from knowledge_search.search import FilterSet, QueryTemplate, SearchError, SearchRelay

SAMPLE_QUERY = "What is covered under flood damage?"


async def validate_search() -> bool:
    """Run one request against every upstream the backend depends on."""
    print("⚡ Knowledge Search Integration Check")
    print("=" * 50)

    settings = get_settings()
    print(f"📋 Cluster: {settings.es_url}")
    print(f"📂 Index: {settings.index_name}")
    print()

    template = QueryTemplate.load(settings.query_template_path)
    async with ElasticsearchClient(settings.es_url, settings.api_key, timeout=settings.request_timeout) as client:
        try:
            health = await client.cluster_health()
            print(f"🔍 Cluster health: {health.get('status')}")
        except ElasticsearchError as e:
            print(f"❌ Cluster unreachable: {e}")
            return False

        relay = SearchRelay(client, template, settings.index_name)
        try:
            response = await relay.search(SAMPLE_QUERY, FilterSet(), 3)
        except SearchError as e:
            print(f"❌ Search failed ({'retryable' if e.retryable else 'fatal'}): {e}")
            return False

        print(f"✅ Search: {response.total} hits in {response.took}ms")
        for i, result in enumerate(response.results, 1):
            print(f"   {i}. {result.id} (score {result.score:.3f})")

        try:
            facets = await relay.facets(settings.facet_size)
            print(f"✅ Facets: {', '.join(f'{name}={len(values)}' for name, values in facets.items())}")
        except SearchError as e:
            print(f"❌ Facets failed: {e}")
            return False

        completion = CompletionRelay(client, settings.inference_stream_path)
        print("🤖 Streaming answer: ", end="", flush=True)
        try:
            async with completion.open_stream([{"role": "user", "content": SAMPLE_QUERY}]) as tokens:
                async for token in tokens:
                    print(token, end="", flush=True)
        except CompletionError as e:
            print(f"\n❌ Completion failed: {e}")
            return False
        print()

    print()
    print("✅ All checks passed")
    return True


if __name__ == "__main__":
    load_dotenv()
    sys.exit(0 if asyncio.run(validate_search()) else 1)
