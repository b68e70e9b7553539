"""Create an Elasticsearch index from a JSON mapping file.

Usage: python scripts/create_index.py <index-name> <mapping-file> [--delete-existing]
Example: python scripts/create_index.py gaig-usage ./elasticsearch/usage-index-mapping.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from knowledge_search.config import get_settings
from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError


async def create_index_from_mapping(index_name: str, mapping_path: Path, delete_existing: bool = False) -> bool:
    """Create an index, optionally replacing an existing one."""
    print(f"🔍 Creating index: {index_name}")
    print(f"📄 Using mapping file: {mapping_path}")

    if not mapping_path.exists():
        print(f"❌ Mapping file not found: {mapping_path}")
        return False

    mapping = json.loads(mapping_path.read_text(encoding="utf-8"))
    properties = (mapping.get("mappings") or {}).get("properties") or {}
    print(f"✅ Mapping file loaded ({len(properties)} properties)")

    settings = get_settings()
    async with ElasticsearchClient(settings.es_url, settings.api_key, timeout=settings.request_timeout) as client:
        try:
            if await client.index_exists(index_name):
                if not delete_existing:
                    print(f"⚠️  Index '{index_name}' already exists. Use --delete-existing to recreate it.")
                    return False
                print(f"🗑️  Deleting existing index '{index_name}'...")
                await client.delete_index(index_name)

            await client.create_index(index_name, mapping)
        except ElasticsearchError as e:
            print(f"❌ Failed to create index: {e}")
            return False

    print(f"✅ Index '{index_name}' created")
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an Elasticsearch index from a mapping file")
    parser.add_argument("index_name", help="Name of the index to create")
    parser.add_argument("mapping_file", type=Path, help="Path to the JSON mapping file")
    parser.add_argument("--delete-existing", action="store_true", help="Delete the index first if it exists")
    args = parser.parse_args()

    load_dotenv()
    ok = asyncio.run(create_index_from_mapping(args.index_name, args.mapping_file, args.delete_existing))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
