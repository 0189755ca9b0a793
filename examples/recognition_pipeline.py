"""
Recognition Pipeline Example

Demonstrates how to feed AI recognition results into the pipeline and get
similar items plus a price insight back, using in-memory backends and the
deterministic fallback embedding.
"""

import asyncio
import logging

from PIL import Image

from item_memory import ItemMemorySettings, build_recognition_service
from item_memory.embeddings.images import encode_data_uri

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def photo(color):
    return encode_data_uri(Image.new("RGB", (32, 32), color))


async def main():
    print("=== Recognition Pipeline Example ===\n")

    service = build_recognition_service(ItemMemorySettings(peer_id="phone", owner_key="demo-owner"))
    await service.initialize()

    recognitions = [
        {"itemName": "Red instant camera", "category": "Electronics", "suggestedPrice": "$40-60", "imageData": photo((220, 30, 30))},
        {"itemName": "Red film camera", "category": "Electronics", "suggestedPrice": "$35", "imageData": photo((210, 40, 35))},
        {"itemName": "Blue paperback novel", "category": "Books", "suggestedPrice": "$8", "imageData": photo((30, 40, 200))},
        {"itemName": "Red camera (third)", "category": "Electronics", "suggestedPrice": "$50", "imageData": photo((215, 35, 30))},
    ]

    for payload in recognitions:
        result = await service.process_recognition_result(payload)

        print(f"{payload['itemName']} -> {result.item_id}")
        print(f"  Embedding: {result.embedding_method}")
        print(f"  Neighbors: {[(n.metadata.get('item_name'), round(n.score, 3)) for n in result.neighbors]}")
        if result.price_insight.suggested_range:
            print(
                f"  Suggested price: ${result.price_insight.suggested_min} - "
                f"${result.price_insight.suggested_max} (confidence {result.price_insight.confidence})"
            )
        else:
            print(f"  Price: {', '.join(result.price_insight.reasoning)}")
        print(f"  Category: {result.category_hint.category} (id {result.category_hint.marketplace_id})\n")

    print(f"Pipeline stats: {service.get_sync_stats().model_dump(exclude={'sync'})}")
    await service.close()


if __name__ == "__main__":
    asyncio.run(main())
