"""
Operator tools: peek at a shard, populate a stream with synthetic products.

Both reuse the pipeline's own Kinesis client, so they read and write
exactly what the poller sees.
"""

import json
import logging
import random
import re
import uuid
from typing import Any, Dict, List, Optional

from core.logging import get_logger, log_exception, log_with_context
from stream_indexer.config import IteratorType
from stream_indexer.stream.cursor import CursorManager, resolve_shard

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9 ]")

_ADJECTIVES = [
    "Small", "Ergonomic", "Rustic", "Intelligent", "Gorgeous", "Incredible",
    "Fantastic", "Practical", "Sleek", "Awesome", "Handcrafted", "Refined",
]
_MATERIALS = [
    "Steel", "Wooden", "Concrete", "Plastic", "Cotton", "Granite", "Rubber",
    "Metal", "Soft", "Fresh", "Frozen", "Bronze",
]
_PRODUCTS = [
    "Chair", "Car", "Computer", "Keyboard", "Mouse", "Bike", "Ball", "Gloves",
    "Pants", "Shirt", "Table", "Shoes", "Hat", "Towels", "Soap", "Tuna",
]
_FEATURES = [
    "ergonomic executive design for all-day comfort",
    "durable build that holds up to daily use",
    "lightweight frame with a premium finish",
    "sleek look that fits any room",
    "weather-resistant coating (indoor & outdoor)",
]


def strip_special_characters(text: str) -> str:
    """Keep only ASCII letters, digits and spaces."""
    return _NON_ALNUM.sub("", text)


def generate_product(rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Build one synthetic product event body."""
    rng = rng or random.Random()
    name = " ".join(
        (rng.choice(_ADJECTIVES), rng.choice(_MATERIALS), rng.choice(_PRODUCTS))
    )
    description = f"The {name} with {rng.choice(_FEATURES)}."
    return {
        "id": str(uuid.UUID(int=rng.getrandbits(128), version=4)),
        "name": strip_special_characters(name),
        "description": strip_special_characters(description),
        "price": round(rng.uniform(1, 1000), 2),
    }


async def populate_stream(
    client: Any,
    stream_name: str,
    count: int,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Put `count` synthetic product events on the stream.

    The product name is the partition key. A failed put is logged and
    skipped.

    Returns:
        Number of records accepted by the stream
    """
    rng = rng or random.Random()
    sent = 0

    for i in range(count):
        product = generate_product(rng)
        try:
            await client.put_record(
                stream_name,
                json.dumps(product).encode("utf-8"),
                partition_key=product["name"],
            )
        except Exception as e:
            log_exception(
                logger,
                e,
                "Failed to send product event",
                level=logging.WARNING,
                include_traceback=False,
                document_id=product["id"],
            )
            continue
        sent += 1
        if (i + 1) % 1000 == 0:
            logger.info("Populate progress", extra={"records_processed": i + 1})

    log_with_context(
        logger,
        logging.INFO,
        "Finished sending events",
        stream_name=stream_name,
        records_processed=count,
        records_succeeded=sent,
        records_failed=count - sent,
    )
    return sent


async def peek_records(
    client: Any,
    stream_name: str,
    shard_id: Optional[str] = None,
    iterator_type: IteratorType = IteratorType.TRIM_HORIZON,
    limit: int = 100,
) -> List[Dict[str, Any]]:
    """Read one batch from the shard and return the records for display."""
    shard = await resolve_shard(client, stream_name, shard_id, iterator_type)
    cursors = CursorManager(client, shard)
    result = await client.read_batch(await cursors.current(), limit)
    return [record.to_display() for record in result.records]
