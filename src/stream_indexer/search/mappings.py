"""
Index mappings.

Field typing is fixed per index: full-text (text), exact-match (keyword),
numeric (integer/float) and temporal (date). Search queries hit text
fields; filters and aggregations hit keyword/numeric/date fields.
"""

from typing import Any, Dict

FILES_MAPPING: Dict[str, Any] = {
    "properties": {
        "fileName": {"type": "text"},
        "content": {"type": "text"},
        "contentType": {"type": "keyword"},
        "size": {"type": "integer"},
        "timestamp": {"type": "date"},
        "s3Location": {"type": "keyword"},
    }
}

PRODUCTS_MAPPING: Dict[str, Any] = {
    "properties": {
        "id": {"type": "keyword"},
        "name": {"type": "text"},
        "description": {"type": "text"},
        "price": {"type": "float"},
    }
}
