from datetime import datetime
from enum import Enum

from bson import Decimal128, ObjectId


def serialize_mongo(obj):
    """
    JSON-safe copy of a stored log payload.

    details/context are free-form, so anything BSON can hold may show up:
    ids and decimals become strings, datetimes ISO-8601.
    """
    if isinstance(obj, dict):
        return {str(k): serialize_mongo(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple, set)):
        return [serialize_mongo(v) for v in obj]

    if isinstance(obj, (ObjectId, Decimal128)):
        return str(obj)

    if isinstance(obj, datetime):
        return obj.isoformat()

    if isinstance(obj, Enum):
        return obj.value

    return obj
