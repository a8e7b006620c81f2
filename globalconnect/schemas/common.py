from datetime import datetime
from bson import ObjectId


def serialize_document(value):
    """Recursively turn ObjectIds and datetimes into JSON friendly strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value


def list_serialize_documents(documents) -> list:
    return [serialize_document(document) for document in documents]
