"""MongoDB document serialization utilities."""

from datetime import datetime

from bson import ObjectId
from pydantic import BaseModel


def serialize_doc(doc):
    """Convert MongoDB document (or model) to a JSON-safe dict with ISO timestamps"""
    if doc is None:
        return None
    if isinstance(doc, BaseModel):
        return serialize_doc(doc.model_dump())
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, dict):
        result = {}
        for key, value in doc.items():
            if key == "_id":
                continue  # Skip _id entirely
            result[key] = serialize_doc(value)
        return result
    return doc
