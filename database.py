"""
MongoDB access helpers

`db` is None when DATABASE_URL is not configured; request handlers obtain the
handle through the `get_db` dependency so tests can swap it out.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import get_settings
from errors import DownstreamError, InvalidInputError
from schemas import BLOGS, USERS

logger = logging.getLogger(__name__)

settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if settings.database_url:
    client = MongoClient(settings.database_url)
    db = client[settings.database_name]


def get_db() -> Database:
    if db is None:
        raise DownstreamError("Database not configured")
    return db


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> ObjectId:
    """Insert a document, stamping created_at/updated_at, and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_none=True)
    else:
        data_dict = dict(data)
    now = datetime.now(timezone.utc)
    data_dict.setdefault("created_at", now)
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return result.inserted_id


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, projection: Optional[dict] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {}, projection)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def populate(database: Database, docs: List[dict], field: str, collection_name: str,
             projection: Optional[dict] = None) -> List[dict]:
    """Replace the ObjectId stored under `field` with the referenced document."""
    ids = {d[field] for d in docs if d.get(field) is not None}
    if not ids:
        return docs
    found = {ref["_id"]: ref for ref in database[collection_name].find({"_id": {"$in": list(ids)}}, projection)}
    for d in docs:
        if d.get(field) is not None:
            d[field] = found.get(d[field])
    return docs


def parse_object_id(value: Any, what: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidInputError(f"Invalid {what}", status_code=400)


def _public_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _public_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_public_value(v) for v in value]
    return value


def to_public(doc: Optional[Dict[str, Any]]):
    if not doc:
        return doc
    doc = {**doc}
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    return _public_value(doc)


def ensure_indexes(database: Database) -> None:
    database[USERS].create_index([("personal_info.email", ASCENDING)], unique=True)
    database[USERS].create_index([("personal_info.username", ASCENDING)], unique=True)
    database[BLOGS].create_index([("blog_id", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")
