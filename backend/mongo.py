import logging
import os
from typing import Any, Optional, Tuple

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError
from pymongo.server_api import ServerApi

from learnai.errors import PersistenceError

logger = logging.getLogger(__name__)


def connect(uri: Optional[str] = None, db_name: Optional[str] = None, timeout_ms: int = 5000) -> Tuple[MongoClient, Database]:
    uri = uri or os.getenv("MONGO_URI")
    db_name = db_name or os.getenv("MONGO_DB")

    if not uri:
        raise PersistenceError("MONGO_URI environment variable is not set")
    if not db_name:
        raise PersistenceError("MONGO_DB environment variable is not set")

    options: dict[str, Any] = {"serverSelectionTimeoutMS": timeout_ms}
    if uri.startswith("mongodb+srv://"):
        options.update(tls=True, server_api=ServerApi("1"))

    client: MongoClient = MongoClient(uri, **options)
    try:
        client.admin.command("ping")
    except PyMongoError as exc:
        client.close()
        raise PersistenceError("Unable to connect to MongoDB") from exc
    logger.info("Connected to MongoDB database %s", db_name)

    return client, client[db_name]


def transactions_enabled() -> bool:
    return (os.getenv("MONGO_TRANSACTIONS") or "").strip().lower() in ("1", "true", "yes", "on")
