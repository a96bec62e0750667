"""
MongoDB connection.

The client connects lazily, so importing this module never touches the network.
"""

import logging

from pymongo import ASCENDING, MongoClient

import settings

logger = logging.getLogger(__name__)

client = MongoClient(settings.DATABASE_URL)
db = client[settings.DATABASE_NAME]


def get_db():
    return db


def ensure_indexes(database) -> None:
    # One ship per IMO; ships without an IMO carry no "imo" field at all.
    database["ship"].create_index([("imo", ASCENDING)], unique=True, sparse=True)
    database["ship"].create_index([("name", ASCENDING)])
    database["rating"].create_index([("ship_id", ASCENDING)])
    database["rating"].create_index([("user_id", ASCENDING)])
    logger.info(f"Ensured indexes on database '{database.name}'")
