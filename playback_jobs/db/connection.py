import logging
from pymongo import MongoClient
from typing import Optional

from .. import config

# Configure logging
logger = logging.getLogger(__name__)

# Global MongoDB client instance
_client: Optional[MongoClient] = None
_database = None

# Test mode collections used by the data generator and all jobs
TEST_COLLECTIONS = {
    "users": "test-users",
    "stats": "test-stats",
    "playbacks": "test-playbacks",
    "histories": "test-history",
    "notifications": "test-notifications",
}


def get_mongodb_client() -> MongoClient:
    """Get MongoDB client instance (singleton pattern)"""
    global _client
    if _client is None:
        uri = config.mongodb_uri()
        logger.info("Connecting to MongoDB")
        _client = MongoClient(uri)

        # Test the connection
        try:
            _client.admin.command('ping')
            logger.info("✅ MongoDB connection successful")
        except Exception as e:
            logger.error(f"❌ MongoDB connection failed: {e}")
            _client = None
            raise

    return _client


def get_database():
    """Get MongoDB database instance"""
    global _database
    if _database is None:
        client = get_mongodb_client()
        name = config.db_name()
        _database = client[name]
        logger.info(f"📁 Using database: {name}")

    return _database


def close_connection():
    """Close MongoDB connection"""
    global _client, _database
    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("🔌 MongoDB connection closed")


def collection_name(base: str, test_mode: bool = False) -> str:
    if not test_mode:
        return base
    return TEST_COLLECTIONS.get(base, f"test-{base}")


def get_collection(db, base: str, test_mode: bool = False):
    return db[collection_name(base, test_mode)]
