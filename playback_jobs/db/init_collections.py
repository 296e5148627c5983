#!/usr/bin/env python3
"""
MongoDB Collection Initialization
Creates indexes for the collections the batch jobs read and write,
validates documents against JSON schemas and seeds test-mode data
"""

import os
import json
import random
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Any, Optional

from bson import ObjectId
from pymongo import ASCENDING
from jsonschema import validate, ValidationError

from .connection import get_collection, collection_name as resolve_name

logger = logging.getLogger(__name__)

SCHEMAS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "schemas")

# =============================================================================
# DATA STRUCTURE CONFIGURATION
# =============================================================================

def load_json_schema(name: str) -> Dict:
    """Load JSON schema for a collection from the package schemas directory"""
    schema_path = os.path.join(SCHEMAS_DIR, f"{name}.json")
    try:
        with open(schema_path, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning(f"Schema file not found: {schema_path}")
        return {}
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in schema file {schema_path}: {e}")
        return {}


JSON_SCHEMAS = {
    "playbacks": load_json_schema("playback"),
    "histories": load_json_schema("playback"),
    "stats": load_json_schema("stats"),
    "users": load_json_schema("user"),
}

COLLECTIONS_CONFIG = {
    "playbacks": {
        "indexes": [
            {"fields": "user", "unique": False},
            {"fields": "createdAt", "unique": False},
        ]
    },
    "histories": {
        "indexes": [
            {"fields": "user", "unique": False},
        ]
    },
    "stats": {
        "indexes": [
            {"fields": "user", "unique": False},
            {"fields": "stats.createdAt", "unique": False},
        ]
    },
    "notifications": {
        "indexes": [
            {"fields": [("type", ASCENDING), ("createdAt", ASCENDING)], "unique": False},
        ]
    },
    "users": {
        "indexes": [
            {"fields": "userPreferences.notifications.monthlyStatistic", "unique": False},
        ]
    },
}

# Template songs used when seeding test playbacks
SEED_SONGS = [
    {"id": ObjectId("6803cab38298bd83e106a9b1"), "artist": ObjectId("6803cab38298bd83e106a9a1")},
    {"id": ObjectId("6803cab38298bd83e106a9b2"), "artist": ObjectId("6803cab38298bd83e106a9a1")},
    {"id": ObjectId("6803cab38298bd83e106a9b3"), "artist": ObjectId("6803cab38298bd83e106a9a2")},
]

# Share of seeded playback records that fall outside the retention window
OLD_RECORDS_RATIO = 0.7

# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================

def to_json_ready(value: Any) -> Any:
    """Convert BSON values (ObjectId, datetime) into JSON schema friendly ones"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_ready(v) for v in value]
    return value


def validate_document(kind: str, document: Dict) -> bool:
    """
    Validate a document against its JSON schema

    Args:
        kind: Base collection name (playbacks, histories, stats, users)
        document: Document to validate, BSON values allowed

    Returns:
        bool: True if valid, False otherwise
    """
    schema = JSON_SCHEMAS.get(kind)
    if not schema:
        logger.warning(f"No schema found for collection: {kind}")
        return True

    try:
        validate(instance=to_json_ready(document), schema=schema)
        return True
    except ValidationError as e:
        logger.error(f"Validation error for {kind}: {e.message}")
        return False

# =============================================================================
# INITIALIZATION FUNCTIONS
# =============================================================================

def init_collections(db, test_mode: bool = False):
    """Create indexes for every collection the jobs touch"""
    logger.info(f"🗄️  Initializing MongoDB collections{' (TEST MODE)' if test_mode else ''}...")

    created = []
    for base, config in COLLECTIONS_CONFIG.items():
        collection = get_collection(db, base, test_mode)
        logger.info(f"📁 Setting up collection: {collection.name}")

        for index_config in config["indexes"]:
            fields = index_config["fields"]
            unique = index_config.get("unique", False)
            try:
                collection.create_index(fields, unique=unique)
                index_name = fields if isinstance(fields, str) else str(fields)
                created.append((collection.name, index_name))
                logger.info(f"  ✅ Index created: {index_name}")
            except Exception as e:
                logger.warning(f"  ⚠️  Index creation failed for {fields}: {e}")

    return created


def verify_setup(db, test_mode: bool = False) -> Dict[str, int]:
    """Log document counts and indexes of every job collection"""
    existing = db.list_collection_names()
    counts = {}

    logger.info("🔍 Verification Results:")
    for base in COLLECTIONS_CONFIG.keys():
        name = resolve_name(base, test_mode)
        if name not in existing:
            logger.error(f"  ❌ {name}: Collection not found!")
            continue

        counts[name] = db[name].count_documents({})
        logger.info(f"  ✅ {name}: {counts[name]} documents")
        for idx in db[name].list_indexes():
            logger.info(f"       - {idx['name']}: {list(idx['key'].keys())}")

    return counts

# =============================================================================
# TEST DATA GENERATION
# =============================================================================

def build_test_user(index: int, user_id: ObjectId, now: datetime, opted_in: bool = True) -> Dict:
    return {
        "_id": user_id,
        "email": f"test_user_{index}@test.com",
        "username": f"test_user_{index}",
        "userPreferences": {"notifications": {"monthlyStatistic": opted_in}},
        "notifications": {"unread": [], "read": []},
        "createdAt": now,
        "updatedAt": now,
    }


def build_test_stats(user_id: ObjectId, now: datetime) -> Dict:
    return {
        "_id": ObjectId(),
        "user": user_id,
        "stats": [
            {
                "songs": [{"song": SEED_SONGS[0]["id"], "totalDuration": 180.5}],
                "artists": [{"artist": SEED_SONGS[0]["artist"], "totalDuration": 180.5}],
                "peakHour": [{"hour": 20, "totalDuration": 180.5, "utilization": 5.01}],
                "createdAt": now,
            }
        ],
        "createdAt": now,
        "updatedAt": now,
        "__v": 0,
    }


def build_test_playbacks(
    user_id: ObjectId,
    count: int,
    now: datetime,
    retention_days: int = 60,
    rng: Optional[random.Random] = None,
) -> List[Dict]:
    """
    Generate playback documents for one user: 70% created before the
    retention window, 30% within the last 30 days
    """
    rng = rng or random.Random()
    old_count = int(count * OLD_RECORDS_RATIO)
    records = []

    for i in range(count):
        if i < old_count:
            # spread over the 30 days before the cutoff
            offset = timedelta(days=retention_days + 1) + timedelta(seconds=rng.randint(0, 30 * 86400))
        else:
            offset = timedelta(seconds=rng.randint(0, 30 * 86400))
        created_at = now - offset
        song = rng.choice(SEED_SONGS)

        records.append({
            "user": user_id,
            "songs": [
                {
                    "id": song["id"],
                    "artist": song["artist"],
                    "playbacks": [
                        {
                            "duration": round(rng.uniform(10, 300), 2),
                            "state": rng.choice(["completed", "playing"]),
                            "timestamp": created_at,
                        }
                    ],
                }
            ],
            "createdAt": created_at,
            "updatedAt": created_at,
        })

    return records


def seed_test_data(
    db,
    users: int,
    playbacks_per_user: int = 1000,
    batch_size: int = 500,
    now: Optional[datetime] = None,
    retention_days: int = 60,
    seed: Optional[int] = None,
) -> Dict[str, int]:
    """Insert generated users, stats and playbacks into the test collections"""
    now = now or datetime.now(timezone.utc)
    rng = random.Random(seed)

    users_collection = get_collection(db, "users", test_mode=True)
    stats_collection = get_collection(db, "stats", test_mode=True)
    playbacks_collection = get_collection(db, "playbacks", test_mode=True)

    start_index = users_collection.count_documents({})
    inserted = {"users": 0, "stats": 0, "playbacks": 0}

    for batch_start in range(0, users, batch_size):
        batch_end = min(batch_start + batch_size, users)
        user_batch, stats_batch, playback_batch = [], [], []

        for i in range(batch_start, batch_end):
            user_id = ObjectId()
            user_batch.append(build_test_user(start_index + i, user_id, now))
            stats_batch.append(build_test_stats(user_id, now))
            playback_batch.extend(
                build_test_playbacks(user_id, playbacks_per_user, now, retention_days, rng)
            )

        samples = [("users", user_batch[0]), ("stats", stats_batch[0])]
        if playback_batch:
            samples.append(("playbacks", playback_batch[0]))
        for kind, document in samples:
            if not validate_document(kind, document):
                raise ValueError(f"Generated {kind} document does not match its schema")

        users_collection.insert_many(user_batch, ordered=False)
        stats_collection.insert_many(stats_batch, ordered=False)
        if playback_batch:
            playbacks_collection.insert_many(playback_batch, ordered=False)

        inserted["users"] += len(user_batch)
        inserted["stats"] += len(stats_batch)
        inserted["playbacks"] += len(playback_batch)
        logger.info(f"📦 Seeded users {batch_start + 1}-{batch_end} of {users}")

    logger.info(
        f"✅ Test data seeded: {inserted['users']} users, "
        f"{inserted['stats']} stats, {inserted['playbacks']} playbacks"
    )
    return inserted
