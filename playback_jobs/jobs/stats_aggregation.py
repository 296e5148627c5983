"""
Playback Stats Aggregation
Turns each user's pending playbacks into a stats snapshot and archives
the playbacks into the history collection
"""

import time
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

from ..db.connection import get_collection
from .time_period import utcnow

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = 60 * 60


@dataclass
class RangeResult:
    skip: int
    limit: int
    success_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    failed_users: List[str] = field(default_factory=list)
    duration_ms: int = 0


def _sort_by_duration(items: List[Dict], sorting: str) -> List[Dict]:
    return sorted(items, key=lambda item: item["totalDuration"], reverse=(sorting == "desc"))


def _as_utc(timestamp) -> datetime:
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if timestamp.tzinfo is None:
        # pymongo returns naive datetimes that are already UTC
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def has_pending_playbacks(playback: Dict) -> bool:
    return any(song.get("playbacks") for song in playback.get("songs", []))


def calculate_playback_statistics(playback: Dict, sorting: str = "desc") -> Dict[str, List[Dict]]:
    """
    Aggregate one user's playback document

    Returns a dict with:
        songs: total duration per song
        artists: total duration per artist
        peakHour: 24 hourly buckets (UTC) with duration and utilization
    """
    song_totals: Dict[Any, float] = defaultdict(float)
    artist_totals: Dict[Any, float] = defaultdict(float)
    hourly_totals: Dict[int, float] = defaultdict(float)

    # songs already moved to history have an empty playbacks list and are left out
    for song in playback.get("songs", []):
        for record in song.get("playbacks", []):
            duration = record.get("duration", 0)
            song_totals[song["id"]] += duration
            artist_totals[song["artist"]] += duration
            hourly_totals[_as_utc(record["timestamp"]).hour] += duration

    hourly = [
        {
            "hour": hour,
            "totalDuration": round(hourly_totals[hour], 2),
            "utilization": round(hourly_totals[hour] / SECONDS_PER_HOUR * 100, 2),
        }
        for hour in range(24)
    ]
    songs = [{"song": song_id, "totalDuration": round(total, 2)} for song_id, total in song_totals.items()]
    artists = [{"artist": artist_id, "totalDuration": round(total, 2)} for artist_id, total in artist_totals.items()]

    return {
        "songs": _sort_by_duration(songs, sorting),
        "artists": _sort_by_duration(artists, sorting),
        "peakHour": hourly,
    }


def append_user_stats(stats_collection, user, stats: Dict, now: Optional[datetime] = None):
    """Push a stats snapshot onto the user's stats document, creating it if needed"""
    now = now or utcnow()
    entry = {**stats, "createdAt": now}

    if stats_collection.find_one({"user": user}, {"_id": 1}):
        stats_collection.update_one(
            {"user": user},
            {"$push": {"stats": entry}, "$set": {"updatedAt": now}},
        )
        return False

    stats_collection.insert_one({
        "user": user,
        "stats": [entry],
        "createdAt": now,
        "updatedAt": now,
        "__v": 0,
    })
    return True


def move_playbacks_to_history(playback: Dict, playbacks_collection, history_collection, now: Optional[datetime] = None):
    """
    Append every song's playbacks to the user's history document and
    empty them in the playbacks document
    """
    now = now or utcnow()
    user_query = {"user": playback["user"]}
    moved = 0

    for song in playback.get("songs", []):
        records = song.get("playbacks", [])
        if not records:
            continue

        history = history_collection.find_one(user_query, {"songs.id": 1})
        if history:
            song_exists = any(
                str(existing.get("id")) == str(song["id"]) for existing in history.get("songs", [])
            )
            if song_exists:
                history_collection.update_one(
                    user_query,
                    {"$push": {"songs.$[elem].playbacks": {"$each": records}}, "$set": {"updatedAt": now}},
                    array_filters=[{"elem.id": song["id"]}],
                )
            else:
                history_collection.update_one(
                    user_query,
                    {"$push": {"songs": song}, "$set": {"updatedAt": now}},
                )
        else:
            history_collection.insert_one({
                "user": playback["user"],
                "songs": [song],
                "createdAt": now,
                "updatedAt": now,
                "__v": 0,
            })

        playbacks_collection.update_one(
            {"_id": playback["_id"], "songs.id": song["id"]},
            {"$set": {"songs.$.playbacks": []}},
        )
        moved += len(records)

    return moved


def process_user_playback(db, playback: Dict, test_mode: bool = False, now: Optional[datetime] = None):
    """Compute, store and archive one user's pending playbacks"""
    stats_collection = get_collection(db, "stats", test_mode)
    playbacks_collection = get_collection(db, "playbacks", test_mode)
    history_collection = get_collection(db, "histories", test_mode)

    stats = calculate_playback_statistics(playback)
    append_user_stats(stats_collection, playback["user"], stats, now)
    return move_playbacks_to_history(playback, playbacks_collection, history_collection, now)


def process_range(db, skip: int, limit: int, test_mode: bool = False) -> RangeResult:
    """
    Process playback documents [skip, skip + limit) ordered by _id

    A failure for one user is logged and recorded; the rest of the range
    keeps going.
    """
    started = time.monotonic()
    result = RangeResult(skip=skip, limit=limit)
    playbacks_collection = get_collection(db, "playbacks", test_mode)

    cursor = playbacks_collection.find({}).sort("_id", 1).skip(skip).limit(limit)
    try:
        for playback in cursor:
            if not has_pending_playbacks(playback):
                result.skipped_count += 1
                continue

            try:
                process_user_playback(db, playback, test_mode)
                result.success_count += 1
                logger.debug(f"{playback['user']} stats successfully")
            except Exception as e:
                result.failed_count += 1
                result.failed_users.append(str(playback.get("user")))
                logger.error(f"❌ Stats failed for user {playback.get('user')}: {e}")
    finally:
        cursor.close()

    result.duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        f"📊 Range {skip}-{skip + limit}: {result.success_count} processed, "
        f"{result.failed_count} failed, {result.skipped_count} skipped in {result.duration_ms}ms"
    )
    return result
