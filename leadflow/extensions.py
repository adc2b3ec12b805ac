"""
Shared client instances — Redis.

redis-py connects lazily on first command, so importing this module is always
safe (even when Redis is not reachable during tests).
"""
import logging

import redis

from leadflow.config import REDIS_URL

logger = logging.getLogger('leadflow.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
# Text client for progress blobs. RQ needs a bytes client, see importer._get_queue.
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
