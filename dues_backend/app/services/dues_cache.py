"""
Dues summary cache.

Read-through Redis cache for per-client balance statements. Entries are
retired after every committed billing change; Redis being unavailable only
costs a recompute.
"""

import json
import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

import dues_backend.app.core.redis_client as redis_client_module
from dues_backend.app.core.config import settings
from dues_backend.app.domain.billing.dues_service import DuesService, DuesSummary

logger = logging.getLogger("dues.cache")


def summary_to_dict(summary: DuesSummary) -> Dict[str, Any]:
    data = asdict(summary)
    data["paid_through"] = summary.paid_through.isoformat() if summary.paid_through else None
    data["unsettled"] = [
        {"date": item.date.isoformat(), "amount": str(item.amount)} for item in summary.unsettled
    ]
    for key, value in data.items():
        if key not in ("client_id", "advance_members", "paid_through", "unsettled"):
            data[key] = str(value)
    return data


class DuesCache:
    """
    Summaries are stored under a per-client generation number.

    `invalidate` bumps the generation instead of deleting the entry, so a
    reader that computed its summary before a change can only write to the
    old generation's key, which is never read again and expires on its TTL.
    """

    @staticmethod
    def generation_key(client_id: int) -> str:
        return f"dues:gen:{client_id}"

    @staticmethod
    def key(client_id: int, generation: int) -> str:
        return f"dues:summary:{client_id}:{generation}"

    @staticmethod
    async def generation(client_id: int) -> Optional[int]:
        """Current generation, or None when Redis cannot be reached."""
        try:
            raw = await redis_client_module.redis_client.get(DuesCache.generation_key(client_id))
        except RedisError as e:
            logger.warning("Dues cache generation read failed for client %s: %s", client_id, e)
            return None
        return int(raw) if raw else 0

    @staticmethod
    async def get(client_id: int, generation: int) -> Optional[Dict[str, Any]]:
        try:
            raw = await redis_client_module.redis_client.get(DuesCache.key(client_id, generation))
        except RedisError as e:
            logger.warning("Dues cache read failed for client %s: %s", client_id, e)
            return None
        return json.loads(raw) if raw else None

    @staticmethod
    async def set(client_id: int, generation: int, data: Dict[str, Any]) -> None:
        try:
            await redis_client_module.redis_client.set(
                DuesCache.key(client_id, generation),
                json.dumps(data),
                ex=settings.dues_cache_ttl_seconds
            )
        except RedisError as e:
            logger.warning("Dues cache write failed for client %s: %s", client_id, e)

    @staticmethod
    async def invalidate(client_id: int) -> None:
        try:
            await redis_client_module.redis_client.incr(DuesCache.generation_key(client_id))
        except RedisError as e:
            logger.warning("Dues cache invalidation failed for client %s: %s", client_id, e)

    @staticmethod
    async def get_or_compute(db: AsyncSession, client_id: int) -> Dict[str, Any]:
        # Read the generation before computing so a change made meanwhile wins
        generation = await DuesCache.generation(client_id)
        if generation is None:
            return summary_to_dict(await DuesService.summary(db, client_id))

        cached = await DuesCache.get(client_id, generation)
        if cached is not None:
            return cached
        data = summary_to_dict(await DuesService.summary(db, client_id))
        await DuesCache.set(client_id, generation, data)
        return data
