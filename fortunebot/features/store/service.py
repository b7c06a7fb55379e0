"""
Store selection and typed JSON access.

build_store() picks the single backend used for the process lifetime:
Redis when REDIS_URL is configured, the in-process map otherwise.
"""
import logging
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from fortunebot.features.store.memory_store import MemoryKeyValueStore
from fortunebot.features.store.provider import KeyValueStore
from fortunebot.features.store.redis_store import RedisKeyValueStore


logger = logging.getLogger("fortunebot")

ModelT = TypeVar("ModelT", bound=BaseModel)


def build_store(cfg) -> KeyValueStore:
    redis_url = getattr(cfg, "REDIS_URL", None)
    if redis_url:
        logger.info("[store] using redis backend")
        return RedisKeyValueStore(redis_url)
    logger.warning("[store] REDIS_URL not set, using in-process memory store")
    return MemoryKeyValueStore()


def entitlement_key(user_id: str) -> str:
    return f"entitlement:{user_id}"


def order_usage_key(order_id: str) -> str:
    return f"order_used:{order_id}"


def history_key(user_id: str) -> str:
    return f"history:{user_id}"


def trial_marker_key(user_id: str) -> str:
    return f"trial_used:{user_id}"


class JsonStore:
    """Namespaced JSON get/set over a KeyValueStore."""

    def __init__(self, store: KeyValueStore, prefix: str = ""):
        self.store = store
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get_raw(self, key: str) -> Optional[str]:
        return await self.store.get(self._key(key))

    async def set_raw(self, key: str, value: str, ex: Optional[int] = None) -> None:
        await self.store.set(self._key(key), value, ex=ex)

    async def get_model(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        raw = await self.get_raw(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except PydanticValidationError:
            # Unreadable records are treated as absent and left for overwrite.
            logger.warning("[store] discarding unreadable record", extra={"store_key": key})
            return None

    async def set_model(self, key: str, value: BaseModel, ex: Optional[int] = None) -> None:
        await self.set_raw(key, value.model_dump_json(), ex=ex)

    async def delete(self, key: str) -> None:
        await self.store.delete(self._key(key))
