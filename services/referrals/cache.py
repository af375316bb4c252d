"""Redis helpers for the ``code -> partner id`` soft reference."""

from __future__ import annotations

from typing import Optional

from redis.exceptions import RedisError

from core.config import settings
from core.redis_client import redis_client
from core.telemetry import logger

_CODE_KEY = "ref:code:{code}"


def cache_partner_code(code: str, partner_id: int) -> None:
    try:
        redis_client.set(
            _CODE_KEY.format(code=code), partner_id, ex=settings.PARTNER_CACHE_TTL
        )
    except RedisError as exc:
        logger.warning(
            "Partner code cache write failed",
            extra={"code": code, "error": str(exc)},
        )


def drop_partner_code(code: str) -> None:
    try:
        redis_client.delete(_CODE_KEY.format(code=code))
    except RedisError as exc:
        logger.warning(
            "Partner code cache eviction failed",
            extra={"code": code, "error": str(exc)},
        )


def get_partner_id_cached(code: str) -> Optional[int]:
    key = _CODE_KEY.format(code=code)
    try:
        raw = redis_client.get(key)
    except RedisError as exc:
        logger.warning(
            "Partner code cache read failed",
            extra={"code": code, "error": str(exc)},
        )
        return None
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        drop_partner_code(code)
        return None


__all__ = ["cache_partner_code", "drop_partner_code", "get_partner_id_cached"]
