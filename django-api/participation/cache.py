"""Cache keys for the read endpoints."""

from django.core.cache import cache

from participation.conf import get_setting


def event_key(event_id) -> str:
    return f"participation:event:{event_id}"


def waitlist_key(event_id) -> str:
    return f"participation:event:{event_id}:waitlist"


def timeout() -> int:
    return get_setting("CACHE_TIMEOUT")


def invalidate_event(event_id) -> None:
    cache.delete_many([event_key(event_id), waitlist_key(event_id)])
