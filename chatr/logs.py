"""Logging helpers for outbound HTTP and realtime traffic."""
import logging

import httpx

logger = logging.getLogger("chatr.http")
SENSITIVE_FIELDS = frozenset({"apikey", "api_key", "authorization", "access_token", "token"})


async def log_request(request: httpx.Request) -> None:
    logger.debug("Request: %s %s headers=%s", request.method, request.url.path,
                  sanitize_dict(dict(request.headers)))


async def log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug("Response: %s %s status=%d", request.method, request.url.path, response.status_code)


def sanitize_dict(data: dict) -> dict:
    """Remove sensitive fields from a dictionary for logging."""
    result = {}
    for key, value in data.items():
        lower_key = key.lower()
        if lower_key in SENSITIVE_FIELDS:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value)
        else:
            result[key] = value
    return result
