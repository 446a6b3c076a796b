import asyncio
import functools
import logging

from sqlalchemy.exc import InterfaceError, OperationalError
from minio.error import S3Error
from redis.exceptions import ConnectionError as RedisConnectionError
from urllib3.exceptions import HTTPError as UrllibHTTPError

from .exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

# Failures worth another attempt, including the urllib3 errors MinIO raises
# when it cannot connect. Anything else (integrity errors, bad input, missing
# records) goes straight to the caller.
TRANSIENT_ERRORS = (OperationalError, InterfaceError, S3Error, RedisConnectionError, UrllibHTTPError, OSError)


async def with_retry(operation, *args, retries: int = 3, backoff: float = 0.5, **kwargs):
    """Await ``operation(*args, **kwargs)``, retrying transient store errors.

    Sleeps ``backoff * attempt`` seconds between attempts and raises
    StoreUnavailableError once ``retries`` attempts have failed.
    """
    last_error = None
    for attempt in range(1, retries + 1):
        try:
            return await operation(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            last_error = e
            logger.warning("%s failed on attempt %d/%d: %s", operation.__qualname__, attempt, retries, e)
            if attempt < retries:
                await asyncio.sleep(backoff * attempt)

    raise StoreUnavailableError(f"{operation.__qualname__} failed after {retries} attempts") from last_error


def retrying(method):
    """Method decorator for stores exposing ``retries`` and ``backoff`` attributes."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        return await with_retry(
            method, self, *args,
            retries=getattr(self, "retries", 3),
            backoff=getattr(self, "backoff", 0.5),
            **kwargs,
        )

    return wrapper
