import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from urllib3.exceptions import MaxRetryError

from civiclens.core.events import ChangeFeed
from civiclens.core.exceptions import StoreUnavailableError
from civiclens.core.retry import retrying, with_retry


class FlakyStore:
    retries = 3
    backoff = 0

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    @retrying
    async def fetch(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError())
        return "ok"


async def test_transient_errors_are_retried():
    store = FlakyStore(failures=2)
    assert await store.fetch() == "ok"
    assert store.calls == 3


async def test_gives_up_after_all_attempts():
    store = FlakyStore(failures=5)
    with pytest.raises(StoreUnavailableError) as excinfo:
        await store.fetch()
    assert store.calls == 3
    assert isinstance(excinfo.value.__cause__, OperationalError)


async def test_connection_failures_from_object_storage_are_retried():
    calls = []

    async def bucket_exists():
        calls.append(1)
        raise MaxRetryError(None, "http://127.0.0.1:1/reports")

    with pytest.raises(StoreUnavailableError) as excinfo:
        await with_retry(bucket_exists, retries=2, backoff=0)
    assert len(calls) == 2
    assert isinstance(excinfo.value.__cause__, MaxRetryError)


async def test_other_errors_are_not_retried():
    calls = []

    async def insert():
        calls.append(1)
        raise IntegrityError("INSERT", {}, ValueError("duplicate key"))

    with pytest.raises(IntegrityError):
        await with_retry(insert, retries=3, backoff=0)
    assert len(calls) == 1


class FailingRedis:
    async def publish(self, channel, message):
        raise ConnectionError("redis down")


async def test_change_feed_survives_broken_subscribers_and_redis():
    received = []
    feed = ChangeFeed(FailingRedis())

    def broken(change):
        raise RuntimeError("subscriber bug")

    async def collect(change):
        received.append(change)

    feed.subscribe(broken)
    feed.subscribe(collect)
    await feed.publish("upvoted", 3, upvotes=2)

    assert received == [{"type": "upvoted", "report_id": 3, "upvotes": 2}]
