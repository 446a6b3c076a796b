import pytest
import urllib3
from minio import Minio

from civiclens.core.exceptions import StoreUnavailableError
from civiclens.stores.blob import MinioBlobStore

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def unreachable_store():
    # Nothing listens on port 1; urllib3 gives up at once instead of retrying
    http_client = urllib3.PoolManager(
        retries=urllib3.Retry(total=0),
        timeout=urllib3.Timeout(connect=0.5, read=0.5),
    )
    client = Minio("127.0.0.1:1", access_key="minio", secret_key="minio123", secure=False, http_client=http_client)
    return MinioBlobStore(client, "reports", "http://127.0.0.1:1/reports", retries=2, backoff=0)


async def test_unreachable_minio_is_store_unavailable(unreachable_store):
    with pytest.raises(StoreUnavailableError) as excinfo:
        await unreachable_store.ensure_bucket()
    assert isinstance(excinfo.value.__cause__, urllib3.exceptions.HTTPError)


async def test_unreachable_minio_fails_uploads_and_listings(unreachable_store):
    with pytest.raises(StoreUnavailableError):
        await unreachable_store.put(1, 0, PNG, "image/png", "bench.png")
    with pytest.raises(StoreUnavailableError):
        await unreachable_store.list(1)
    with pytest.raises(StoreUnavailableError):
        await unreachable_store.delete_all(1)
