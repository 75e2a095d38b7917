import os
import tempfile
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from catcache.cache import CacheResolver, Origin
from catcache.errors import NotFoundError, StoreWriteError
from catcache.origin import NoOriginFetcher
from catcache.storage import LocalFileStorage, S3Storage
from .test_utils import FakeFetcher, make_test_jpeg


@pytest.fixture
def local_storage():
    """Create a LocalFileStorage instance for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield LocalFileStorage(tmpdir)


@pytest.fixture
def s3_storage():
    """Create an S3Storage instance for testing."""
    bucket_name = 'test-cache-bucket'
    with mock_aws():
        client = boto3.client('s3', region_name='us-east-1')
        client.create_bucket(Bucket=bucket_name)
        yield S3Storage(bucket_name, region_name='us-east-1')


@pytest.fixture(params=['local', 's3'])
def storage(request, local_storage, s3_storage):
    """Parametrized fixture that provides both storage backends."""
    return local_storage if request.param == 'local' else s3_storage


@pytest.fixture
def fetcher():
    return FakeFetcher({'200': b'\x01\x02\x03', '418': make_test_jpeg('418')})


@pytest.fixture
def resolver(storage, fetcher):
    """Create a CacheResolver with the parametrized storage backend."""
    return CacheResolver(storage, fetcher)


class TestCacheResolver:
    def test_cache_hit_skips_origin(self, resolver, fetcher):
        """Test that the origin is not consulted when data is in cache."""
        resolver.storage.put('418', b'Cached data')

        data, origin = resolver.resolve('418')

        assert data == b'Cached data'
        assert origin is Origin.CACHE
        assert fetcher.calls == []

    def test_cache_miss_fetches_and_populates(self, resolver, fetcher):
        """Cache root empty, origin returns 01 02 03 for 200."""
        data, origin = resolver.resolve('200')

        assert data == b'\x01\x02\x03'
        assert origin is Origin.REMOTE
        assert fetcher.calls == ['200']
        assert resolver.storage.get('200') == b'\x01\x02\x03'

    def test_second_resolve_is_served_from_cache(self, resolver, fetcher):
        resolver.resolve('418')
        data, origin = resolver.resolve('418')

        assert data == make_test_jpeg('418')
        assert origin is Origin.CACHE
        assert fetcher.calls == ['418']

    def test_population_survives_origin_failure(self, resolver, fetcher):
        """Once fetched, the entry is served even after the origin goes away."""
        resolver.resolve('200')
        fetcher.responses.clear()

        data, origin = resolver.resolve('200')
        assert data == b'\x01\x02\x03'
        assert origin is Origin.CACHE

    def test_miss_and_origin_failure_is_not_found(self, resolver, fetcher):
        with pytest.raises(NotFoundError):
            resolver.resolve('999')

        assert fetcher.calls == ['999']

    def test_origin_failure_does_not_create_entry(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.resolve('999')

        assert resolver.storage.list() == []

    def test_no_retry_after_failed_fetch(self, resolver, fetcher):
        """Every miss is a single attempt; failures aren't remembered either."""
        for _ in range(3):
            with pytest.raises(NotFoundError):
                resolver.resolve('503')

        assert fetcher.calls == ['503', '503', '503']

    def test_delete_then_resolve_refetches(self, resolver, fetcher):
        resolver.storage.put('418', b'old')
        resolver.storage.delete('418')

        data, origin = resolver.resolve('418')
        assert data == make_test_jpeg('418')
        assert origin is Origin.REMOTE

    def test_different_keys_independent(self, resolver, fetcher):
        assert resolver.resolve('200')[0] == b'\x01\x02\x03'
        assert resolver.resolve('418')[0] == make_test_jpeg('418')
        assert resolver.resolve('200')[1] is Origin.CACHE
        assert fetcher.calls == ['200', '418']


class TestWriteBack:
    def test_write_back_failure_still_returns_data(self, fetcher):
        storage = Mock()
        storage.get.side_effect = NotFoundError()
        storage.put.side_effect = StoreWriteError('disk full')
        resolver = CacheResolver(storage, fetcher)

        data, origin = resolver.resolve('200')

        assert data == b'\x01\x02\x03'
        assert origin is Origin.REMOTE
        storage.put.assert_called_once_with('200', b'\x01\x02\x03')

    def test_write_back_failure_refetches_next_time(self, fetcher):
        storage = Mock()
        storage.get.side_effect = NotFoundError()
        storage.put.side_effect = OSError('read-only filesystem')
        resolver = CacheResolver(storage, fetcher)

        resolver.resolve('200')
        resolver.resolve('200')

        assert fetcher.calls == ['200', '200']

    def test_write_back_failure_on_real_directory(self, fetcher):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = LocalFileStorage(tmpdir)
            # A non-empty directory in the entry's place makes the rename fail
            os.makedirs(os.path.join(tmpdir, '200.jpg', 'blocker'))
            resolver = CacheResolver(storage, fetcher)

            data, origin = resolver.resolve('200')

            assert data == b'\x01\x02\x03'
            assert origin is Origin.REMOTE

    def test_unreadable_entry_is_a_miss(self, fetcher):
        with tempfile.TemporaryDirectory() as tmpdir:
            storage = LocalFileStorage(tmpdir)
            os.mkdir(os.path.join(tmpdir, '418.jpg'))
            resolver = CacheResolver(storage, fetcher)

            data, origin = resolver.resolve('418')

            assert data == make_test_jpeg('418')
            assert origin is Origin.REMOTE


class TestNoOrigin:
    def test_miss_is_not_found(self, local_storage):
        resolver = CacheResolver(local_storage, NoOriginFetcher())

        with pytest.raises(NotFoundError):
            resolver.resolve('200')

    def test_hit_is_served(self, local_storage):
        local_storage.put('200', b'local only')
        resolver = CacheResolver(local_storage, NoOriginFetcher())

        assert resolver.resolve('200') == (b'local only', Origin.CACHE)
