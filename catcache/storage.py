"""
Storage abstraction for cached images.

Provides a common interface for storing, retrieving, deleting and listing
whole blobs by key, with multiple backend implementations.
"""
import os
import tempfile
from abc import ABC, abstractmethod
from typing import List
from urllib.parse import urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from catcache.errors import NotFoundError, StoreReadError, StoreWriteError
from catcache.keys import filename_for, to_storage_path

TEMP_PREFIX = '.tmp_'


class Storage(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """
        Retrieve an entry from storage.

        Args:
            key: A validated 3-digit code

        Returns:
            Entry contents as bytes

        Raises:
            NotFoundError: If no entry exists for the key
            StoreReadError: If the entry exists but can't be read
        """
        pass

    @abstractmethod
    def put(self, key: str, data: bytes) -> int:
        """
        Store an entry, replacing any previous one as a single operation.

        Args:
            key: A validated 3-digit code
            data: Entry contents as bytes

        Returns:
            Number of bytes written

        Raises:
            StoreWriteError: If the entry couldn't be written
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> str:
        """
        Remove an entry.

        Returns:
            Name of the removed entry, e.g. '200.jpg'

        Raises:
            NotFoundError: If no entry exists for the key
            StoreWriteError: If the entry exists but couldn't be removed
        """
        pass

    @abstractmethod
    def list(self) -> List[str]:
        """Sorted entry names. Returns an empty list if storage is unreadable."""
        pass


class LocalFileStorage(Storage):
    """
    Local filesystem storage implementation.

    Stores one file per key, named '<key>.jpg', directly inside base_dir.
    Uses atomic writes (write to .tmp, then rename) so a reader sees either
    the old or the new complete file.
    """

    def __init__(self, base_dir: str):
        self.base_dir = os.path.abspath(base_dir)

        # Create base directory if it doesn't exist
        os.makedirs(self.base_dir, exist_ok=True)

    def get(self, key: str) -> bytes:
        path = to_storage_path(key, self.base_dir)

        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f'{path} does not exist') from e
        except OSError as e:
            raise StoreReadError(f'cannot read {path}: {e}') from e

    def put(self, key: str, data: bytes) -> int:
        """Atomic write using temporary file + rename."""
        path = to_storage_path(key, self.base_dir)

        try:
            os.makedirs(self.base_dir, exist_ok=True)

            # Create a unique temporary file in the same directory to ensure atomic rename works
            # (rename is only atomic when source and destination are on the same filesystem)
            fd, temp_path = tempfile.mkstemp(dir=self.base_dir, prefix=TEMP_PREFIX, suffix='')
        except OSError as e:
            raise StoreWriteError(f'cannot create temp file in {self.base_dir}: {e}') from e

        try:
            # Write to temporary file
            with os.fdopen(fd, 'wb') as f:
                f.write(data)

            # Atomic rename (overwrites destination if it exists)
            os.replace(temp_path, path)
        except OSError as e:
            # Clean up temp file if something went wrong
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise StoreWriteError(f'cannot write {path}: {e}') from e

        return len(data)

    def delete(self, key: str) -> str:
        path = to_storage_path(key, self.base_dir)

        try:
            os.unlink(path)
        except FileNotFoundError as e:
            raise NotFoundError(f'{path} does not exist') from e
        except OSError as e:
            raise StoreWriteError(f'cannot delete {path}: {e}') from e

        return os.path.basename(path)

    def list(self) -> List[str]:
        try:
            with os.scandir(self.base_dir) as entries:
                names = [e.name for e in entries
                         if e.is_file() and not e.name.startswith(TEMP_PREFIX)]
        except OSError:
            return []

        return sorted(names)


class S3Storage(Storage):
    """Amazon S3 storage implementation."""

    def __init__(self, bucket_name: str, prefix: str = '', **kwargs):
        """
        Initialize S3 storage.

        Args:
            bucket_name: Name of the S3 bucket
            prefix: Optional prefix (folder) for all keys
            **kwargs: Additional arguments passed to boto3.client()
                     (e.g., aws_access_key_id, aws_secret_access_key, region_name)
        """
        self.bucket_name = bucket_name
        self.prefix = prefix.strip('/') + '/' if prefix.strip('/') else ''
        self.s3_client = boto3.client('s3', **kwargs)

    def _get_key(self, key: str) -> str:
        """Get the full S3 object key for a cache key."""
        return self.prefix + filename_for(key)

    def get(self, key: str) -> bytes:
        s3_key = self._get_key(key)

        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=s3_key)
            return response['Body'].read()
        except ClientError as e:
            if e.response['Error']['Code'] == 'NoSuchKey':
                raise NotFoundError(f's3://{self.bucket_name}/{s3_key} does not exist') from e
            raise StoreReadError(f'cannot read s3://{self.bucket_name}/{s3_key}: {e}') from e
        except BotoCoreError as e:
            raise StoreReadError(f'cannot read s3://{self.bucket_name}/{s3_key}: {e}') from e

    def put(self, key: str, data: bytes) -> int:
        """S3 PUT operations are atomic by default."""
        s3_key = self._get_key(key)

        try:
            self.s3_client.put_object(Bucket=self.bucket_name, Key=s3_key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(f'cannot write s3://{self.bucket_name}/{s3_key}: {e}') from e

        return len(data)

    def delete(self, key: str) -> str:
        s3_key = self._get_key(key)

        # delete_object succeeds for missing keys, so check first
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=s3_key)
        except ClientError as e:
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                raise NotFoundError(f's3://{self.bucket_name}/{s3_key} does not exist') from e
            raise StoreWriteError(f'cannot delete s3://{self.bucket_name}/{s3_key}: {e}') from e
        except BotoCoreError as e:
            raise StoreWriteError(f'cannot delete s3://{self.bucket_name}/{s3_key}: {e}') from e

        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=s3_key)
        except (ClientError, BotoCoreError) as e:
            raise StoreWriteError(f'cannot delete s3://{self.bucket_name}/{s3_key}: {e}') from e

        return filename_for(key)

    def list(self) -> List[str]:
        names = []
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self.prefix):
                for obj in page.get('Contents', []):
                    name = obj['Key'][len(self.prefix):]
                    # Flat layout: ignore anything in nested "folders"
                    if name and '/' not in name:
                        names.append(name)
        except (ClientError, BotoCoreError):
            return []

        return sorted(names)


def open_storage(location: str) -> Storage:
    """
    Create a storage backend from a location string.

    's3://bucket/prefix' selects S3Storage; anything else is a local
    directory, created if missing.
    """
    if location.startswith('s3://'):
        parts = urlsplit(location)
        return S3Storage(parts.netloc, prefix=parts.path)

    return LocalFileStorage(location)
