"""
S3 binding for "s3://" and "s3a://" URIs, on top of boto3.

Directories are emulated the usual way: a zero-length "dir/" marker object
created by mkdirs, and any key below "dir/" makes "dir" a directory.
"""

import logging
import tempfile
from typing import Any, Dict, Iterator, List, Mapping, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from fsconform.errors import StoreConnectionError
from fsconform.fs.base import FileStatus, Filesystem, InputStream, join, split_uri

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")

# DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

# Forward seeks up to this distance are served by skipping bytes on the
# open stream instead of issuing a new ranged GET
FORWARD_SKIP_LIMIT = 64 * 1024


def is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in NOT_FOUND_CODES


def make_client(options: Mapping[str, Any]):
    """boto3 S3 client built from binding options"""
    endpoint = options.get("endpoint_url")
    return boto3.client(
        "s3",
        endpoint_url=endpoint,
        aws_access_key_id=options.get("access_key"),
        aws_secret_access_key=options.get("secret_key"),
        region_name=options.get("region"),
        use_ssl=endpoint.startswith("https") if endpoint else True,
        verify=options.get("verify_ssl", True) if endpoint else None,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


class S3InputStream(InputStream):
    """
    Lazy-seek stream over one object.

    seek() only moves the cursor; the next read() decides whether to skip
    forward on the open response body or to reopen with a ranged GET.
    close() releases the connection without draining the body.
    """

    def __init__(self, client, bucket: str, key: str, uri: str, length: int):
        super().__init__(uri, length)
        self._client = client
        self._bucket = bucket
        self._key = key
        self._pos = 0
        self._body = None
        self._body_pos = 0

    def _get(self, range_header: str):
        response = self._client.get_object(
            Bucket=self._bucket, Key=self._key, Range=range_header
        )
        return response["Body"]

    def _close_body(self):
        if self._body is not None:
            self._body.close()
            self._body = None

    def _reopen(self):
        logger.debug("Reopening %s at %d", self.uri, self._pos)
        self._close_body()
        self._body = self._get(f"bytes={self._pos}-")
        self._body_pos = self._pos

    def _position_body(self):
        if self._body is None:
            self._reopen()
            return
        gap = self._pos - self._body_pos
        if gap == 0:
            return
        if 0 < gap <= FORWARD_SKIP_LIMIT:
            skipped = self._body.read(gap)
            self._body_pos += len(skipped)
            if self._body_pos == self._pos:
                return
        self._reopen()

    def read(self, size: int = 1) -> bytes:
        self._check_open()
        if self._pos >= self.length or size == 0:
            return b""
        self._position_body()
        data = self._body.read(size)
        self._pos += len(data)
        self._body_pos = self._pos
        return data

    def read_fully(self, position: int, length: int) -> bytes:
        self._check_open()
        if position + length > self.length:
            raise EOFError(
                f"Cannot read {length} bytes at {position} in {self.uri} ({self.length})"
            )
        if length == 0:
            return b""
        body = self._get(f"bytes={position}-{position + length - 1}")
        try:
            data = body.read()
        finally:
            body.close()
        if len(data) < length:
            raise EOFError(
                f"Read {len(data)} of {length} bytes at {position} in {self.uri}"
            )
        return data

    def seek(self, offset: int) -> None:
        self._check_open()
        self._check_seek(offset)
        self._pos = offset

    def tell(self) -> int:
        self._check_open()
        return self._pos

    def close(self) -> None:
        if not self.closed:
            self._close_body()
            self.closed = True


class S3OutputStream:
    """
    Buffers writes in a local temp file and uploads on close.

    The buffer lives in the binding's `buffer_dir` (the run's local scratch
    directory) when one is configured.
    """

    def __init__(self, client, bucket: str, key: str, buffer_dir: Optional[str]):
        self._client = client
        self._bucket = bucket
        self._key = key
        self._buffer = tempfile.TemporaryFile(dir=buffer_dir, prefix="s3-out-")
        self.closed = False

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError(f"Write to closed stream s3://{self._bucket}/{self._key}")
        return self._buffer.write(data)

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self._buffer.seek(0)
            self._client.put_object(Bucket=self._bucket, Key=self._key, Body=self._buffer)
        finally:
            self._buffer.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class S3Filesystem(Filesystem):
    schemes = ("s3", "s3a")

    def __init__(self, uri: str, options: Optional[Mapping[str, Any]] = None, client=None):
        super().__init__(uri, options)
        self.bucket = split_uri(self.uri)[1]
        if not self.bucket:
            raise ValueError(f"No bucket in S3 URI: {uri}")
        self.client = client if client is not None else make_client(self.options)

    def connect(self) -> None:
        """Check the bucket is reachable with the configured credentials"""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise StoreConnectionError(f"Cannot bind to {self.uri}: {e}") from e
        logger.info("Bound to %s", self.uri)

    def _key(self, path: str) -> str:
        return split_uri(self.qualify(path))[2].lstrip("/")

    def _list_pages(self, prefix: str, delimiter: Optional[str] = None) -> Iterator[Dict]:
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        while True:
            response = self.client.list_objects_v2(**kwargs)
            yield response
            if not response.get("IsTruncated"):
                return
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    def _head(self, key: str) -> Optional[Dict]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise

    def stat(self, path: str) -> FileStatus:
        self._check_open()
        uri = self.qualify(path)
        key = self._key(uri).rstrip("/")
        if not key:
            return FileStatus(uri, 0, True)
        uri = uri.rstrip("/")
        head = self._head(key)
        if head is not None:
            return FileStatus(uri, head["ContentLength"], False)
        response = self.client.list_objects_v2(
            Bucket=self.bucket, Prefix=key + "/", MaxKeys=1
        )
        if response.get("KeyCount", 0) > 0 or response.get("Contents"):
            return FileStatus(uri, 0, True)
        raise FileNotFoundError(f"No such file or directory: {uri}")

    def mkdirs(self, path: str) -> bool:
        self._check_open()
        key = self._key(path).rstrip("/")
        if not key:
            return True
        if self._head(key) is not None:
            raise FileExistsError(f"Path is a file: {self.qualify(path)}")
        self.client.put_object(Bucket=self.bucket, Key=key + "/", Body=b"")
        return True

    def delete(self, path: str, recursive: bool = False) -> bool:
        try:
            st = self.stat(path)
        except FileNotFoundError:
            return False
        key = self._key(st.path)
        if not st.is_directory:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return True

        prefix = key + "/" if key else ""
        keys = [
            obj["Key"]
            for page in self._list_pages(prefix)
            for obj in page.get("Contents", [])
        ]
        if not recursive and any(k != prefix for k in keys):
            raise OSError(f"Directory not empty: {st.path}")
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            response = self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
            errors = response.get("Errors", [])
            if errors:
                raise OSError(f"Failed to delete {len(errors)} objects under {st.path}: {errors[0]}")
        logger.debug("Deleted %d objects under %s", len(keys), st.path)
        return True

    def list_status(self, path: str) -> List[FileStatus]:
        st = self.stat(path)
        if not st.is_directory:
            return [st]
        key = self._key(st.path)
        prefix = key + "/" if key else ""
        children = []
        for page in self._list_pages(prefix, delimiter="/"):
            for obj in page.get("Contents", []):
                if obj["Key"] == prefix:
                    continue
                children.append(FileStatus(join(self.uri, obj["Key"]), obj["Size"], False))
            for common in page.get("CommonPrefixes", []):
                children.append(FileStatus(join(self.uri, common["Prefix"].rstrip("/")), 0, True))
        return sorted(children, key=lambda s: s.path)

    def open(self, path: str) -> S3InputStream:
        st = self.stat(path)
        if st.is_directory:
            raise IsADirectoryError(f"Cannot open directory: {st.path}")
        return S3InputStream(self.client, self.bucket, self._key(st.path), st.path, st.length)

    def create(self, path: str, overwrite: bool = True) -> S3OutputStream:
        self._check_open()
        if not overwrite and self.exists(path):
            raise FileExistsError(f"File already exists: {self.qualify(path)}")
        return S3OutputStream(
            self.client, self.bucket, self._key(path), self.options.get("buffer_dir")
        )
