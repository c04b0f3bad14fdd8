"""
Filesystem binding interface shared by the local and S3 implementations.

Paths are URIs ("s3://bucket/dir/file", "file:///tmp/dir/file"). A bare
path without a scheme is qualified against the binding it is given to.
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, unquote, urlsplit, urlunsplit

from fsconform.errors import BindingClosedError

# Key naming the default filesystem inside an engine/filesystem config
DEFAULT_FS_KEY = "fs.defaultFS"

SUCCESS_MARKER = "_SUCCESS"


def split_uri(uri: str):
    """
    (scheme, netloc, path) with the path percent-decoded and an empty path
    normalised to "/"
    """
    parts = urlsplit(uri)
    return parts.scheme, parts.netloc, unquote(parts.path) or "/"


def fs_root(uri: str) -> str:
    """Filesystem URI ("scheme://authority") of a path URI"""
    scheme, netloc, _ = split_uri(uri)
    return f"{scheme or 'file'}://{netloc}"


def make_uri(scheme: str, netloc: str, path: str) -> str:
    """URI of a decoded path; "%", "?", "#" and spaces are escaped"""
    return urlunsplit((scheme, netloc, quote(path), "", ""))


def join(base: str, *parts: str) -> str:
    """Append decoded path components to a URI"""
    scheme, netloc, path = split_uri(base)
    path = posixpath.join(path, *[p.strip("/") for p in parts])
    return make_uri(scheme, netloc, path)


def qualify(path: str, default_fs: Optional[str] = None) -> str:
    """Make `path` a full URI, resolving bare paths against `default_fs`"""
    if urlsplit(path).scheme:
        return path
    root = default_fs or "file://"
    scheme, netloc, _ = split_uri(root)
    return make_uri(scheme, netloc, posixpath.join("/", path))


def basename(uri: str) -> str:
    return posixpath.basename(split_uri(uri)[2].rstrip("/"))


@dataclass(frozen=True)
class FileStatus:
    """Result of stat/list: path URI, length in bytes and directory flag"""

    path: str
    length: int
    is_directory: bool

    @property
    def name(self) -> str:
        return basename(self.path)

    def __str__(self):
        kind = "dir" if self.is_directory else "file"
        return f"{self.path} ({kind}, {self.length} bytes)"


class InputStream(ABC):
    """
    Seekable binary input stream.

    read() follows Python file semantics (b"" at EOF); read_fully() is a
    positioned read that does not move the stream cursor and raises
    EOFError if fewer than `length` bytes are available.
    """

    def __init__(self, uri: str, length: int):
        self.uri = uri
        self.length = length
        self.closed = False

    def _check_open(self):
        if self.closed:
            raise ValueError(f"I/O operation on closed stream: {self.uri}")

    def _check_seek(self, offset: int):
        if offset < 0:
            raise ValueError(f"Negative seek offset {offset} in {self.uri}")
        if offset > self.length:
            raise EOFError(
                f"Cannot seek to {offset}, past end of {self.uri} ({self.length})"
            )

    @abstractmethod
    def read(self, size: int = 1) -> bytes:
        ...

    @abstractmethod
    def read_fully(self, position: int, length: int) -> bytes:
        ...

    @abstractmethod
    def seek(self, offset: int) -> None:
        ...

    @abstractmethod
    def tell(self) -> int:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class Filesystem(ABC):
    """
    A binding to one filesystem URI plus the options used to create it.

    Once closed, every operation raises BindingClosedError; bindings are
    never reused across sessions.
    """

    schemes: tuple = ()

    def __init__(self, uri: str, options: Optional[Mapping[str, Any]] = None):
        self.uri = fs_root(uri)
        self.options: Dict[str, Any] = dict(options or {})
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self):
        if self._closed:
            raise BindingClosedError(f"Filesystem binding {self.uri} is closed")

    def qualify(self, path: str) -> str:
        """Full URI of `path` on this filesystem; rejects foreign URIs"""
        uri = qualify(path, self.uri)
        if fs_root(uri) != self.uri:
            raise ValueError(f"Wrong filesystem: {uri}, expected {self.uri}")
        return uri

    def connect(self) -> None:
        """Verify the binding can reach its store. No-op by default"""

    def close(self) -> None:
        self._closed = True

    def override_config(self) -> Dict[str, Any]:
        """
        A fresh engine config making this binding the default filesystem.

        A new dict is built on each call so callers can hand it to a job
        without touching any shared configuration.
        """
        conf = dict(self.options)
        conf[DEFAULT_FS_KEY] = self.uri
        return conf

    def exists(self, path: str) -> bool:
        try:
            self.stat(path)
            return True
        except FileNotFoundError:
            return False

    @abstractmethod
    def mkdirs(self, path: str) -> bool:
        ...

    @abstractmethod
    def delete(self, path: str, recursive: bool = False) -> bool:
        """Delete `path`; returns False if there was nothing to delete"""

    @abstractmethod
    def stat(self, path: str) -> FileStatus:
        """Status of `path`; raises FileNotFoundError if absent"""

    @abstractmethod
    def list_status(self, path: str) -> List[FileStatus]:
        ...

    @abstractmethod
    def open(self, path: str) -> InputStream:
        ...

    @abstractmethod
    def create(self, path: str, overwrite: bool = True):
        """Binary writable file object; data is visible once closed"""

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self):
        state = " closed" if self._closed else ""
        return f"<{type(self).__name__} {self.uri}{state}>"
