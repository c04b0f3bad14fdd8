"""
Filesystem bindings.

`resolve(uri, options)` picks the binding class from the URI scheme,
creates it with the connection options and verifies it can reach its
store before handing it out.
"""

from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from fsconform.fs.base import (
    DEFAULT_FS_KEY,
    SUCCESS_MARKER,
    FileStatus,
    Filesystem,
    InputStream,
    basename,
    fs_root,
    join,
    qualify,
)
from fsconform.fs.local import LocalFilesystem
from fsconform.fs.s3 import S3Filesystem

FILESYSTEMS = {}
for _cls in (LocalFilesystem, S3Filesystem):
    for _scheme in _cls.schemes:
        FILESYSTEMS[_scheme] = _cls


def resolve(uri: str, options: Optional[Mapping[str, Any]] = None) -> Filesystem:
    """Bound, connected filesystem for `uri`"""
    scheme = urlsplit(uri).scheme or "file"
    try:
        cls = FILESYSTEMS[scheme]
    except KeyError:
        raise ValueError(f"No filesystem for scheme '{scheme}' in {uri}") from None
    fs = cls(uri, options)
    fs.connect()
    return fs


__all__ = [
    "DEFAULT_FS_KEY",
    "SUCCESS_MARKER",
    "FileStatus",
    "Filesystem",
    "InputStream",
    "LocalFilesystem",
    "S3Filesystem",
    "basename",
    "fs_root",
    "join",
    "qualify",
    "resolve",
]
