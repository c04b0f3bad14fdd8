"""
Local-disk binding for "file://" URIs.

Used as the engine's ambient default filesystem and by the unit tests,
which exercise the whole harness without a remote store.
"""

import os
import shutil
from pathlib import Path
from typing import List

from fsconform.fs.base import FileStatus, Filesystem, InputStream, join, split_uri


class LocalInputStream(InputStream):
    def __init__(self, uri: str, local_path: Path):
        super().__init__(uri, local_path.stat().st_size)
        self._file = open(local_path, "rb")

    def read(self, size: int = 1) -> bytes:
        self._check_open()
        return self._file.read(size)

    def read_fully(self, position: int, length: int) -> bytes:
        self._check_open()
        data = os.pread(self._file.fileno(), length, position)
        if len(data) < length:
            raise EOFError(
                f"Read {len(data)} of {length} bytes at {position} in {self.uri}"
            )
        return data

    def seek(self, offset: int) -> None:
        self._check_open()
        self._check_seek(offset)
        self._file.seek(offset)

    def tell(self) -> int:
        self._check_open()
        return self._file.tell()

    def close(self) -> None:
        if not self.closed:
            self._file.close()
            self.closed = True


class LocalFilesystem(Filesystem):
    schemes = ("file",)

    def _local(self, path: str) -> Path:
        return Path(split_uri(self.qualify(path))[2])

    def _status(self, uri: str, p: Path) -> FileStatus:
        st = p.stat()
        is_dir = p.is_dir()
        return FileStatus(uri, 0 if is_dir else st.st_size, is_dir)

    def mkdirs(self, path: str) -> bool:
        self._check_open()
        self._local(path).mkdir(parents=True, exist_ok=True)
        return True

    def delete(self, path: str, recursive: bool = False) -> bool:
        self._check_open()
        p = self._local(path)
        if not p.exists():
            return False
        if p.is_dir():
            if recursive:
                shutil.rmtree(p)
            else:
                p.rmdir()
        else:
            p.unlink()
        return True

    def stat(self, path: str) -> FileStatus:
        self._check_open()
        uri = self.qualify(path)
        p = self._local(uri)
        if not p.exists():
            raise FileNotFoundError(f"No such file or directory: {uri}")
        return self._status(uri, p)

    def list_status(self, path: str) -> List[FileStatus]:
        st = self.stat(path)
        if not st.is_directory:
            return [st]
        p = self._local(path)
        return [
            self._status(join(st.path, child.name), child)
            for child in sorted(p.iterdir())
        ]

    def open(self, path: str) -> LocalInputStream:
        st = self.stat(path)
        if st.is_directory:
            raise IsADirectoryError(f"Cannot open directory: {st.path}")
        return LocalInputStream(st.path, self._local(st.path))

    def create(self, path: str, overwrite: bool = True):
        self._check_open()
        p = self._local(path)
        if p.exists() and not overwrite:
            raise FileExistsError(f"File already exists: {self.qualify(path)}")
        p.parent.mkdir(parents=True, exist_ok=True)
        return open(p, "wb")
