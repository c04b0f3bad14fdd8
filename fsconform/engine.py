"""
Partitioned compute engine adapter.

LocalEngine plays the part of a data-processing engine running with a
local master: records are split into contiguous partitions, each partition
is written by a worker thread as one `part-NNNNN` text file, and a
zero-length `_SUCCESS` marker is written once every partition is done.

The engine has an ambient configuration fixed at construction. Each job
merges its own filesystem override into a fresh copy of it, so a write
aimed at one store never changes where the next job writes.
"""

import gzip
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from fsconform.errors import ExecutionError
from fsconform.fs import DEFAULT_FS_KEY, SUCCESS_MARKER, FileStatus, join, qualify, resolve

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1 << 20


class Engine(ABC):
    """Blocking submit-partitioned-work / collect-results interface"""

    @abstractmethod
    def submit_partitioned_write(self, records: Iterable[Any], destination: str,
                                 fs_config: Optional[Mapping[str, Any]] = None,
                                 num_partitions: Optional[int] = None) -> List[str]:
        """Write records as text, one file per partition; returns the part URIs"""

    @abstractmethod
    def submit_read(self, path: str,
                    fs_config: Optional[Mapping[str, Any]] = None) -> List[str]:
        """Lines of a file, or of every data file in a directory"""

    def count(self, path: str, fs_config: Optional[Mapping[str, Any]] = None) -> int:
        return len(self.submit_read(path, fs_config))


def split_partitions(records: Sequence[Any], num_partitions: int) -> List[Sequence[Any]]:
    """Contiguous slices; earlier partitions never hold fewer records"""
    if num_partitions < 1:
        raise ValueError(f"num_partitions must be positive, got {num_partitions}")
    total = len(records)
    return [
        records[i * total // num_partitions:(i + 1) * total // num_partitions]
        for i in range(num_partitions)
    ]


def is_data_file(status: FileStatus) -> bool:
    return not status.is_directory and not status.name.startswith(("_", "."))


def read_all(stream) -> bytes:
    chunks = []
    while True:
        chunk = stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


class LocalEngine(Engine):
    def __init__(self, conf: Optional[Mapping[str, Any]] = None, parallelism: int = 1,
                 resolver: Callable = resolve):
        self.conf = MappingProxyType(dict(conf or {}))
        self.parallelism = parallelism
        self.resolver = resolver

    @property
    def default_fs(self) -> str:
        return self.conf.get(DEFAULT_FS_KEY, "file://")

    def effective_conf(self, override: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """New dict: ambient configuration with `override` applied on top"""
        conf = dict(self.conf)
        if override:
            conf.update(override)
        return conf

    def _bind(self, path: str, conf: Mapping[str, Any]):
        uri = qualify(path, conf.get(DEFAULT_FS_KEY))
        options = {k: v for k, v in conf.items() if k != DEFAULT_FS_KEY}
        return self.resolver(uri, options), uri

    def _run_job(self, description: str, job: Callable[[], Any]):
        logger.info("Starting job: %s", description)
        try:
            return job()
        except ExecutionError:
            raise
        except Exception as e:
            raise ExecutionError(f"Job failed ({description}): {e}") from e

    def submit_partitioned_write(self, records, destination, fs_config=None,
                                 num_partitions=None):
        conf = self.effective_conf(fs_config)
        records = list(records)
        num_partitions = num_partitions or self.parallelism

        def job():
            fs, dest = self._bind(destination, conf)
            with fs:
                if fs.exists(dest):
                    raise ExecutionError(f"Output directory {dest} already exists")
                fs.mkdirs(dest)
                partitions = split_partitions(records, num_partitions)
                with ThreadPoolExecutor(max_workers=num_partitions) as executor:
                    futures = [
                        executor.submit(self._write_partition, fs, dest, index, part)
                        for index, part in enumerate(partitions)
                    ]
                    paths = [f.result() for f in futures]
                with fs.create(join(dest, SUCCESS_MARKER)):
                    pass
            logger.info("Wrote %d records in %d partitions to %s",
                        len(records), num_partitions, dest)
            return paths

        return self._run_job(f"write {destination}", job)

    @staticmethod
    def _write_partition(fs, dest: str, index: int, records: Sequence[Any]) -> str:
        path = join(dest, f"part-{index:05d}")
        with fs.create(path) as out:
            for record in records:
                out.write(f"{record}\n".encode("utf-8"))
        return path

    def submit_read(self, path, fs_config=None):
        conf = self.effective_conf(fs_config)

        def job():
            fs, uri = self._bind(path, conf)
            with fs:
                st = fs.stat(uri)
                if st.is_directory:
                    inputs = [s for s in fs.list_status(uri) if is_data_file(s)]
                else:
                    inputs = [st]
                workers = max(1, min(self.parallelism, len(inputs)))
                with ThreadPoolExecutor(max_workers=workers) as executor:
                    results = list(executor.map(lambda s: self._read_lines(fs, s), inputs))
            return [line for lines in results for line in lines]

        return self._run_job(f"read {path}", job)

    @staticmethod
    def _read_lines(fs, status: FileStatus) -> List[str]:
        with fs.open(status.path) as stream:
            data = read_all(stream)
        if status.name.endswith(".gz"):
            data = gzip.decompress(data)
        return data.decode("utf-8").splitlines()
