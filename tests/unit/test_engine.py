#!/usr/bin/env python3
"""
Local engine tests

Partitioned text output, per-job filesystem overrides and failure
wrapping.
"""

import gzip

import pytest

from fsconform.engine import LocalEngine, split_partitions
from fsconform.errors import ExecutionError
from fsconform.fs import DEFAULT_FS_KEY, LocalFilesystem, join, resolve


def test_split_partitions_contiguous():
    parts = split_partitions(list(range(10)), 3)
    assert [list(p) for p in parts] == [[0, 1, 2], [3, 4, 5], [6, 7, 8, 9]]
    assert split_partitions(list(range(5)), 1) == [list(range(5))]
    with pytest.raises(ValueError):
        split_partitions([1], 0)


def test_partitioned_write_layout(tmp_path):
    dest = join(tmp_path.as_uri(), "out")
    engine = LocalEngine(parallelism=3)

    paths = engine.submit_partitioned_write(range(1, 11), dest)

    assert [p.rsplit("/", 1)[1] for p in paths] == ["part-00000", "part-00001", "part-00002"]
    out = tmp_path / "out"
    assert (out / "_SUCCESS").stat().st_size == 0
    assert (out / "part-00000").read_text() == "1\n2\n3\n"
    assert engine.count(dest) == 10


def test_bare_destination_uses_override_default_fs(tmp_path):
    """A path without scheme lands on the override's default filesystem"""
    override = LocalFilesystem(tmp_path.as_uri()).override_config()
    engine = LocalEngine({DEFAULT_FS_KEY: "s3://never-used"})

    engine.submit_partitioned_write([1, 2], str(tmp_path / "bare"), override)

    assert (tmp_path / "bare" / "part-00000").read_text() == "1\n2\n"


def test_override_does_not_change_ambient_configuration(tmp_path):
    ambient = {DEFAULT_FS_KEY: "file://", "region": "us-east-1"}
    engine = LocalEngine(ambient)
    override = {DEFAULT_FS_KEY: "file://", "region": "eu-west-1"}

    engine.submit_partitioned_write([1], join(tmp_path.as_uri(), "o"), override)

    assert dict(engine.conf) == {DEFAULT_FS_KEY: "file://", "region": "us-east-1"}
    assert engine.effective_conf(override)["region"] == "eu-west-1"
    assert engine.effective_conf()["region"] == "us-east-1"
    ambient["region"] = "changed"
    assert engine.conf["region"] == "us-east-1"


def test_existing_output_fails(tmp_path):
    dest = join(tmp_path.as_uri(), "out")
    engine = LocalEngine()
    engine.submit_partitioned_write([1], dest)
    with pytest.raises(ExecutionError, match="already exists"):
        engine.submit_partitioned_write([1], dest)


def test_read_directory_skips_marker_and_hidden_files(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    (out / "part-00000").write_text("a\nb\n")
    (out / "part-00001").write_text("c\n")
    (out / "_SUCCESS").write_text("")
    (out / ".part-00000.crc").write_text("junk\n")

    lines = LocalEngine(parallelism=2).submit_read(out.as_uri())
    assert lines == ["a", "b", "c"]


def test_read_gzip(tmp_path):
    path = tmp_path / "rows.csv.gz"
    with gzip.open(path, "wt") as f:
        f.write("h1,h2\n1,2\n3,4\n")
    assert LocalEngine().count(path.as_uri()) == 3


def test_missing_input_is_execution_error(tmp_path):
    with pytest.raises(ExecutionError) as excinfo:
        LocalEngine().submit_read(join(tmp_path.as_uri(), "absent"))
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_write_failure_is_execution_error(tmp_path):
    def failing_resolver(uri, options=None):
        fs = resolve(uri, options)

        def create(path, overwrite=True):
            raise OSError("disk full")

        fs.create = create
        return fs

    engine = LocalEngine(resolver=failing_resolver)
    with pytest.raises(ExecutionError, match="disk full"):
        engine.submit_partitioned_write([1, 2, 3], join(tmp_path.as_uri(), "out"))
