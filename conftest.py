"""
Pytest configuration and fixtures for filesystem conformance tests
"""

import gzip

import pytest

from fsconform import config as cfg
from fsconform.config import RunConfiguration, load_config
from fsconform.session import SessionManager

SCENE_LIST_LINES = 2000


@pytest.fixture(scope="session")
def config():
    """
    Run configuration from S3_* environment variables

    Drives the live suite under tests/s3; the gate keeps it skipped
    unless S3_TESTS_ENABLED and credentials are set.
    """
    return load_config()


@pytest.fixture
def local_config(tmp_path):
    """
    Enabled configuration targeting a directory on local disk

    Credentials are placeholders: the local binding ignores them, but the
    gate requires them to be present.
    """
    store = tmp_path / "store"
    store.mkdir()
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return RunConfiguration({
        cfg.TESTS_ENABLED: True,
        cfg.ACCESS_KEY: "test-access-key",
        cfg.SECRET_KEY: "test-secret-key",
        cfg.TEST_URI: store.as_uri(),
        cfg.LOCAL_TMP_DIR: str(scratch),
        cfg.TEST_ENTRY_COUNT: 1000,
    })


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def session(local_config, manager):
    """Session on local disk, released after the test"""
    s = manager.acquire(local_config)
    yield s
    manager.release(s)


@pytest.fixture
def scene_list(tmp_path):
    """
    Gzip-compressed CSV fixture object

    Returns (uri, line count).
    """
    path = tmp_path / "fixtures" / "scene_list.gz"
    path.parent.mkdir()
    lines = ["entityId,acquisitionDate,cloudCover,path,row"]
    lines += [
        f"LC8{i:06d},2015-01-{i % 28 + 1:02d},{i % 100}.{i % 7},{i % 233},{i % 248}"
        for i in range(1, SCENE_LIST_LINES)
    ]
    with gzip.open(path, "wt", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")
    return path.as_uri(), SCENE_LIST_LINES


@pytest.fixture
def scene_config(local_config, scene_list):
    uri, lines = scene_list
    return local_config.with_options(**{
        cfg.SCENE_LIST_URI: uri,
        cfg.SCENE_LIST_EXPECTED_LINES: lines,
    })
