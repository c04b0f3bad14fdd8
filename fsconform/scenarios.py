"""
The scenario catalogue run by `fsconform run`.

Scenarios needing the compressed fixture object (`scene_list_uri` and its
known line count `scene_list_expected_lines`) are skipped by the runner
when those options are not configured.
"""

import logging
from typing import Dict, List, Sequence

from fsconform import config as cfg
from fsconform.engine import LocalEngine
from fsconform.errors import CountMismatch, HarnessError
from fsconform.fs import DEFAULT_FS_KEY, fs_root, resolve
from fsconform.runner import Scenario, ScenarioContext
from fsconform.timing import check_close_cost, close_cost_by_offset, profile_seek_and_close
from fsconform.verifier import RoundTripVerifier

logger = logging.getLogger(__name__)

SCENE_LIST_OPTIONS = (cfg.SCENE_LIST_URI, cfg.SCENE_LIST_EXPECTED_LINES)


def entry_count(ctx: ScenarioContext) -> int:
    return ctx.config.get_int(cfg.TEST_ENTRY_COUNT, 10000)


def create_delete_directory(ctx: ScenarioContext):
    fs = ctx.fs
    path = ctx.session.path("create-delete")
    fs.mkdirs(path)
    st = fs.stat(path)
    logger.info("Created filesystem entry %s: %s", path, st)
    if not st.is_directory:
        raise HarnessError(f"Not a dir: {st}")
    fs.delete(path, recursive=True)
    try:
        st2 = fs.stat(path)
    except FileNotFoundError:
        return
    raise HarnessError(f"{path} still visible after delete: {st2}")


def generate_then_read(ctx: ScenarioContext):
    """Engine whose ambient default filesystem is the store under test"""
    engine = LocalEngine(ctx.fs.override_config())
    if engine.default_fs != ctx.fs.uri:
        raise HarnessError(
            f"Engine default filesystem {engine.default_fs} is not {ctx.fs.uri}"
        )
    RoundTripVerifier(engine, ctx.session).write_and_read_back(entry_count(ctx))


def new_api_write(ctx: ScenarioContext):
    """
    Engine left on local disk; the job targets the store through a per-call
    override and the result is read back through a second binding.
    """
    engine = LocalEngine()
    reader = resolve(ctx.fs.uri, ctx.config.connection_options())
    with reader:
        RoundTripVerifier(engine, ctx.session).write_and_read_back(
            entry_count(ctx), write_binding=ctx.fs, read_binding=reader, name="example2"
        )
    if engine.default_fs != "file://":
        raise HarnessError(f"Engine configuration changed to {engine.default_fs}")


def _scene_list(ctx: ScenarioContext):
    return ctx.config.require(cfg.SCENE_LIST_URI), ctx.config.get_int(
        cfg.SCENE_LIST_EXPECTED_LINES
    )


def _count_rows(engine: LocalEngine, source: str, expected: int):
    count = engine.count(source)
    logger.info("size of %s = %d rows", source, count)
    if count != expected:
        raise CountMismatch(expected, count, source=source)


def read_compressed_csv(ctx: ScenarioContext):
    source, expected = _scene_list(ctx)
    conf = ctx.config.connection_options()
    conf[DEFAULT_FS_KEY] = fs_root(source)
    engine = LocalEngine(conf)
    with resolve(source, ctx.config.connection_options()) as fs:
        logger.info("Compressed size = %d", fs.stat(source).length)
    _count_rows(engine, source, expected)


def read_compressed_csv_different_fs(ctx: ScenarioContext):
    """Engine defaults to the store under test while the object may live elsewhere"""
    source, expected = _scene_list(ctx)
    engine = LocalEngine(ctx.fs.override_config())
    _count_rows(engine, source, expected)


def cost_of_seek_and_close(ctx: ScenarioContext):
    source = ctx.config.require(cfg.SCENE_LIST_URI)
    with resolve(source, ctx.config.connection_options()) as fs:
        timings = profile_seek_and_close(fs, source)
        for timing in timings:
            logger.info("%s", timing)
        check_close_cost(close_cost_by_offset(fs, source))


SCENARIOS: List[Scenario] = [
    Scenario("create-delete-directory", create_delete_directory,
             "Create, stat and delete a directory"),
    Scenario("generate-then-read", generate_then_read,
             "Partitioned write and read back with the store as default filesystem"),
    Scenario("new-api-write", new_api_write,
             "Partitioned write through a per-call filesystem override"),
    Scenario("read-compressed-csv", read_compressed_csv,
             "Count rows of the compressed fixture object", SCENE_LIST_OPTIONS),
    Scenario("read-compressed-csv-different-fs", read_compressed_csv_different_fs,
             "Count rows of the fixture object from another default filesystem",
             SCENE_LIST_OPTIONS),
    Scenario("cost-of-seek-and-close", cost_of_seek_and_close,
             "Latency profile of stat/open/seek/read/close", (cfg.SCENE_LIST_URI,)),
]

BY_NAME: Dict[str, Scenario] = {s.name: s for s in SCENARIOS}


def select(names: Sequence[str] = ()) -> List[Scenario]:
    """Scenarios by name, in catalogue order; all of them when `names` is empty"""
    if not names:
        return list(SCENARIOS)
    unknown = [n for n in names if n not in BY_NAME]
    if unknown:
        raise KeyError(f"Unknown scenario(s): {', '.join(unknown)}")
    return [s for s in SCENARIOS if s.name in names]
