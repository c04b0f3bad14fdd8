#!/usr/bin/env python3
"""
Scenario runner tests

Outcomes are PASSED / FAILED / SKIPPED per scenario name; failures do not
stop later scenarios and sessions are always released.
"""

import pytest

from fsconform import config as cfg
from fsconform.errors import StoreConnectionError
from fsconform.fs import resolve
from fsconform.runner import Outcome, Scenario, ScenarioRunner
from fsconform.scenarios import SCENARIOS, select
from fsconform.session import SessionManager


class RecordingManager(SessionManager):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.acquired = []
        self.released = []

    def acquire(self, config):
        session = super().acquire(config)
        self.acquired.append(session)
        return session

    def release(self, session):
        self.released.append(session)
        super().release(session)


def passing(ctx):
    ctx.fs.mkdirs(ctx.session.path("ok"))


def failing(ctx):
    raise AssertionError("listing was empty")


def test_disabled_gate_skips_everything(local_config):
    """Skipped, never failed, and no session is ever acquired"""
    calls = []

    def resolver(uri, options=None):
        calls.append(uri)
        return resolve(uri, options)

    manager = RecordingManager(resolver=resolver)
    disabled = local_config.with_options(**{cfg.TESTS_ENABLED: "false"})

    report = ScenarioRunner(disabled, manager).run(
        [Scenario("a", passing), Scenario("b", failing)]
    )

    assert [r.outcome for r in report.results.values()] == [Outcome.SKIPPED] * 2
    assert all("disabled" in r.reason for r in report.results.values())
    assert report.ok
    assert calls == []
    assert manager.acquired == []


def test_failure_does_not_stop_later_scenarios(local_config):
    manager = RecordingManager()
    report = ScenarioRunner(local_config, manager).run([
        Scenario("first", passing),
        Scenario("broken", failing),
        Scenario("last", passing),
    ])

    assert report.results["first"].outcome == Outcome.PASSED
    assert report.results["broken"].outcome == Outcome.FAILED
    assert report.results["broken"].reason == "AssertionError: listing was empty"
    assert report.results["last"].outcome == Outcome.PASSED
    assert not report.ok
    assert len(manager.acquired) == 3
    assert manager.released == manager.acquired
    for session in manager.acquired:
        assert session.released
        with resolve(session.test_dir) as fs:
            with pytest.raises(FileNotFoundError):
                fs.stat(session.test_dir)


def test_acquire_failure_recorded(local_config):
    def resolver(uri, options=None):
        raise StoreConnectionError(f"Cannot bind to {uri}: SignatureDoesNotMatch")

    report = ScenarioRunner(local_config, SessionManager(resolver=resolver)).run(
        [Scenario("a", passing), Scenario("b", passing)]
    )
    for result in report.results.values():
        assert result.outcome == Outcome.FAILED
        assert result.reason.startswith("StoreConnectionError:")


def test_release_failure_marks_scenario_failed(local_config):
    class FailingRelease(SessionManager):
        def release(self, session):
            super().release(session)
            raise OSError("delete denied")

    report = ScenarioRunner(local_config, FailingRelease()).run([Scenario("a", passing)])
    assert report.results["a"].outcome == Outcome.FAILED
    assert "delete denied" in report.results["a"].reason


def test_body_failure_reported_over_release_failure(local_config):
    class FailingRelease(SessionManager):
        def release(self, session):
            super().release(session)
            raise OSError("delete denied")

    report = ScenarioRunner(local_config, FailingRelease()).run([Scenario("a", failing)])
    assert report.results["a"].reason.startswith("AssertionError")


def test_missing_fixture_option_skips(local_config):
    manager = RecordingManager()
    report = ScenarioRunner(local_config, manager).run(
        [Scenario("needs-fixture", passing, requires=(cfg.SCENE_LIST_URI,))]
    )
    result = report.results["needs-fixture"]
    assert result.outcome == Outcome.SKIPPED
    assert cfg.SCENE_LIST_URI in result.reason
    assert manager.acquired == []


def test_blank_fixture_option_skips(local_config):
    """Whitespace-only options count as missing, as they do for the gate"""
    manager = RecordingManager()
    config = local_config.with_options(**{cfg.SCENE_LIST_URI: "   "})
    report = ScenarioRunner(config, manager).run(
        [Scenario("needs-fixture", passing, requires=(cfg.SCENE_LIST_URI,))]
    )
    assert report.results["needs-fixture"].outcome == Outcome.SKIPPED
    assert manager.acquired == []


def test_duplicate_names_rejected(local_config):
    """Names are checked before anything runs"""
    manager = RecordingManager()
    ran = []

    def recording(ctx):
        ran.append(ctx.session.test_dir)

    with pytest.raises(ValueError, match="Duplicate scenario name: a"):
        ScenarioRunner(local_config, manager).run(
            [Scenario("first", recording), Scenario("a", recording), Scenario("a", recording)]
        )
    assert ran == []
    assert manager.acquired == []


def test_report_dict(local_config):
    report = ScenarioRunner(local_config).run([
        Scenario("a", passing),
        Scenario("b", failing),
        Scenario("c", passing, requires=(cfg.SCENE_LIST_URI,)),
    ])
    summary = report.to_dict()
    assert summary["total"] == 3
    assert (summary["passed"], summary["failed"], summary["skipped"]) == (1, 1, 1)
    assert [r["status"] for r in summary["results"]] == ["PASSED", "FAILED", "SKIPPED"]
    assert summary["pass_rate"] == pytest.approx(100 / 3)


def test_catalogue_passes_on_local_store(scene_config):
    """Every scenario in the catalogue passes against local disk"""
    report = ScenarioRunner(scene_config).run(SCENARIOS)
    failures = {r.name: r.reason for r in report.failed}
    assert failures == {}
    assert len(report.passed) == len(SCENARIOS)


def test_catalogue_without_fixture(local_config):
    report = ScenarioRunner(local_config).run(SCENARIOS)
    skipped = {r.name for r in report.skipped}
    assert skipped == {
        "read-compressed-csv",
        "read-compressed-csv-different-fs",
        "cost-of-seek-and-close",
    }
    assert report.ok


def test_wrong_expected_line_count_fails(scene_config):
    config = scene_config.with_options(**{cfg.SCENE_LIST_EXPECTED_LINES: 447919})
    report = ScenarioRunner(config).run(select(["read-compressed-csv"]))
    result = report.results["read-compressed-csv"]
    assert result.outcome == Outcome.FAILED
    assert result.reason.startswith("CountMismatch")


def test_select():
    assert [s.name for s in select(["new-api-write", "create-delete-directory"])] == [
        "create-delete-directory", "new-api-write",
    ]
    assert select() == SCENARIOS
    with pytest.raises(KeyError):
        select(["nope"])
