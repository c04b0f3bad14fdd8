"""
Scenario runner.

Each named scenario runs under the gate: disabled scenarios are recorded
as SKIPPED without acquiring anything, enabled ones get a fresh session
that is released whatever the body does. One failing scenario never
stops the next from running.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fsconform import gate
from fsconform.config import RunConfiguration
from fsconform.session import Session, SessionManager

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class ScenarioContext:
    config: RunConfiguration
    session: Session

    @property
    def fs(self):
        return self.session.binding


@dataclass(frozen=True)
class Scenario:
    """A named check; `requires` lists options it needs beyond the gate"""

    name: str
    body: Callable[[ScenarioContext], Any]
    description: str = ""
    requires: Tuple[str, ...] = ()


@dataclass
class ScenarioResult:
    name: str
    outcome: Outcome
    reason: str = ""
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.outcome.value
        del d["outcome"]
        return d


@dataclass
class RunReport:
    results: Dict[str, ScenarioResult] = field(default_factory=dict)

    def _with(self, outcome: Outcome) -> List[ScenarioResult]:
        return [r for r in self.results.values() if r.outcome == outcome]

    @property
    def passed(self) -> List[ScenarioResult]:
        return self._with(Outcome.PASSED)

    @property
    def failed(self) -> List[ScenarioResult]:
        return self._with(Outcome.FAILED)

    @property
    def skipped(self) -> List[ScenarioResult]:
        return self._with(Outcome.SKIPPED)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        total = len(self.results)
        total_duration = sum(r.duration for r in self.results.values())
        return {
            "total": total,
            "passed": len(self.passed),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
            "total_duration": total_duration,
            "pass_rate": (len(self.passed) / total * 100) if total > 0 else 0,
            "results": [r.to_dict() for r in self.results.values()],
        }


def describe_failure(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class ScenarioRunner:
    def __init__(self, config: RunConfiguration,
                 manager: Optional[SessionManager] = None):
        self.config = config
        self.manager = manager or SessionManager()

    def _missing_requirements(self, scenario: Scenario) -> List[str]:
        return [
            k for k in scenario.requires
            if self.config.get(k) is None or str(self.config.get(k)).strip() == ""
        ]

    def run_one(self, scenario: Scenario) -> ScenarioResult:
        if not gate.is_enabled(self.config):
            return ScenarioResult(scenario.name, Outcome.SKIPPED,
                                  gate.disabled_reason(self.config))
        missing = self._missing_requirements(scenario)
        if missing:
            return ScenarioResult(scenario.name, Outcome.SKIPPED,
                                  f"missing fixture options: {', '.join(missing)}")

        logger.info("Running scenario %s", scenario.name)
        start = time.monotonic()
        try:
            session = self.manager.acquire(self.config)
        except Exception as e:
            logger.error("Scenario %s could not acquire a session: %s", scenario.name, e)
            return ScenarioResult(scenario.name, Outcome.FAILED, describe_failure(e),
                                  time.monotonic() - start)

        failure = None
        try:
            scenario.body(ScenarioContext(self.config, session))
        except Exception as e:
            logger.error("Scenario %s failed", scenario.name, exc_info=True)
            failure = e
        finally:
            try:
                self.manager.release(session)
            except Exception as e:
                logger.error("Releasing session for %s failed: %s", scenario.name, e)
                if failure is None:
                    failure = e

        elapsed = time.monotonic() - start
        if failure is not None:
            return ScenarioResult(scenario.name, Outcome.FAILED,
                                  describe_failure(failure), elapsed)
        return ScenarioResult(scenario.name, Outcome.PASSED, "", elapsed)

    def run(self, scenarios: Iterable[Scenario]) -> RunReport:
        scenarios = list(scenarios)
        seen = set()
        for scenario in scenarios:
            if scenario.name in seen:
                raise ValueError(f"Duplicate scenario name: {scenario.name}")
            seen.add(scenario.name)

        report = RunReport()
        for scenario in scenarios:
            result = self.run_one(scenario)
            logger.info("%s: %s %s", scenario.name, result.outcome.value, result.reason)
            report.results[scenario.name] = result
        return report
