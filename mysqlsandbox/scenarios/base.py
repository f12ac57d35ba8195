# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import contextlib
import logging
import time
from enum import Enum
from typing import List, Optional
from mysqlsandbox import readiness
from mysqlsandbox.errors import HarnessError
from mysqlsandbox.utils import fmt

logger = logging.getLogger("scenario")


class Outcome(Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class Phase(Enum):
    CREATED = "Created"
    RUNNING = "Running"
    PROBED = "Probed"
    ASSERTED = "Asserted"
    TORN_DOWN = "TornDown"


PHASE_ORDER = list(Phase)


class ScenarioResult:
    def __init__(self, name: str, outcome: Outcome, phase: Optional[Phase], duration: float = 0.0,
                 diagnostics: Optional[str] = None):
        self.name = name
        self.outcome = outcome
        # last phase reached before teardown
        self.phase = phase
        self.duration = duration
        self.diagnostics = diagnostics if outcome == Outcome.FAIL else None

    @property
    def passed(self) -> bool:
        return self.outcome == Outcome.PASS

    def as_dict(self) -> dict:
        d = {
            "name": self.name,
            "outcome": self.outcome.value,
            "phase": self.phase.value if self.phase else None,
            "duration": round(self.duration, 3),
        }
        if self.diagnostics:
            d["diagnostics"] = self.diagnostics
        return d

    def __repr__(self):
        return f"<ScenarioResult {self.name} {self.outcome.value}>"


class HarnessContext:
    """
    Collaborators every scenario works with. Scenarios reference sandboxes,
    the manager owns them.
    """

    def __init__(self, cfg, manager, client):
        self.cfg = cfg
        self.manager = manager
        self.client = client


class Scenario:
    name: str = ""
    description: str = ""

    def __init__(self, ctx: HarnessContext):
        self.ctx = ctx
        self.cfg = ctx.cfg
        self.manager = ctx.manager
        self.client = ctx.client
        self.phase: Optional[Phase] = None
        self.case_logs: List[str] = []
        self.logger = logging.getLogger(__name__ + ":" + self.__class__.__name__)

    def run(self, scope) -> None:
        raise NotImplementedError()

    def advance(self, phase: Phase) -> None:
        if self.phase is None or PHASE_ORDER.index(phase) > PHASE_ORDER.index(self.phase):
            self.logger.debug(f"{self.name}: {self.phase.value if self.phase else '-'} -> {phase.value}")
            self.phase = phase

    def execute(self) -> ScenarioResult:
        self.phase = None
        self.case_logs = []
        diagnostics = None
        start = time.monotonic()

        self.logger.info(fmt.bold(f"Starting scenario {self.name}"))
        with self.manager.scope(self.name) as scope:
            try:
                self.run(scope)
                self.advance(Phase.ASSERTED)
                outcome = Outcome.PASS
            except HarnessError as e:
                outcome = Outcome.FAIL
                self.logger.error(f"Scenario {self.name} failed after {self.phase_name()}: {e}")
                diagnostics = self.collect_diagnostics(scope, e)
            except Exception as e:
                outcome = Outcome.FAIL
                self.logger.exception(f"Scenario {self.name} raised an unexpected error after {self.phase_name()}")
                diagnostics = self.collect_diagnostics(scope, e)
            reached = self.phase

        self.phase = Phase.TORN_DOWN
        duration = time.monotonic() - start
        self.logger.info(f"Scenario {self.name}: {outcome.value} ({duration:.1f}s)")
        return ScenarioResult(self.name, outcome, reached, duration, diagnostics)

    def phase_name(self) -> str:
        return self.phase.value if self.phase else "start"

    def collect_diagnostics(self, scope, error) -> str:
        parts = [f"{type(error).__name__}: {error}"]
        if isinstance(error, HarnessError) and error.returncode is not None:
            parts.append(f"exit code: {error.returncode}")
        if isinstance(error, HarnessError) and error.logs:
            parts.append(error.logs)
        else:
            tails = scope.log_tails(self.cfg.log_tail_lines)
            if tails:
                parts.append(tails)
        parts += self.case_logs
        return "\n".join(parts)

    @contextlib.contextmanager
    def case(self, label):
        """
        Nested scope for one matrix case, torn down as soon as the case ends.
        """
        with self.manager.scope(f"{self.name}/{label}") as scope:
            try:
                yield scope
            except HarnessError as e:
                if not e.logs:
                    e.logs = scope.log_tails(self.cfg.log_tail_lines)
                raise

    def keep_logs(self, scope, label) -> None:
        self.case_logs.append(f"=== {label} ===\n{scope.log_tails(self.cfg.log_tail_lines)}")

    def start(self, scope, role, env, extra_args=None, command=None, volumes=None):
        self.advance(Phase.CREATED)
        sandbox = scope.create(role, env, extra_args, command, volumes)
        self.advance(Phase.RUNNING)
        return sandbox

    def wait_ready(self, sandbox, credential, database=None) -> str:
        probe = readiness.select_one_probe(self.manager, self.client, credential, database)
        readiness.wait_until_ready(self.manager, sandbox, probe,
                                   self.cfg.ready_attempts, self.cfg.ready_interval)
        self.advance(Phase.PROBED)
        return self.manager.resolve_address(sandbox)
