# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# Scenario selection, sequential execution and reporting

import logging
import re
from typing import List, Optional, Tuple, Type
import yaml
from mysqlsandbox.utils import auxutil, fmt
from .base import HarnessContext, Outcome, Scenario, ScenarioResult
from .configuration import ConfigurationPropagation
from .login import LoginAuthorization
from .password import PasswordRotation
from .rejection import InvalidCombinationRejection
from .replication import ReplicationConvergence

logger = logging.getLogger("runner")

SCENARIOS: List[Type[Scenario]] = [
    InvalidCombinationRejection,
    PasswordRotation,
    ReplicationConvergence,
    ConfigurationPropagation,
    LoginAuthorization,
]


def parse_filter(f: str) -> Tuple[list, list]:
    """
    Parse gtest style scenario filter:
        include1:include2:-exclude1:exclude2
    """
    inc = []
    exc = []
    l = inc
    for s in f.split(":"):
        if s.startswith("-"):
            l = exc
            s = s[1:]
        if s:
            l.append(s)
    return inc, exc


def match_any(name, patterns) -> bool:
    for p in patterns:
        p = re.escape(p).replace(r"\*", ".*")
        if re.match(f"^{p}$", name):
            return True
    return False


def select(include: Optional[list] = None, exclude: Optional[list] = None) -> List[Type[Scenario]]:
    selected = []
    for scenario in SCENARIOS:
        if ((not include or match_any(scenario.name, include)) and
                (not exclude or not match_any(scenario.name, exclude))):
            selected.append(scenario)
        else:
            logger.debug(f"skipping {scenario.name}")
    return selected


def run_scenarios(ctx: HarnessContext, scenarios: List[Type[Scenario]],
                  results: Optional[List[ScenarioResult]] = None) -> List[ScenarioResult]:
    """
    Run scenarios one after another. A failing scenario never stops the
    queue; an interrupt does. Results are appended to `results` as they
    complete so they survive an interrupt.
    """
    if results is None:
        results = []
    for i, cls in enumerate(scenarios):
        logger.info(f"[{i+1}/{len(scenarios)}] {cls.name}: {cls.description}")
        results.append(cls(ctx).execute())
    return results


def report(results: List[ScenarioResult], out=print) -> None:
    out("")
    out(fmt.bold("Scenario results"))
    for r in results:
        if r.outcome == Outcome.PASS:
            status = fmt.green("PASS")
        else:
            status = fmt.lred("FAIL")
        phase = r.phase.value if r.phase else "-"
        out(f"    {status}  {r.name:<32} {fmt.dgray(f'{r.duration:.1f}s, reached {phase}')}")
        if r.diagnostics:
            for line in r.diagnostics.split("\n"):
                out(f"          {fmt.red(line)}")

    passed = len([r for r in results if r.passed])
    summary = f"{passed}/{len(results)} scenarios passed"
    out(fmt.green(summary) if passed == len(results) else fmt.lred(summary))


def write_summary(results: List[ScenarioResult], path: str, cfg=None, leaked: Optional[list] = None,
                  duration: float = 0.0) -> None:
    data = {
        "finished": auxutil.isotime(),
        "duration": auxutil.format_duration(duration),
        "passed": all(r.passed for r in results) and not leaked,
        "scenarios": [r.as_dict() for r in results],
    }
    if cfg is not None:
        data["run_id"] = cfg.run_id
        data["image"] = cfg.image
    if leaked:
        data["leaked"] = list(leaked)

    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    logger.info(f"Summary written to {path}")
