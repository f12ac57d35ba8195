# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import pytest
import yaml
from mysqlsandbox import harness_main
from mysqlsandbox.sandbox import Role
from mysqlsandbox.setup import config
from mysqlsandbox.setup.config import Config


@pytest.fixture
def main_cfg(monkeypatch, tmp_path):
    c = Config()
    c.work_dir = str(tmp_path)
    c.ready_interval = 0
    c.convergence_interval = 0
    monkeypatch.setattr(config, "g_cfg", c)
    return c


@pytest.fixture
def fakes(monkeypatch, runtime, client):
    monkeypatch.setattr(harness_main, "make_runtime", lambda cfg: runtime)
    monkeypatch.setattr(harness_main.mutil, "make_client", lambda cfg, rt, labels=None: client)
    return runtime, client


def test_unknown_command(main_cfg) -> None:
    assert harness_main.main([]) == 2
    assert harness_main.main(["bogus"]) == 2


def test_invalid_option(main_cfg) -> None:
    assert harness_main.main(["run", "--bogus"]) == 2
    assert harness_main.main(["run", "--ready-attempts=many"]) == 2
    assert harness_main.main(["run", "--client=telnet"]) == 2


def test_list(main_cfg, capsys) -> None:
    assert harness_main.main(["list", "-replication"]) == 0
    out = capsys.readouterr().out
    assert "login-authorization" in out
    assert "replication " not in out


def test_options_applied(main_cfg, tmp_path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text("image: from-file\nready_attempts: 4\n")
    assert harness_main.main(["list", f"--cfg-path={path}", "--image=from-cli", "--strict-rejection",
                              "--rejection-timeout=5", "--runtime=podman"]) == 0
    assert main_cfg.image == "from-cli"
    assert main_cfg.ready_attempts == 4
    assert main_cfg.rejection_timeout == 5.0
    assert main_cfg.runtime_path == "podman"
    assert main_cfg.undecided_is_rejection is False


def test_run(main_cfg, fakes, tmp_path) -> None:
    runtime, client = fakes
    summary = tmp_path / "summary.yaml"
    assert harness_main.main(["run", "login-authorization", f"--summary={summary}"]) == 0
    assert not runtime.containers

    data = yaml.safe_load(summary.read_text())
    assert data["passed"] is True
    assert [s["name"] for s in data["scenarios"]] == ["login-authorization"]


def test_run_failure(main_cfg, fakes) -> None:
    runtime, client = fakes
    client.accept_any_root = True
    assert harness_main.main(["run", "login-authorization"]) == 1
    assert not runtime.containers


def test_run_interrupted(main_cfg, fakes, monkeypatch) -> None:
    runtime, client = fakes

    def interrupt(ctx, scenarios, results):
        ctx.manager.create(Role.adhoc, {"MYSQL_ROOT_PASSWORD": "x"})
        raise KeyboardInterrupt()

    monkeypatch.setattr(harness_main.runner, "run_scenarios", interrupt)
    assert harness_main.main(["run"]) == 130
    assert not runtime.containers
