# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from mysqlsandbox.scenarios.base import Outcome, Phase
from mysqlsandbox.scenarios.password import PasswordRotation


def test_rotation(ctx, cfg, runtime) -> None:
    result = PasswordRotation(ctx).execute()
    assert result.outcome == Outcome.PASS

    first, second = runtime.started
    assert first.env["MYSQL_PASSWORD"] == "foo"
    assert second.env["MYSQL_PASSWORD"] == "bar"
    assert second.env["MYSQL_ROOT_PASSWORD"] == "r00t2"
    assert first.volumes == second.volumes
    assert list(first.volumes.values()) == [cfg.data_dir]
    assert runtime.stopped[0] == first.cid

    assert not runtime.containers
    assert not runtime.volumes


def test_old_root_password_still_works(ctx, runtime, client) -> None:
    client.accept_any_root = True
    result = PasswordRotation(ctx).execute()

    assert result.outcome == Outcome.FAIL
    assert result.phase == Phase.ASSERTED
    assert "login as root@" in result.diagnostics
    assert not runtime.volumes
