# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from mysqlsandbox import checks
from mysqlsandbox.errors import AssertionFailure
from mysqlsandbox.sandbox import Role
from mysqlsandbox.utils.mutil import Credential
from .base import Phase, Scenario

DATABASE = "db"


def credentials_env(user: Credential, root: Credential) -> dict:
    return {
        "MYSQL_USER": user.username,
        "MYSQL_PASSWORD": user.password,
        "MYSQL_DATABASE": DATABASE,
        "MYSQL_ROOT_PASSWORD": root.password,
    }


class PasswordRotation(Scenario):
    """
    Restart against the same data volume with changed passwords: the new
    ones must work and the old ones must be rejected.
    """
    name = "password-rotation"
    description = "credentials change when a sandbox is recreated on the same storage"

    old_user = Credential("user", "foo")
    new_user = Credential("user", "bar")
    old_root = Credential.root("r00t")
    new_root = Credential.root("r00t2")

    def run(self, scope):
        volume = scope.create_volume("data")
        volumes = {volume: self.cfg.data_dir}

        first = self.start(scope, Role.adhoc, credentials_env(self.old_user, self.old_root), volumes=volumes)
        self.wait_ready(first, self.old_user, DATABASE)
        self.manager.stop(first)

        second = self.start(scope, Role.adhoc, credentials_env(self.new_user, self.new_root), volumes=volumes)
        address = self.wait_ready(second, self.new_user, DATABASE)

        failures = []
        for credential, expected in ((self.new_user, True), (self.old_user, False),
                                     (self.new_root, True), (self.old_root, False)):
            verdict = checks.login_matches(self.client, address, credential, expected, DATABASE)
            if not verdict:
                failures.append(verdict.explanation)
        self.advance(Phase.ASSERTED)

        if failures:
            raise AssertionFailure("Password rotation failed:\n    " + "\n    ".join(failures))
