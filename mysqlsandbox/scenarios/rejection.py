# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import math
from typing import Dict, List, Optional, Tuple
from mysqlsandbox import checks, readiness
from mysqlsandbox.errors import AssertionFailure, CreationError, NotRunningError, WaitTimeoutError
from mysqlsandbox.sandbox import Role
from mysqlsandbox.utils.mutil import Credential
from .base import Scenario

REJECTED = "rejected"
ACCEPTED = "accepted"
# neither exited nor answered within the timeout
UNDECIDED = "undecided"


def invalid_combinations(cfg) -> List[Tuple[str, Dict[str, str]]]:
    long_user = "very_long_user_name_".ljust(cfg.max_user_length + 1, "x")
    long_database = "very_long_database_name_".ljust(cfg.max_database_length + 1, "x")

    def app(user="user", password="pass", database="db", **extra):
        env = {"MYSQL_USER": user, "MYSQL_PASSWORD": password, "MYSQL_DATABASE": database}
        env.update(extra)
        return env

    return [
        ("no variables", {}),
        ("missing database", {"MYSQL_USER": "user", "MYSQL_PASSWORD": "pass"}),
        ("missing password", {"MYSQL_USER": "user", "MYSQL_DATABASE": "db"}),
        ("missing user", {"MYSQL_PASSWORD": "pass", "MYSQL_DATABASE": "db"}),
        ("empty user", app(user="")),
        ("user named root", app(user="root", MYSQL_ROOT_PASSWORD="pass")),
        ("space in user", app(user="foo bar")),
        ("space in database", app(database="foo bar")),
        ("user too long", app(user=long_user)),
        ("database too long", app(database=long_database)),
        ("quote in password", app(password='"')),
        ("quote in root password", app(MYSQL_ROOT_PASSWORD='"')),
    ]


def probe_credential(env) -> Tuple[Optional[Credential], Optional[str]]:
    if env.get("MYSQL_USER") and env.get("MYSQL_PASSWORD") is not None:
        return Credential(env["MYSQL_USER"], env["MYSQL_PASSWORD"]), env.get("MYSQL_DATABASE")
    if env.get("MYSQL_ROOT_PASSWORD"):
        return Credential.root(env["MYSQL_ROOT_PASSWORD"]), None
    return None, None


class InvalidCombinationRejection(Scenario):
    name = "invalid-combination-rejection"
    description = "malformed parameter sets must make sandbox creation fail fast"

    def classify(self, scope, env) -> str:
        try:
            sandbox = scope.create(Role.adhoc, env)
        except CreationError as e:
            self.logger.info(f"creation failed as expected: {e}")
            return REJECTED

        credential, database = probe_credential(env)
        probe = None
        if credential:
            probe = readiness.select_one_probe(self.manager, self.client, credential, database)

        def observe():
            code = self.manager.exited(sandbox)
            if code is not None:
                if checks.exited_with_error(code):
                    return REJECTED
                self.logger.warning(f"{sandbox.name} exited with code 0")
                return UNDECIDED
            if probe:
                try:
                    if probe(sandbox):
                        return ACCEPTED
                except NotRunningError:
                    # exited between the two checks, seen on the next attempt
                    pass
            return None

        interval = self.cfg.rejection_poll_interval
        attempts = max(1, math.ceil(self.cfg.rejection_timeout / interval)) if interval > 0 else 1
        try:
            return readiness.retry(observe, attempts, interval, timeout=self.cfg.rejection_timeout,
                                   description=f"{sandbox.name} to exit")
        except WaitTimeoutError:
            self.manager.kill(sandbox)
            return UNDECIDED

    def run(self, scope):
        failures = []
        for label, env in invalid_combinations(self.cfg):
            with self.case(label) as case_scope:
                verdict = self.classify(case_scope, env)
                if verdict == ACCEPTED:
                    failures.append(f"{label}: sandbox started and accepted connections")
                    self.keep_logs(case_scope, label)
                elif verdict == UNDECIDED:
                    if self.cfg.undecided_is_rejection:
                        self.logger.warning(f"{label}: neither exited nor became ready within "
                                            f"{self.cfg.rejection_timeout}s, counted as rejected")
                    else:
                        failures.append(f"{label}: neither exited nor became ready within "
                                        f"{self.cfg.rejection_timeout}s")
                        self.keep_logs(case_scope, label)
                else:
                    self.logger.info(f"{label}: rejected")

        if failures:
            raise AssertionFailure("Invalid configurations were not rejected:\n    " + "\n    ".join(failures))
