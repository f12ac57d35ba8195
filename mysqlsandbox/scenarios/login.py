# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import List, Tuple
from mysqlsandbox import checks
from mysqlsandbox.errors import AssertionFailure
from mysqlsandbox.sandbox import Role
from mysqlsandbox.utils.mutil import Credential
from .base import Phase, Scenario

LOGIN_VARIANTS = [
    ("app user", {"MYSQL_USER": "user", "MYSQL_PASSWORD": "pass", "MYSQL_DATABASE": "db"}),
    ("app user and root", {"MYSQL_USER": "user", "MYSQL_PASSWORD": "pass", "MYSQL_DATABASE": "db",
                           "MYSQL_ROOT_PASSWORD": "r00t"}),
    ("root only", {"MYSQL_ROOT_PASSWORD": "r00t"}),
]

# (statement, expected row count or None)
SQL_SEQUENCE = [
    ("SELECT 1;", None),
    ("CREATE TABLE tbl (col1 VARCHAR(20), col2 VARCHAR(20));", None),
    ("INSERT INTO tbl VALUES ('foo1', 'bar1');", None),
    ("INSERT INTO tbl VALUES ('foo2', 'bar2');", None),
    ("INSERT INTO tbl VALUES ('foo3', 'bar3');", None),
    ("SELECT * FROM tbl;", 3),
    ("DROP TABLE tbl;", None),
]


def login_cases(env) -> List[Tuple[Credential, bool]]:
    """
    (credential, expected to authenticate) pairs for a sandbox environment.
    """
    cases = []
    if env.get("MYSQL_USER"):
        user, password = env["MYSQL_USER"], env["MYSQL_PASSWORD"]
        cases.append((Credential(user, password), True))
        cases.append((Credential(user, password + "1"), False))

    root_password = env.get("MYSQL_ROOT_PASSWORD")
    if root_password:
        cases.append((Credential.root(root_password), True))
        cases.append((Credential.root(root_password + "1"), False))
    else:
        # remote root access exists only with a root password
        cases.append((Credential.root("foo"), False))
        cases.append((Credential.root(""), False))
        cases.append((Credential.root(None), False))
    return cases


def probe_credential(env) -> Credential:
    if env.get("MYSQL_USER"):
        return Credential(env["MYSQL_USER"], env["MYSQL_PASSWORD"])
    return Credential.root(env["MYSQL_ROOT_PASSWORD"])


class LoginAuthorization(Scenario):
    name = "login-authorization"
    description = "authentication outcomes match the configured credentials"

    def run_sql_sequence(self, address, credential, database) -> List[str]:
        for sql, rows in SQL_SEQUENCE:
            verdict = checks.query_succeeds(self.client, address, credential, sql, database)
            if verdict and rows is not None:
                verdict = checks.row_count_equals(verdict.result, rows)
            if not verdict:
                # later statements depend on this one
                return [f"{sql} {verdict.explanation}"]
        return []

    def run(self, scope):
        failures = []
        for label, env in LOGIN_VARIANTS:
            with self.case(label) as case_scope:
                database = env.get("MYSQL_DATABASE")
                sandbox = self.start(case_scope, Role.adhoc, env)
                address = self.wait_ready(sandbox, probe_credential(env), database)

                case_failures = []
                for credential, expected in login_cases(env):
                    verdict = checks.login_matches(self.client, address, credential, expected, database)
                    if not verdict:
                        case_failures.append(verdict.explanation)

                if env.get("MYSQL_USER"):
                    case_failures += self.run_sql_sequence(address, probe_credential(env), database)

                if case_failures:
                    failures += [f"{label}: {f}" for f in case_failures]
                    self.keep_logs(case_scope, label)
                else:
                    self.logger.info(f"{label}: all logins behaved as expected")

        self.advance(Phase.ASSERTED)
        if failures:
            raise AssertionFailure("Login matrix mismatch:\n    " + "\n    ".join(failures))
