# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# Pass/fail predicates over command output and exit status

import re
from typing import Optional
from mysqlsandbox.errors import AssertionFailure
from mysqlsandbox.utils.mutil import Credential, QueryResult


class Verdict:
    def __init__(self, passed: bool, explanation: str = "", result: Optional[QueryResult] = None):
        self.passed = passed
        self.explanation = explanation
        self.result = result

    @classmethod
    def ok(cls, result=None) -> "Verdict":
        return cls(True, "", result)

    @classmethod
    def fail(cls, explanation, result=None) -> "Verdict":
        return cls(False, explanation, result)

    def __bool__(self):
        return self.passed

    def expect(self) -> "Verdict":
        if not self.passed:
            raise AssertionFailure(self.explanation)
        return self

    def __repr__(self):
        if self.passed:
            return "Verdict(PASS)"
        return f"Verdict(FAIL: {self.explanation})"


def login_matches(client, address, credential: Credential, expect_success: bool, database=None) -> Verdict:
    r = client.query(address, credential, "SELECT 1", database)
    if r.ok == expect_success:
        return Verdict.ok(r)
    if expect_success:
        return Verdict.fail(f"login as {credential.username}@{address} was rejected: {r.stderr.strip()}", r)
    return Verdict.fail(f"login as {credential.username}@{address} with a wrong or missing password was accepted", r)


def query_succeeds(client, address, credential: Credential, sql, database=None) -> Verdict:
    r = client.query(address, credential, sql, database)
    if r.ok:
        return Verdict.ok(r)
    return Verdict.fail(f"'{sql}' as {credential.username} failed (rc={r.returncode}): {r.stderr.strip()}", r)


def row_count_equals(result: QueryResult, expected: int) -> Verdict:
    if not result.ok:
        return Verdict.fail(f"query failed (rc={result.returncode}): {result.stderr.strip()}", result)
    count = len(result.rows())
    if count != expected:
        return Verdict.fail(f"expected {expected} rows, got {count}: {result.rows()}", result)
    return Verdict.ok(result)


def replica_registered(status: QueryResult, replica_address) -> Verdict:
    """
    Primary's replica status output (e.g. SHOW SLAVE HOSTS) lists the replica.
    """
    if not status.ok:
        return Verdict.fail(f"replica status query failed: {status.stderr.strip()}", status)
    for row in status.rows():
        if replica_address in [field.strip() for field in row]:
            return Verdict.ok(status)
    return Verdict.fail(f"replica {replica_address} not registered in {status.rows()}", status)


def _option_name(name: str) -> str:
    # mysqld treats - and _ the same in option names
    return name.strip().replace("-", "_")


def setting_rendered(rendered: str, key, value) -> Verdict:
    """
    The rendered configuration holds exactly one `key = value` line.
    """
    key = _option_name(key)
    matches = 0
    seen = []
    for line in rendered.split("\n"):
        m = re.match(r"^\s*([A-Za-z0-9_.-]+)\s*=\s*(.*?)\s*$", line)
        if not m or _option_name(m.group(1)) != key:
            continue
        seen.append(m.group(2))
        if m.group(2) == str(value):
            matches += 1

    if matches == 1:
        return Verdict.ok()
    if matches == 0:
        return Verdict.fail(f"'{key} = {value}' not found in rendered configuration (values seen: {seen})")
    return Verdict.fail(f"'{key} = {value}' rendered {matches} times")


def exited_with_error(returncode: Optional[int]) -> Verdict:
    if returncode is None:
        return Verdict.fail("process is still running")
    if returncode == 0:
        return Verdict.fail("process exited successfully")
    return Verdict.ok()
