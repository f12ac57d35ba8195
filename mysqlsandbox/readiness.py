# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# Bounded polling

import logging
import time
from mysqlsandbox.errors import CreationError, WaitTimeoutError

logger = logging.getLogger("readiness")


def retry(fn, attempts, interval, *, args=tuple(), check=None, checkabort=None, description=None, timeout=None):
    """
    Call fn(*args) up to `attempts` times, sleeping `interval` seconds
    between attempts, until it returns a truthy value (or a value accepted by
    `check`). That value is returned.

    checkabort() is called before every attempt and may raise to give up
    early. With `timeout`, no attempt is started once that many seconds have
    passed. Raises WaitTimeoutError once the attempts or the time are exhausted.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be positive, got {attempts}")

    description = description or getattr(fn, "__name__", "condition")
    deadline = time.monotonic() + timeout if timeout is not None else None

    r = None
    i = 0
    for i in range(attempts):
        if checkabort:
            checkabort()
        r = fn(*args)
        logger.debug(f"{description}: attempt {i+1}/{attempts} returned {r}")
        if check:
            if check(r):
                return r
        elif r:
            return r
        if i + 1 < attempts:
            delay = interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                delay = min(interval, remaining)
            time.sleep(delay)
        if deadline is not None and time.monotonic() >= deadline:
            break

    logger.error(f"Waited condition never became true: {description}. Last value was {r}")
    raise WaitTimeoutError(f"Timeout waiting for {description} after {i+1} attempts (last value: {r})",
                           last_value=r)


def select_one_probe(manager, client, credential, database=None):
    """
    Probe that succeeds once the sandbox answers SELECT 1 for the credential.
    """
    def probe(sandbox):
        address = manager.resolve_address(sandbox)
        return client.query(address, credential, "SELECT 1", database).ok

    probe.__name__ = f"SELECT 1 as {credential.username}"
    return probe


def wait_until_ready(manager, sandbox, probe, max_attempts, interval) -> None:
    logger.info(f"Waiting for {sandbox.name} to become ready...")

    def checkabort():
        code = manager.exited(sandbox)
        if code is not None:
            raise CreationError(f"Sandbox {sandbox.name} exited with code {code} while waiting for readiness",
                                logs=manager.logs(sandbox, manager.cfg.log_tail_lines), returncode=code)

    try:
        retry(probe, max_attempts, interval, args=(sandbox,), checkabort=checkabort,
              description=f"{sandbox.name} readiness")
    except WaitTimeoutError as e:
        e.logs = manager.logs(sandbox, manager.cfg.log_tail_lines)
        raise

    logger.info(f"Sandbox {sandbox.name} is ready")
