# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import Optional


class HarnessError(Exception):
    def __init__(self, msg: str, *, logs: Optional[str] = None, returncode: Optional[int] = None):
        super().__init__(msg)
        self.logs = logs
        self.returncode = returncode


class CreationError(HarnessError):
    """Sandbox did not reach the Running state"""


class NotRunningError(HarnessError):
    """Address or state requested from a sandbox that never ran"""


class WaitTimeoutError(HarnessError):
    def __init__(self, msg: str, *, last_value=None, logs: Optional[str] = None):
        super().__init__(msg, logs=logs)
        self.last_value = last_value


class AssertionFailure(HarnessError, AssertionError):
    pass
