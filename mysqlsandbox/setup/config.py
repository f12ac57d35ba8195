# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import os
import shutil
import tempfile
from typing import List, Optional
import yaml
from mysqlsandbox.setup import defaults
from mysqlsandbox.utils import auxutil


class Config:
    # image
    image = defaults.IMAGE_NAME

    # container runtime
    runtime_path = defaults.RUNTIME_PATH
    container_prefix = defaults.CONTAINER_PREFIX
    stop_timeout = defaults.STOP_TIMEOUT
    start_timeout = defaults.START_TIMEOUT

    # client stub
    client_mode = defaults.CLIENT_MODE
    query_timeout = defaults.QUERY_TIMEOUT

    # readiness
    ready_attempts = defaults.READY_ATTEMPTS
    ready_interval = defaults.READY_INTERVAL

    # replication
    convergence_attempts = defaults.CONVERGENCE_ATTEMPTS
    convergence_interval = defaults.CONVERGENCE_INTERVAL
    replica_status_statement = defaults.REPLICA_STATUS_STATEMENT

    # invalid input rejection
    rejection_timeout = defaults.REJECTION_TIMEOUT
    rejection_poll_interval = defaults.REJECTION_POLL_INTERVAL
    undecided_is_rejection = defaults.UNDECIDED_IS_REJECTION
    max_user_length = defaults.MAX_USER_LENGTH
    max_database_length = defaults.MAX_DATABASE_LENGTH

    # image layout
    data_dir = defaults.DATA_DIR
    rendered_config_paths: List[str] = defaults.RENDERED_CONFIG_PATHS

    # diagnostics
    log_tail_lines = defaults.LOG_TAIL_LINES
    work_dir: Optional[str] = defaults.WORK_DIR
    work_dir_is_tmp = False
    summary_path: Optional[str] = defaults.SUMMARY_PATH

    # filled by commit()
    run_id: Optional[str] = None
    cid_dir: Optional[str] = None

    def __del__(self):
        if self.work_dir_is_tmp and self.work_dir:
            shutil.rmtree(self.work_dir, ignore_errors=True)

    def load_file(self, path: str) -> None:
        """
        Apply overrides from a YAML file with keys named like the
        attributes of this class, e.g.:

            image: quay.io/sclorg/mysql-84-c9s
            ready_attempts: 20
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path}: expected a mapping of options")

        for key, value in data.items():
            if key.startswith("_") or key in ("run_id", "cid_dir", "work_dir_is_tmp") or not hasattr(Config, key):
                raise ValueError(f"{path}: unknown option {key}")
            if callable(getattr(Config, key)):
                raise ValueError(f"{path}: unknown option {key}")
            setattr(self, key, value)

    def commit(self) -> None:
        if self.client_mode not in ("exec", "connector"):
            raise ValueError(f"Invalid client mode {self.client_mode}")

        if not self.run_id:
            self.run_id = auxutil.random_string(8)

        if not self.work_dir:
            self.work_dir = tempfile.mkdtemp(prefix="mysql-sandbox-")
            self.work_dir_is_tmp = True

        if not self.cid_dir:
            self.cid_dir = os.path.join(self.work_dir, "cid", self.run_id)
        os.makedirs(self.cid_dir, exist_ok=True)

    def __str__(self):
        return f"""
Image                                : {self.image}
Container runtime                    : {self.runtime_path}
Client mode                          : {self.client_mode}
Run id                               : {self.run_id}
Work dir / cid dir                   : {self.work_dir} / {self.cid_dir}
Readiness attempts x interval        : {self.ready_attempts} x {self.ready_interval}s
Convergence attempts x interval      : {self.convergence_attempts} x {self.convergence_interval}s
Replica status statement             : {self.replica_status_statement}
Rejection timeout                    : {self.rejection_timeout}s
Undecided rejection counts as reject : {self.undecided_is_rejection}
Rendered config paths                : {' '.join(self.rendered_config_paths)}"""


# harness configuration
g_cfg = Config()
