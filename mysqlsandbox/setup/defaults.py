# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import os

# image
IMAGE_NAME = os.getenv(
    "IMAGE_NAME", default="quay.io/sclorg/mysql-80-c9s")

# container runtime
RUNTIME_PATH = os.getenv(
    "MYSQL_SANDBOX_RUNTIME", default="docker")

CONTAINER_PREFIX = os.getenv(
    "MYSQL_SANDBOX_PREFIX", default="mysql-sandbox")

STOP_TIMEOUT = int(os.getenv(
    "MYSQL_SANDBOX_STOP_TIMEOUT", default="10"))

# covers image pulls
START_TIMEOUT = int(os.getenv(
    "MYSQL_SANDBOX_START_TIMEOUT", default="600"))

# client stub: "exec" runs the mysql client from the image, "connector"
# connects directly with mysql-connector-python
CLIENT_MODE = os.getenv(
    "MYSQL_SANDBOX_CLIENT", default="exec")

QUERY_TIMEOUT = int(os.getenv(
    "MYSQL_SANDBOX_QUERY_TIMEOUT", default="30"))

# readiness
READY_ATTEMPTS = int(os.getenv(
    "MYSQL_SANDBOX_READY_ATTEMPTS", default="10"))

READY_INTERVAL = float(os.getenv(
    "MYSQL_SANDBOX_READY_INTERVAL", default="5"))

# replication
CONVERGENCE_ATTEMPTS = int(os.getenv(
    "MYSQL_SANDBOX_CONVERGENCE_ATTEMPTS", default="20"))

CONVERGENCE_INTERVAL = float(os.getenv(
    "MYSQL_SANDBOX_CONVERGENCE_INTERVAL", default="3"))

REPLICA_STATUS_STATEMENT = os.getenv(
    "MYSQL_SANDBOX_REPLICA_STATUS", default="SHOW SLAVE HOSTS")

# invalid input rejection
REJECTION_TIMEOUT = float(os.getenv(
    "MYSQL_SANDBOX_REJECTION_TIMEOUT", default="60"))

REJECTION_POLL_INTERVAL = 1.0

UNDECIDED_IS_REJECTION = os.getenv(
    "MYSQL_SANDBOX_STRICT_REJECTION", default="0") not in ("1", "true", "on")

MAX_USER_LENGTH = 32
MAX_DATABASE_LENGTH = 64

# image layout
DATA_DIR = "/var/lib/mysql/data"

RENDERED_CONFIG_PATHS = ["/etc/my.cnf", "/etc/my.cnf.d/*"]

# diagnostics
LOG_TAIL_LINES = int(os.getenv(
    "MYSQL_SANDBOX_LOG_TAIL", default="50"))

WORK_DIR = os.getenv(
    "MYSQL_SANDBOX_WORK_DIR", default=None)

SUMMARY_PATH = os.getenv(
    "MYSQL_SANDBOX_SUMMARY", default=None)
