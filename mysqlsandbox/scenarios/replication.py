# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from mysqlsandbox import checks, readiness
from mysqlsandbox.sandbox import Role
from mysqlsandbox.utils import auxutil
from mysqlsandbox.utils.mutil import Credential
from .base import Phase, Scenario

DATABASE = "db"
CHECK_TABLE = f"{DATABASE}.replication_check"


class ReplicationConvergence(Scenario):
    name = "replication"
    description = "a replica registers with its primary and receives its writes"

    root = Credential.root("root")
    user = Credential("user", "foo")
    replication_user = Credential("master", "master")

    def common_env(self) -> dict:
        return {
            "MYSQL_MASTER_USER": self.replication_user.username,
            "MYSQL_MASTER_PASSWORD": self.replication_user.password,
            "MYSQL_ROOT_PASSWORD": self.root.password,
            "MYSQL_USER": self.user.username,
            "MYSQL_PASSWORD": self.user.password,
            "MYSQL_DATABASE": DATABASE,
        }

    def run(self, scope):
        primary = self.start(scope, Role.primary, self.common_env(), command=["run-mysqld-master"])
        primary_address = self.wait_ready(primary, self.root)

        replica_env = dict(self.common_env(), MYSQL_MASTER_SERVICE_NAME=primary_address)
        replica = self.start(scope, Role.replica, replica_env, command=["run-mysqld-slave"])
        replica_address = self.wait_ready(replica, self.root)

        self.wait_converged(primary_address, replica_address)
        self.check_data_replicated(primary_address, replica_address)
        self.advance(Phase.ASSERTED)

    def wait_converged(self, primary_address, replica_address):
        def replica_listed():
            status = self.client.query(primary_address, self.root, self.cfg.replica_status_statement)
            return checks.replica_registered(status, replica_address)

        readiness.retry(replica_listed, self.cfg.convergence_attempts, self.cfg.convergence_interval,
                        description=f"replica {replica_address} to register with {primary_address}")
        self.logger.info(f"Replica {replica_address} registered with primary {primary_address}")

    def check_data_replicated(self, primary_address, replica_address):
        token = auxutil.random_string(12)
        for sql in (f"CREATE TABLE {CHECK_TABLE} (id INT PRIMARY KEY, value VARCHAR(32))",
                    f"INSERT INTO {CHECK_TABLE} VALUES (1, '{token}')"):
            checks.query_succeeds(self.client, primary_address, self.root, sql).expect()

        def row_visible():
            r = self.client.query(replica_address, self.root, f"SELECT value FROM {CHECK_TABLE} WHERE id = 1")
            return r.ok and [token] in r.rows()

        readiness.retry(row_visible, self.cfg.convergence_attempts, self.cfg.convergence_interval,
                        description=f"write on {primary_address} to reach {replica_address}")
        self.logger.info(f"Write replicated from {primary_address} to {replica_address}")
