# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# SQL client stubs used against sandboxes

import logging
import subprocess
from enum import Enum
from typing import List, Optional
import mysql.connector
from .dutil import decode_stream

logger = logging.getLogger("mutil")


class Scope(Enum):
    root = "root"
    app = "app"


class Credential:
    def __init__(self, username: str, password: Optional[str], scope: Scope = Scope.app):
        self.username = username
        self.password = password
        self.scope = scope

    @classmethod
    def root(cls, password: Optional[str]) -> "Credential":
        return cls("root", password, Scope.root)

    def __repr__(self):
        # never print the secret
        return f"Credential({self.username!r}, scope={self.scope.value}, password={'set' if self.password else 'unset'})"


class QueryResult:
    def __init__(self, returncode: int, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def rows(self) -> List[List[str]]:
        """
        Rows of batch mode output (tab separated, no column names). An empty
        line is a row holding one empty string.
        """
        lines = self.stdout.split("\n")
        if lines[-1] == "":
            lines.pop()
        return [l.split("\t") for l in lines]

    def __repr__(self):
        return f"QueryResult(rc={self.returncode}, stdout={self.stdout.strip()!r}, stderr={self.stderr.strip()!r})"


class ExecClient:
    """
    Runs the mysql command line client in a throwaway container of the
    sandbox image.
    """

    def __init__(self, runtime, image, labels=None, timeout=30):
        self.runtime = runtime
        self.image = image
        self.labels = labels
        self.timeout = timeout

    def query(self, address, credential: Credential, sql, database=None) -> QueryResult:
        cmd = ["mysql", f"--host={address}", f"--user={credential.username}",
               "--batch", "--skip-column-names", "--connect-timeout=10"]
        if credential.password is not None:
            cmd.append(f"--password={credential.password}")
        cmd += ["-e", sql]
        if database:
            cmd.append(database)

        logger.debug(f"{credential.username}@{address}: {sql}")
        try:
            r = self.runtime.run(self.image, command=cmd, detach=False, remove=True,
                                 labels=self.labels, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired:
            logger.error(f"{credential.username}@{address}: query timed out after {self.timeout}s")
            return QueryResult(-1, "", f"timed out after {self.timeout}s")

        result = QueryResult(r.returncode, decode_stream(r.stdout), decode_stream(r.stderr))
        logger.debug(f"{credential.username}@{address}: {result}")
        return result


class MySQLDbResult:
    def __init__(self, cursor):
        self._cursor = cursor

    def fetch_all(self):
        if not self._cursor.with_rows:
            self._cursor.close()
            return []
        result = self._cursor.fetchall()
        self._cursor.close()
        return result


class MySQLDbSession:
    def __init__(self, user, password, host, port, database, **kwargs):
        self._session = mysql.connector.connect(user=user, password=password,
                            host=host, port=port, database=database,
                            **kwargs)

    def close(self):
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def query_sql(self, query, params=None):
        cursor = self._session.cursor()
        cursor.execute(query, params)
        return MySQLDbResult(cursor)


class ConnectorClient:
    """
    Connects to the sandbox address directly with mysql-connector-python.
    Output is rendered the way the command line client does in batch mode.
    """

    def __init__(self, port=3306, timeout=30):
        self.port = port
        self.timeout = timeout

    def query(self, address, credential: Credential, sql, database=None) -> QueryResult:
        logger.debug(f"{credential.username}@{address}: {sql}")
        try:
            with MySQLDbSession(credential.username, credential.password or "", address, self.port,
                                database, connection_timeout=self.timeout, autocommit=True) as session:
                rows = session.query_sql(sql).fetch_all()
        except mysql.connector.Error as e:
            logger.debug(f"{credential.username}@{address}: {e}")
            return QueryResult(e.errno or 1, "", str(e))

        stdout = "".join("\t".join("NULL" if c is None else str(c) for c in row) + "\n" for row in rows)
        return QueryResult(0, stdout, "")


def make_client(cfg, runtime, labels=None):
    if cfg.client_mode == "connector":
        return ConnectorClient(timeout=cfg.query_timeout)
    return ExecClient(runtime, cfg.image, labels=labels, timeout=cfg.query_timeout)
