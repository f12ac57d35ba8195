# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import re
import subprocess
import pytest
from mysqlsandbox.sandbox import SandboxManager
from mysqlsandbox.scenarios.base import HarnessContext
from mysqlsandbox.setup.config import Config
from mysqlsandbox.utils.mutil import QueryResult

NAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")

# what the image renders when no tuning variable is set
DEFAULT_RENDERED = {
    "lower_case_table_names": "0",
    "general_log": "0",
    "max_connections": "151",
    "ft_min_word_len": "4",
    "ft_max_word_len": "20",
    "max_allowed_packet": "200M",
    "table_open_cache": "400",
    "sort_buffer_size": "256K",
    "key_buffer_size": "32M",
    "read_buffer_size": "8M",
    "innodb_buffer_pool_size": "32M",
    "innodb_log_file_size": "8M",
    "innodb_log_buffer_size": "8M",
    "innodb_use_native_aio": "1",
}

ENV_SETTINGS = {
    "MYSQL_LOWER_CASE_TABLE_NAMES": "lower_case_table_names",
    "MYSQL_LOG_QUERIES_ENABLED": "general_log",
    "MYSQL_MAX_CONNECTIONS": "max_connections",
    "MYSQL_FT_MIN_WORD_LEN": "ft_min_word_len",
    "MYSQL_FT_MAX_WORD_LEN": "ft_max_word_len",
    "MYSQL_MAX_ALLOWED_PACKET": "max_allowed_packet",
    "MYSQL_TABLE_OPEN_CACHE": "table_open_cache",
    "MYSQL_SORT_BUFFER_SIZE": "sort_buffer_size",
    "MYSQL_KEY_BUFFER_SIZE": "key_buffer_size",
    "MYSQL_READ_BUFFER_SIZE": "read_buffer_size",
    "MYSQL_INNODB_BUFFER_POOL_SIZE": "innodb_buffer_pool_size",
    "MYSQL_INNODB_LOG_FILE_SIZE": "innodb_log_file_size",
    "MYSQL_INNODB_LOG_BUFFER_SIZE": "innodb_log_buffer_size",
    "MYSQL_AIO": "innodb_use_native_aio",
}


def env_error(env):
    """
    Mimics the entrypoint validation of the image. Returns the error the
    container would print before exiting, None for a valid environment.
    """
    user = env.get("MYSQL_USER")
    password = env.get("MYSQL_PASSWORD")
    database = env.get("MYSQL_DATABASE")
    root_password = env.get("MYSQL_ROOT_PASSWORD")

    if user is None and password is None and database is None:
        if not root_password:
            return "You must specify the following environment variables: MYSQL_USER MYSQL_PASSWORD MYSQL_DATABASE"
    else:
        if not (user and password and database):
            return "MYSQL_USER, MYSQL_PASSWORD and MYSQL_DATABASE must be set together"
        if user == "root":
            return "MYSQL_USER cannot be 'root'"
        if not NAME_RE.match(user) or len(user) > 32:
            return "Invalid MySQL username"
        if not NAME_RE.match(database) or len(database) > 64:
            return "Invalid database name"
        if '"' in password:
            return "Invalid password"
    if root_password is not None and '"' in root_password:
        return "Invalid root password"
    return None


class FakeContainer:
    def __init__(self, cid, name, env, args, command, labels, volumes, ip):
        self.cid = cid
        self.name = name
        self.env = env
        self.args = args
        self.command = command
        self.labels = labels
        self.volumes = volumes
        self.ip = ip
        self.running = True
        self.exit_code = 0
        # exit with pending_exit after this many state inspections
        self.exit_after = None
        self.pending_exit = 1
        self.log = [f"=> starting {name}"]


class FakeRuntime:
    """
    In-memory stand-in for DockerRuntime.
    """

    def __init__(self):
        self.containers = {}
        self.volumes = {}
        self.validate = True
        self.refuse_run = False
        self.on_start = None
        self.fail_rm = set()
        self.broken_settings = set()
        self.duplicate_settings = set()
        self.started = []
        self.stopped = []
        self.killed = []
        self.removed = []
        self.foreground_runs = []
        self._seq = 0

    def _missing(self, cmd, cid):
        return subprocess.CalledProcessError(1, ["docker", cmd, cid], b"", f"Error: No such container: {cid}".encode())

    def run(self, image, env=None, args=None, command=None, *, detach=True, remove=False, name=None,
            cidfile=None, labels=None, volumes=None, timeout=None, check=True):
        if not detach:
            self.foreground_runs.append((image, command, labels))
            return subprocess.CompletedProcess([image], 0, b"", b"")
        if self.refuse_run:
            return subprocess.CompletedProcess([image], 125, b"", b"docker: invalid reference format.")

        full_env = dict(env or {})
        args = list(args or [])
        for flag, value in zip(args, args[1:]):
            if flag == "-e":
                k, _, v = value.partition("=")
                full_env[k] = v

        self._seq += 1
        cid = f"{self._seq:064x}"
        c = FakeContainer(cid, name, full_env, args, list(command or []), dict(labels or {}),
                          dict(volumes or {}), f"10.88.0.{self._seq + 1}")
        self.containers[cid] = c
        self.started.append(c)
        if cidfile:
            with open(cidfile, "w") as f:
                f.write(cid)

        error = env_error(full_env) if self.validate else None
        if error:
            c.running = False
            c.exit_code = 1
            c.log.append(error)
        if self.on_start:
            self.on_start(c)
        return subprocess.CompletedProcess([image], 0, cid.encode(), b"")

    def get_state(self, cid):
        c = self.containers.get(cid)
        if not c:
            raise self._missing("inspect", cid)
        if c.running and c.exit_after is not None:
            c.exit_after -= 1
            if c.exit_after <= 0:
                c.running = False
                c.exit_code = c.pending_exit
                c.log.append("exiting")
        return {"Running": c.running, "ExitCode": c.exit_code}

    def get_ip(self, cid):
        c = self.containers.get(cid)
        if not c:
            raise self._missing("inspect", cid)
        return c.ip if c.running else None

    def logs(self, cid, tail=None):
        c = self.containers[cid]
        lines = c.log[-tail:] if tail else c.log
        return "\n".join(lines) + "\n"

    def stop(self, cid, timeout=10):
        c = self.containers.get(cid)
        if c and c.running:
            c.running = False
            c.exit_code = 0
        self.stopped.append(cid)

    def kill(self, cid):
        c = self.containers.get(cid)
        if c and c.running:
            c.running = False
            c.exit_code = 137
        self.killed.append(cid)

    def rm(self, cid):
        if cid in self.fail_rm:
            raise subprocess.CalledProcessError(1, ["docker", "rm", cid], b"", b"device or resource busy")
        self.containers.pop(cid, None)
        self.removed.append(cid)

    def render_config(self, env):
        settings = dict(DEFAULT_RENDERED)
        for variable, setting in ENV_SETTINGS.items():
            if variable in env:
                settings[setting] = env[variable]
        lines = ["[mysqld]"]
        for key, value in settings.items():
            if key in self.broken_settings:
                continue
            lines.append(f"{key} = {value}")
            if key in self.duplicate_settings:
                lines.append(f"{key} = {value}")
        return "\n".join(lines) + "\n"

    def exec(self, cid, cmd, timeout=None, check=True):
        c = self.containers.get(cid)
        if not c or not c.running:
            raise subprocess.CalledProcessError(1, ["docker", "exec", cid] + cmd)
        return subprocess.CompletedProcess(cmd, 0, self.render_config(c.env).encode(), b"")

    def create_volume(self, name, labels=None):
        self.volumes[name] = dict(labels or {})

    def rm_volume(self, name):
        self.volumes.pop(name, None)

    def ls(self, label):
        key, _, value = label.partition("=")
        return [c.cid for c in self.containers.values() if c.labels.get(key) == value]


class FakeMySQL:
    """
    Client stub answering for the fake containers. Credentials are checked
    against the container environment, replicas read their primary's tables.
    """

    def __init__(self, runtime):
        self.runtime = runtime
        self.calls = []
        self.refuse_all = False
        self.accept_any_root = False
        self.replication_works = True
        self.tables = {}

    def container_at(self, address):
        for c in self.runtime.containers.values():
            if c.ip == address and c.running:
                return c
        return None

    def authenticates(self, c, credential):
        if credential.username == "root":
            if self.accept_any_root:
                return True
            root_password = c.env.get("MYSQL_ROOT_PASSWORD")
            return bool(root_password) and credential.password == root_password
        return credential.username == c.env.get("MYSQL_USER") and credential.password == c.env.get("MYSQL_PASSWORD")

    def replicas_of(self, c):
        if not self.replication_works:
            return []
        return [r for r in self.runtime.containers.values()
                if r.running and r.env.get("MYSQL_MASTER_SERVICE_NAME") == c.ip and "run-mysqld-slave" in r.command]

    def storage(self, c):
        primary = c
        if self.replication_works and c.env.get("MYSQL_MASTER_SERVICE_NAME"):
            primary = self.container_at(c.env["MYSQL_MASTER_SERVICE_NAME"]) or c
        return self.tables.setdefault(primary.cid, {})

    def query(self, address, credential, sql, database=None):
        self.calls.append((address, credential.username, sql, database))
        c = self.container_at(address)
        if c is None or self.refuse_all:
            return QueryResult(1, "", f"ERROR 2003 (HY000): Can't connect to MySQL server on '{address}:3306'")
        if not self.authenticates(c, credential):
            return QueryResult(1, "", f"ERROR 1045 (28000): Access denied for user '{credential.username}'")
        return self.execute(c, sql.strip().rstrip(";"))

    def execute(self, c, sql):
        if sql == "SELECT 1":
            return QueryResult(0, "1\n")
        if sql.upper() == "SHOW SLAVE HOSTS":
            rows = [f"{i + 1}\t{r.ip}\t3306\t1\t{r.cid[:8]}" for i, r in enumerate(self.replicas_of(c))]
            return QueryResult(0, "".join(row + "\n" for row in rows))

        tables = self.storage(c)
        m = re.match(r"CREATE TABLE (\S+)", sql)
        if m:
            tables[m.group(1)] = []
            return QueryResult(0)
        m = re.match(r"INSERT INTO (\S+) VALUES", sql)
        if m and m.group(1) in tables:
            tables[m.group(1)].append(re.findall(r"'([^']*)'", sql))
            return QueryResult(0)
        m = re.match(r"SELECT .+ FROM (\S+)", sql)
        if m and m.group(1) in tables:
            return QueryResult(0, "".join("\t".join(row) + "\n" for row in tables[m.group(1)]))
        m = re.match(r"DROP TABLE (\S+)", sql)
        if m and m.group(1) in tables:
            del tables[m.group(1)]
            return QueryResult(0)
        return QueryResult(1, "", f"ERROR 1146 (42S02): cannot execute '{sql}'")


@pytest.fixture
def cfg(tmp_path) -> Config:
    c = Config()
    c.work_dir = str(tmp_path)
    c.ready_attempts = 3
    c.ready_interval = 0
    c.convergence_attempts = 3
    c.convergence_interval = 0
    c.rejection_timeout = 0.01
    c.rejection_poll_interval = 0.002
    c.log_tail_lines = 10
    c.commit()
    return c


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def manager(runtime, cfg):
    with SandboxManager(runtime, cfg) as m:
        yield m


@pytest.fixture
def client(runtime) -> FakeMySQL:
    return FakeMySQL(runtime)


@pytest.fixture
def ctx(cfg, manager, client) -> HarnessContext:
    return HarnessContext(cfg, manager, client)
