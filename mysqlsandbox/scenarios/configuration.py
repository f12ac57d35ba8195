# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from typing import NamedTuple, Optional
from mysqlsandbox import checks
from mysqlsandbox.errors import AssertionFailure
from mysqlsandbox.sandbox import Role
from mysqlsandbox.utils.mutil import Credential
from .base import Phase, Scenario

USER = Credential("user", "pass")
DATABASE = "db"

BASE_ENV = {"MYSQL_USER": USER.username, "MYSQL_PASSWORD": USER.password, "MYSQL_DATABASE": DATABASE}


class ConfigCase(NamedTuple):
    variable: Optional[str]
    value: Optional[str]
    setting: str
    expected: str
    # how many times the variable is passed to the runtime
    repeat: int = 1


CONFIG_CASES = [
    ConfigCase("MYSQL_LOWER_CASE_TABLE_NAMES", "1", "lower_case_table_names", "1"),
    ConfigCase("MYSQL_LOG_QUERIES_ENABLED", "1", "general_log", "1"),
    ConfigCase("MYSQL_MAX_CONNECTIONS", "1337", "max_connections", "1337"),
    ConfigCase("MYSQL_FT_MIN_WORD_LEN", "8", "ft_min_word_len", "8"),
    ConfigCase("MYSQL_FT_MAX_WORD_LEN", "15", "ft_max_word_len", "15"),
    ConfigCase("MYSQL_MAX_ALLOWED_PACKET", "10M", "max_allowed_packet", "10M"),
    ConfigCase("MYSQL_TABLE_OPEN_CACHE", "100", "table_open_cache", "100", repeat=2),
    ConfigCase("MYSQL_SORT_BUFFER_SIZE", "256K", "sort_buffer_size", "256K"),
    ConfigCase("MYSQL_KEY_BUFFER_SIZE", "16M", "key_buffer_size", "16M"),
    ConfigCase("MYSQL_READ_BUFFER_SIZE", "16M", "read_buffer_size", "16M"),
    ConfigCase("MYSQL_INNODB_BUFFER_POOL_SIZE", "16M", "innodb_buffer_pool_size", "16M"),
    ConfigCase("MYSQL_INNODB_LOG_FILE_SIZE", "4M", "innodb_log_file_size", "4M"),
    ConfigCase("MYSQL_INNODB_LOG_BUFFER_SIZE", "4M", "innodb_log_buffer_size", "4M"),
    ConfigCase("MYSQL_AIO", "0", "innodb_use_native_aio", "0"),
]

# rendered when no tuning variable is set
DEFAULT_SETTINGS = [
    ("lower_case_table_names", "0"),
    ("general_log", "0"),
    ("max_connections", "151"),
    ("ft_min_word_len", "4"),
    ("ft_max_word_len", "20"),
    ("innodb_use_native_aio", "1"),
]


def case_args(case: ConfigCase):
    """
    Environment and extra runtime arguments for a case. Repetitions beyond
    the first are passed as additional -e flags.
    """
    env = dict(BASE_ENV)
    extra_args = []
    if case.variable:
        env[case.variable] = case.value
        for _ in range(case.repeat - 1):
            extra_args += ["-e", f"{case.variable}={case.value}"]
    return env, extra_args


class ConfigurationPropagation(Scenario):
    name = "configuration-propagation"
    description = "tuning variables show up in the rendered server configuration"

    def rendered_config(self, scope, env, extra_args) -> str:
        sandbox = self.start(scope, Role.adhoc, env, extra_args)
        self.wait_ready(sandbox, USER, DATABASE)
        return self.manager.read_file(sandbox, self.cfg.rendered_config_paths)

    def run(self, scope):
        failures = []

        with self.case("defaults") as case_scope:
            rendered = self.rendered_config(case_scope, dict(BASE_ENV), [])
            for setting, expected in DEFAULT_SETTINGS:
                verdict = checks.setting_rendered(rendered, setting, expected)
                if not verdict:
                    failures.append(f"defaults: {verdict.explanation}")

        for case in CONFIG_CASES:
            label = f"{case.variable}={case.value}"
            if case.repeat > 1:
                label += f" (x{case.repeat})"
            with self.case(label) as case_scope:
                env, extra_args = case_args(case)
                rendered = self.rendered_config(case_scope, env, extra_args)
                verdict = checks.setting_rendered(rendered, case.setting, case.expected)
                if not verdict:
                    failures.append(f"{label}: {verdict.explanation}")
                    self.case_logs.append(f"=== {label} rendered configuration ===\n{rendered}")
                else:
                    self.logger.info(f"{label}: {case.setting} = {case.expected}")

        self.advance(Phase.ASSERTED)
        if failures:
            raise AssertionFailure("Configuration not propagated:\n    " + "\n    ".join(failures))
