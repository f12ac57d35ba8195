# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import logging
import sys
import time
from mysqlsandbox.scenarios import runner
from mysqlsandbox.scenarios.base import HarnessContext
from mysqlsandbox.sandbox import SandboxManager
from mysqlsandbox.setup import config
from mysqlsandbox.utils import dutil, fmt, mutil

logger = logging.getLogger("harness")

USAGE = """Usage: mysql-sandbox-harness run|list [options] [filter]

Options:
    --image=NAME              image under test
    --runtime=PATH            container runtime CLI (docker, podman)
    --client=exec|connector   how SQL is sent to sandboxes
    --cfg-path=FILE           YAML file with option overrides
    --summary=FILE            write a YAML summary of the results
    --work-dir=DIR            directory for handle files
    --rejection-timeout=SEC   how long an invalid sandbox may keep running
    --ready-attempts=N        readiness probe attempts
    --ready-interval=SEC      pause between readiness probes
    --strict-rejection        a sandbox that neither exits nor answers is a failure
    --ddocker                 log every runtime invocation
    -v, --verbose             debug logging

filter is gtest style: include1:include2:-exclude1:exclude2
"""


def setup_logging(verbose: bool):
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        stream=sys.stdout,
                        format="\033[1;34m%(asctime)s  %(name)-10s  [%(levelname)-8s]\033[0m   %(message)s")


def make_runtime(cfg):
    return dutil.DockerRuntime(cfg.runtime_path)


def list_scenarios(scenarios):
    for scenario in scenarios:
        print(f"    {scenario.name:<32} {scenario.description}")


def main(argv) -> int:
    cmd = argv[0] if argv else ""
    allowed_commands = ["run", "list"]
    if cmd not in allowed_commands:
        print(f"Unknown command '{cmd}': must be one of '{','.join(allowed_commands)}'")
        print(USAGE)
        return 2

    cfg = config.g_cfg

    opt_include = []
    opt_exclude = []
    opt_verbose = False
    opt_cfg_path = None
    overrides = {}

    try:
        for arg in argv[1:]:
            if arg.startswith("--image="):
                overrides["image"] = arg.partition("=")[-1]
            elif arg.startswith("--runtime="):
                overrides["runtime_path"] = arg.partition("=")[-1]
            elif arg.startswith("--client="):
                overrides["client_mode"] = arg.partition("=")[-1]
            elif arg.startswith("--cfg-path="):
                opt_cfg_path = arg.partition("=")[-1]
            elif arg.startswith("--summary="):
                overrides["summary_path"] = arg.partition("=")[-1]
            elif arg.startswith("--work-dir=") or arg.startswith("--workdir="):
                overrides["work_dir"] = arg.partition("=")[-1]
            elif arg.startswith("--rejection-timeout="):
                overrides["rejection_timeout"] = float(arg.partition("=")[-1])
            elif arg.startswith("--ready-attempts="):
                overrides["ready_attempts"] = int(arg.partition("=")[-1])
            elif arg.startswith("--ready-interval="):
                overrides["ready_interval"] = float(arg.partition("=")[-1])
            elif arg == "--strict-rejection":
                overrides["undecided_is_rejection"] = False
            elif arg == "--ddocker":
                dutil.debug_docker = True
            elif arg == "--verbose" or arg == "-v":
                opt_verbose = True
            elif arg in ("--help", "-h"):
                print(USAGE)
                return 0
            elif arg.startswith("--"):
                print(f"Invalid option {arg}")
                print(USAGE)
                return 2
            else:
                inc, exc = runner.parse_filter(arg)
                opt_include += inc
                opt_exclude += exc
    except ValueError as e:
        print(f"Invalid option value: {e}")
        return 2

    try:
        if opt_cfg_path:
            cfg.load_file(opt_cfg_path)
        for key, value in overrides.items():
            setattr(cfg, key, value)
        cfg.commit()
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}")
        return 2

    scenarios = runner.select(opt_include, opt_exclude)
    if not scenarios:
        print("No scenarios matched")
        return 0

    if cmd == "list":
        list_scenarios(scenarios)
        return 0

    fmt.enabled = sys.stdout.isatty()
    setup_logging(opt_verbose)
    print(cfg)

    start = time.monotonic()
    results = []
    try:
        with SandboxManager(make_runtime(cfg), cfg) as manager:
            client = mutil.make_client(cfg, manager.runtime, manager.labels)
            ctx = HarnessContext(cfg, manager, client)
            runner.run_scenarios(ctx, scenarios, results)
    except KeyboardInterrupt:
        logger.error("Interrupted, sandboxes were torn down")
        if results:
            runner.report(results)
        return 130

    runner.report(results)
    if manager.leaked:
        print(fmt.lred(f"{len(manager.leaked)} sandboxes were left behind by this run"))
    if cfg.summary_path:
        runner.write_summary(results, cfg.summary_path, cfg, manager.leaked, time.monotonic() - start)

    if all(r.passed for r in results) and manager.clean:
        return 0
    return 1


def cli():
    sys.exit(main(sys.argv[1:]))
