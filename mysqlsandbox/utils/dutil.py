# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# Container runtime (docker/podman CLI) utilities

# Use the CLI instead of an API client so the same code path works for
# docker and podman

import json
import logging
import subprocess
from typing import Dict, List, Optional

logger = logging.getLogger("dutil")

debug_docker = False

NO_SUCH_CONTAINER = "no such container"


def decode_stream(stream):
    if stream:
        return stream.decode("utf8")
    return ""


class DockerRuntime:
    def __init__(self, path="docker"):
        self.path = path

    def docker(self, cmd, args=None, timeout=None, check=True, ignore=[], input=None):
        """
        Run a runtime subcommand. Failures whose stderr contains one of the
        `ignore` fragments are logged at debug level and return None.
        """
        argv = [self.path, cmd]
        if args:
            argv += args
        if debug_docker:
            logger.debug("run %s", " ".join(argv))
        try:
            r = subprocess.run(argv, timeout=timeout, check=check,
                               input=input.encode("utf8") if input is not None else None,
                               stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except subprocess.TimeoutExpired as e:
            logger.error("%s %s timed out: %s:\n    stderr=%s\n    stdout=%s",
                         self.path, cmd, e, decode_stream(e.stderr), decode_stream(e.stdout))
            raise
        except subprocess.CalledProcessError as e:
            stderr = decode_stream(e.stderr)
            for ig in ignore:
                if ig.lower() in stderr.lower():
                    if debug_docker:
                        logger.debug("rc = %s, stderr=%s", e.returncode, stderr)
                    return None
            logger.error("%s %s failed (rc=%s):\n    stderr=%s\n    stdout=%s",
                         self.path, cmd, e.returncode, stderr, decode_stream(e.stdout))
            raise
        if debug_docker:
            logger.debug("rc = %s, stdout = %s, stderr = %s",
                         r.returncode, decode_stream(r.stdout), decode_stream(r.stderr))
        return r

    def run(self, image, env: Optional[Dict[str, str]] = None, args: Optional[List[str]] = None,
            command: Optional[List[str]] = None, *, detach=True, remove=False, name=None,
            cidfile=None, labels: Optional[Dict[str, str]] = None,
            volumes: Optional[Dict[str, str]] = None, timeout=None, check=True):
        argv = []
        if detach:
            argv.append("-d")
        if remove:
            argv.append("--rm")
        if name:
            argv += ["--name", name]
        if cidfile:
            argv += ["--cidfile", cidfile]
        for key, value in (labels or {}).items():
            argv += ["--label", f"{key}={value}"]
        for key, value in (env or {}).items():
            argv += ["-e", f"{key}={value}"]
        for volume, path in (volumes or {}).items():
            argv += ["-v", f"{volume}:{path}:Z"]
        if args:
            argv += args
        argv.append(image)
        if command:
            argv += command
        return self.docker("run", argv, timeout=timeout, check=check)

    def inspect(self, cid, format) -> str:
        r = self.docker("inspect", ["-f", format, cid])
        return decode_stream(r.stdout).strip()

    def get_state(self, cid) -> dict:
        return json.loads(self.inspect(cid, "{{json .State}}"))

    def get_ip(self, cid) -> Optional[str]:
        settings = json.loads(self.inspect(cid, "{{json .NetworkSettings}}")) or {}
        if settings.get("IPAddress"):
            return settings["IPAddress"]
        for net in (settings.get("Networks") or {}).values():
            if net.get("IPAddress"):
                return net["IPAddress"]
        return None

    def logs(self, cid, tail=None) -> str:
        args = [cid]
        if tail:
            args = ["--tail", str(tail)] + args
        r = self.docker("logs", args, check=False)
        # the server logs to stderr, the entrypoint to stdout
        return decode_stream(r.stdout) + decode_stream(r.stderr)

    def stop(self, cid, timeout=10):
        self.docker("stop", ["-t", str(timeout), cid], timeout=timeout + 60,
                    ignore=[NO_SUCH_CONTAINER])

    def kill(self, cid):
        self.docker("kill", [cid], ignore=[NO_SUCH_CONTAINER, "is not running"])

    def rm(self, cid):
        self.docker("rm", ["-f", "-v", cid], ignore=[NO_SUCH_CONTAINER])

    def exec(self, cid, cmd: List[str], timeout=None, check=True):
        return self.docker("exec", [cid] + cmd, timeout=timeout, check=check)

    def create_volume(self, name, labels: Optional[Dict[str, str]] = None):
        args = ["create"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        self.docker("volume", args + [name])

    def rm_volume(self, name):
        self.docker("volume", ["rm", "-f", name], ignore=["no such volume"])

    def ls(self, label) -> List[str]:
        """
        Ids of all containers (running or not) carrying the label.
        """
        r = self.docker("ps", ["-a", "-q", "--no-trunc", "--filter", f"label={label}"])
        return [l.strip() for l in decode_stream(r.stdout).split("\n") if l.strip()]
