# Copyright (c) 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

# Sandbox (container) lifecycle management

import contextlib
import logging
import os
import signal
import subprocess
from enum import Enum
from typing import Dict, List, Optional
from mysqlsandbox.errors import CreationError, NotRunningError
from mysqlsandbox.utils import auxutil

logger = logging.getLogger("sandbox")

RUN_LABEL = "mysqlsandbox.run"


class Role(Enum):
    primary = "primary"
    replica = "replica"
    adhoc = "adhoc"


class SandboxState(Enum):
    CREATED = "Created"
    RUNNING = "Running"
    STOPPED = "Stopped"
    REMOVED = "Removed"


class Sandbox:
    def __init__(self, name: str, role: Role, env: Dict[str, str], cidfile: str):
        self.name = name
        self.role = role
        self.env = env
        self.cidfile = cidfile
        self.cid: Optional[str] = None
        self.state = SandboxState.CREATED
        self.reached_running = False
        self._address: Optional[str] = None

    @property
    def address(self) -> Optional[str]:
        return self._address

    def bind_address(self, address: str) -> None:
        if self._address and self._address != address:
            raise ValueError(f"{self.name} already bound to {self._address}")
        self._address = address

    def __repr__(self):
        return f"<Sandbox {self.name} role={self.role.value} state={self.state.value}>"


class SandboxScope:
    """
    Group of sandboxes and volumes torn down together when the scope ends.
    """

    def __init__(self, manager: "SandboxManager", name: str):
        self.manager = manager
        self.name = name
        self.sandboxes: List[Sandbox] = []
        self.volumes: List[str] = []

    def create(self, role: Role, env: Dict[str, str], extra_args: Optional[List[str]] = None,
               command: Optional[List[str]] = None, volumes: Optional[Dict[str, str]] = None) -> Sandbox:
        return self.manager.create(role, env, extra_args, command, volumes, scope=self)

    def create_volume(self, purpose: str) -> str:
        return self.manager.create_volume(purpose, scope=self)

    def log_tails(self, lines) -> str:
        out = []
        for sandbox in self.sandboxes:
            out.append(f"--- {sandbox.name} ({sandbox.role.value}, {sandbox.state.value}) ---")
            out.append(self.manager.logs(sandbox, lines))
        return "\n".join(out)

    def teardown(self) -> int:
        return self.manager.teardown(self.sandboxes, self.volumes)


class SandboxManager:
    """
    Creates sandboxes through the container runtime and owns them until they
    are removed. Use as a context manager: everything still registered when
    the block exits (normally, by exception or by a termination signal) is
    stopped and removed.
    """

    handled_signals = (signal.SIGTERM, signal.SIGHUP)

    def __init__(self, runtime, cfg):
        self.runtime = runtime
        self.cfg = cfg
        self.sandboxes: List[Sandbox] = []
        self.volumes: List[str] = []
        self.teardown_failures = 0
        self.leaked: List[str] = []
        self._old_handlers = {}
        self._interrupted = False

    def __enter__(self):
        self._install_signal_handlers()
        return self

    def __exit__(self, type, value, tb):
        # further SIGTERM/SIGHUP are ignored while cleaning up
        self._interrupted = True
        try:
            self.cleanup()
        finally:
            self._restore_signal_handlers()

    def _install_signal_handlers(self):
        for sig in self.handled_signals:
            try:
                self._old_handlers[sig] = signal.signal(sig, self._on_signal)
            except ValueError:
                # not the main thread
                logger.debug(f"Cannot install handler for {sig.name}")

    def _restore_signal_handlers(self):
        for sig, handler in self._old_handlers.items():
            signal.signal(sig, handler)
        self._old_handlers = {}

    def _on_signal(self, signum, frame):
        if self._interrupted:
            logger.warning(f"Ignoring signal {signum}, cleanup in progress")
            return
        self._interrupted = True
        logger.warning(f"Received signal {signum}, tearing down sandboxes")
        raise KeyboardInterrupt(f"signal {signum}")

    @property
    def labels(self) -> Dict[str, str]:
        return {RUN_LABEL: self.cfg.run_id}

    def _register(self, sandbox: Sandbox, scope: Optional[SandboxScope]):
        self.sandboxes.append(sandbox)
        if scope is not None:
            scope.sandboxes.append(sandbox)

    def _read_cid(self, cidfile) -> Optional[str]:
        try:
            with open(cidfile) as f:
                return f.read().strip() or None
        except OSError as e:
            logger.error(f"Could not read handle file {cidfile}: {e}")
            return None

    def create(self, role: Role, env: Dict[str, str], extra_args: Optional[List[str]] = None,
               command: Optional[List[str]] = None, volumes: Optional[Dict[str, str]] = None,
               scope: Optional[SandboxScope] = None) -> Sandbox:
        name = f"{self.cfg.container_prefix}-{role.value}-{auxutil.random_string(6)}"
        sandbox = Sandbox(name, role, dict(env or {}), os.path.join(self.cfg.cid_dir, name))

        logger.info(f"Creating {role.value} sandbox {name} env={sorted(sandbox.env)} args={extra_args or []} command={command or []}")

        try:
            r = self.runtime.run(self.cfg.image, sandbox.env, extra_args, command,
                                 name=name, cidfile=sandbox.cidfile, labels=self.labels,
                                 volumes=volumes, check=False, timeout=self.cfg.start_timeout)
        except subprocess.TimeoutExpired:
            # the runtime may still create it, so it must be removable by name
            sandbox.cid = name
            self._register(sandbox, scope)
            raise CreationError(f"Timeout starting sandbox {name}")

        sandbox.cid = self._read_cid(sandbox.cidfile)
        if r.returncode != 0:
            if sandbox.cid:
                self._register(sandbox, scope)
            raise CreationError(f"Runtime refused to start {name} (rc={r.returncode})",
                                logs=r.stderr.decode("utf8") if r.stderr else None,
                                returncode=r.returncode)
        if not sandbox.cid:
            sandbox.cid = name
            self._register(sandbox, scope)
            raise CreationError(f"Could not record handle file for {name}")
        self._register(sandbox, scope)

        state = self.runtime.get_state(sandbox.cid)
        if not state.get("Running"):
            sandbox.state = SandboxState.STOPPED
            code = state.get("ExitCode")
            raise CreationError(f"Sandbox {name} exited before reaching Running (exit code {code})",
                                logs=self.logs(sandbox, self.cfg.log_tail_lines), returncode=code)

        sandbox.state = SandboxState.RUNNING
        sandbox.reached_running = True
        logger.info(f"Sandbox {name} is running ({sandbox.cid[:12]})")
        return sandbox

    def stop(self, sandbox: Sandbox) -> None:
        if sandbox.state in (SandboxState.STOPPED, SandboxState.REMOVED) or not sandbox.cid:
            return
        logger.info(f"Stopping sandbox {sandbox.name}")
        self.runtime.stop(sandbox.cid, self.cfg.stop_timeout)
        sandbox.state = SandboxState.STOPPED

    def kill(self, sandbox: Sandbox) -> None:
        if sandbox.state in (SandboxState.STOPPED, SandboxState.REMOVED) or not sandbox.cid:
            return
        logger.info(f"Killing sandbox {sandbox.name}")
        self.runtime.kill(sandbox.cid)
        sandbox.state = SandboxState.STOPPED

    def remove(self, sandbox: Sandbox) -> None:
        if sandbox.state == SandboxState.REMOVED:
            return
        if sandbox.cid:
            logger.info(f"Removing sandbox {sandbox.name}")
            self.runtime.rm(sandbox.cid)
        sandbox.state = SandboxState.REMOVED
        if sandbox in self.sandboxes:
            self.sandboxes.remove(sandbox)

    def resolve_address(self, sandbox: Sandbox) -> str:
        if sandbox.address:
            return sandbox.address
        if not sandbox.reached_running or sandbox.state != SandboxState.RUNNING:
            raise NotRunningError(f"Sandbox {sandbox.name} is not running ({sandbox.state.value})")

        address = self.runtime.get_ip(sandbox.cid)
        if not address:
            raise NotRunningError(f"Sandbox {sandbox.name} has no network address")
        sandbox.bind_address(address)
        logger.debug(f"Sandbox {sandbox.name} address is {address}")
        return address

    def exited(self, sandbox: Sandbox) -> Optional[int]:
        """
        Exit code of the sandbox if it is no longer running, None otherwise.
        """
        state = self.runtime.get_state(sandbox.cid)
        if state.get("Running"):
            return None
        if sandbox.state == SandboxState.RUNNING:
            sandbox.state = SandboxState.STOPPED
        return state.get("ExitCode", -1)

    def logs(self, sandbox: Sandbox, tail=None) -> str:
        if not sandbox.cid or sandbox.state == SandboxState.REMOVED:
            return ""
        try:
            return self.runtime.logs(sandbox.cid, tail)
        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Could not get logs of {sandbox.name}: {e}")
            return ""

    def read_file(self, sandbox: Sandbox, paths: List[str]) -> str:
        """
        Concatenated contents of files (glob patterns allowed) inside the sandbox.
        """
        r = self.runtime.exec(sandbox.cid, ["bash", "-c", "cat " + " ".join(paths)],
                              timeout=self.cfg.query_timeout)
        return r.stdout.decode("utf8")

    def create_volume(self, purpose: str, scope: Optional[SandboxScope] = None) -> str:
        name = f"{self.cfg.container_prefix}-{purpose}-{auxutil.random_string(6)}"
        logger.info(f"Creating volume {name}")
        self.runtime.create_volume(name, self.labels)
        self.volumes.append(name)
        if scope is not None:
            scope.volumes.append(name)
        return name

    def remove_volume(self, name: str) -> None:
        logger.info(f"Removing volume {name}")
        self.runtime.rm_volume(name)
        if name in self.volumes:
            self.volumes.remove(name)

    def _attempt(self, action, what, interrupts: list) -> bool:
        """
        Run one teardown step. Errors are logged, an interrupt is recorded
        in `interrupts` so the remaining steps still run.
        """
        try:
            action()
            return True
        except KeyboardInterrupt as e:
            logger.warning(f"Interrupted while {what}, continuing teardown")
            interrupts.append(e)
        except Exception as e:
            logger.error(f"Error {what}: {e}")
        return False

    def _teardown(self, sandboxes: List[Sandbox], volumes: List[str], interrupts: list) -> int:
        failures = 0
        for sandbox in reversed(list(sandboxes)):
            self._attempt(lambda: self.stop(sandbox), f"stopping sandbox {sandbox.name}", interrupts)
            if not self._attempt(lambda: self.remove(sandbox), f"removing sandbox {sandbox.name}", interrupts):
                failures += 1
        for volume in reversed(list(volumes)):
            if volume not in self.volumes:
                continue
            if not self._attempt(lambda: self.remove_volume(volume), f"removing volume {volume}", interrupts):
                failures += 1
        self.teardown_failures += failures
        return failures

    def teardown(self, sandboxes: List[Sandbox], volumes: Optional[List[str]] = None) -> int:
        """
        Best-effort stop and removal, newest first. Errors are logged and
        counted, never raised. An interrupt is re-raised once every sandbox
        was handled.
        """
        interrupts = []
        failures = self._teardown(sandboxes, volumes or [], interrupts)
        if interrupts:
            raise interrupts[0]
        return failures

    @contextlib.contextmanager
    def scope(self, name: str):
        scope = SandboxScope(self, name)
        try:
            yield scope
        finally:
            scope.teardown()

    def running(self) -> List[Sandbox]:
        return [s for s in self.sandboxes if s.state == SandboxState.RUNNING]

    def cleanup(self) -> None:
        if self.sandboxes or self.volumes:
            logger.info(f"Tearing down {len(self.sandboxes)} sandboxes and {len(self.volumes)} volumes")
        interrupts = []
        self._teardown(self.sandboxes, self.volumes, interrupts)
        self.check_leftovers(interrupts)
        if interrupts:
            raise interrupts[0]

    def check_leftovers(self, interrupts: Optional[list] = None) -> None:
        if interrupts is None:
            interrupts = []
        leftovers = []

        def list_leftovers():
            leftovers.extend(self.runtime.ls(f"{RUN_LABEL}={self.cfg.run_id}"))

        if not self._attempt(list_leftovers, "listing leftover sandboxes", interrupts):
            return
        for cid in leftovers:
            logger.error(f"Sandbox {cid[:12]} was left behind, removing it")
            self.leaked.append(cid)
            self._attempt(lambda: self.runtime.rm(cid), f"removing leftover {cid[:12]}", interrupts)

    @property
    def clean(self) -> bool:
        return not self.teardown_failures and not self.leaked and not self.sandboxes
