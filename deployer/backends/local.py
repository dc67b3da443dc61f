# deployer/backends/local.py

import asyncio
import os
import shutil
import signal
import socket
import subprocess
from pathlib import Path
from typing import Optional, Dict, List

import msgspec
import psutil
from msgspec import Struct

from ..core.logging import LoggingMixin
from ..core.settings import LocalSettings
from ..errors import SpawnError, StopError
from ..translate import render_project
from ..types import IndexerConfig, LocalHandle, RunState, DeploymentMode, DiscoveredResource
from .interfaces import IndexerBackend
from .readiness import ReadinessProbe, create_probe

HANDLE_FILE = "instance.json"
LOG_FILE = "indexer.log"


class HandleRecord(Struct):
    """Contents of the handle file written next to each generated project"""
    instance_id: str
    name: str
    handle: LocalHandle


def allocate_port(host: str = "127.0.0.1") -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def is_process_alive(pid: int) -> bool:
    """True for a live process, False for a missing or zombie one"""
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


def signal_group(pid: int, sig: int) -> bool:
    """Signal the process group led by pid. False if nothing was there to signal."""
    try:
        os.killpg(pid, sig)
        return True
    except ProcessLookupError:
        return False


def group_alive(pid: int) -> bool:
    try:
        os.killpg(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True


class LocalProcessBackend(IndexerBackend, LoggingMixin):
    """
    Runs each indexer as a local engine process.

    Every instance gets its own project directory under data_dir, its own
    port and its own process group, so stop() can take down the engine
    together with anything it started.
    """

    mode = DeploymentMode.LOCAL

    def __init__(self, data_dir: Path, settings: LocalSettings,
                 probe: Optional[ReadinessProbe] = None):
        if not settings.engine_command:
            raise ValueError("Local backend requires an engine command")

        self.data_dir = Path(data_dir)
        self.settings = settings
        self.probe = probe or create_probe(settings.readiness, settings.host, settings.ready_marker)
        # Popen objects for children started by this process, kept only for reaping
        self._children: Dict[int, subprocess.Popen] = {}

        self.log_debug("Local backend initialized",
                       path=str(self.data_dir),
                       command=" ".join(settings.engine_command))

    # === Spawn ===

    async def spawn(self, instance_id: str, config: IndexerConfig) -> LocalHandle:
        workdir = self.data_dir / instance_id
        log_path = workdir / LOG_FILE

        self._write_project(workdir, config, instance_id)

        try:
            port = allocate_port(self.settings.host)
            env = self._engine_env(instance_id, config, port)

            if self.settings.codegen_command:
                await self._run_codegen(workdir, log_path, env, instance_id)

            process = self._launch(workdir, log_path, env, instance_id)
        except BaseException:
            self._discard(workdir)
            raise

        handle = LocalHandle(
            pid=process.pid,
            workdir=str(workdir),
            port=port,
            log_path=str(log_path),
        )

        try:
            self._write_handle(instance_id, config.name, handle)
            self.log_info("Engine process started", **self.log_instance_context(
                instance_id, pid=process.pid, port=port, workdir=str(workdir)))
            await self._wait_ready(process, handle, instance_id)
        except BaseException:
            await self._kill_now(handle)
            raise

        self.log_info("Engine ready", **self.log_instance_context(
            instance_id, pid=process.pid, port=port))
        return handle

    def _write_project(self, workdir: Path, config: IndexerConfig, instance_id: str) -> None:
        try:
            workdir.mkdir(parents=True, exist_ok=False)
            for relative, content in render_project(config, instance_id).items():
                target = workdir / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding='utf-8')
        except OSError as e:
            self._discard(workdir)
            raise SpawnError.launch_failed(f"Could not write project to {workdir}: {e}", instance_id)

    def _write_handle(self, instance_id: str, name: str, handle: LocalHandle) -> None:
        record = HandleRecord(instance_id=instance_id, name=name, handle=handle)
        try:
            (Path(handle.workdir) / HANDLE_FILE).write_bytes(msgspec.json.encode(record))
        except OSError as e:
            raise SpawnError.launch_failed(f"Could not write handle file: {e}", instance_id)

    def _engine_env(self, instance_id: str, config: IndexerConfig, port: int) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.settings.env)
        env.update({
            "INDEXER_ID": instance_id,
            "INDEXER_NAME": config.name,
            "INDEXER_PORT": str(port),
        })
        return env

    async def _run_codegen(self, workdir: Path, log_path: Path,
                           env: Dict[str, str], instance_id: str) -> None:
        command = self.settings.codegen_command
        self.log_debug("Running codegen", indexer_id=instance_id, command=" ".join(command))

        with open(log_path, 'ab') as log_file:
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(workdir),
                    env=env,
                    stdout=log_file,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except OSError as e:
                raise SpawnError.launch_failed(f"Could not run {command[0]}: {e}", instance_id)

            try:
                returncode = await asyncio.wait_for(process.wait(), timeout=self.settings.codegen_timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise SpawnError.timeout(
                    f"Codegen did not finish within {self.settings.codegen_timeout}s", instance_id)
            except asyncio.CancelledError:
                if process.returncode is None:
                    process.kill()
                self.log_warning("Codegen cancelled", indexer_id=instance_id, pid=process.pid)
                raise

        if returncode != 0:
            self.log_error("Codegen failed", indexer_id=instance_id, returncode=returncode)
            raise SpawnError.launch_failed(f"Codegen exited with code {returncode}", instance_id)

    def _launch(self, workdir: Path, log_path: Path,
                env: Dict[str, str], instance_id: str) -> subprocess.Popen:
        command = self.settings.engine_command
        with open(log_path, 'ab') as log_file:
            try:
                process = subprocess.Popen(
                    command,
                    cwd=str(workdir),
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
            except OSError as e:
                self.log_error("Engine launch failed", indexer_id=instance_id,
                               command=" ".join(command), error=str(e))
                raise SpawnError.launch_failed(f"Could not start {command[0]}: {e}", instance_id)

        self._children[process.pid] = process
        return process

    async def _wait_ready(self, process: subprocess.Popen, handle: LocalHandle, instance_id: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.readiness_timeout

        while True:
            returncode = process.poll()
            if returncode is not None:
                self.log_error("Engine exited before becoming ready",
                               indexer_id=instance_id, pid=handle.pid, returncode=returncode)
                raise SpawnError.launch_failed(
                    f"Engine exited with code {returncode} before becoming ready", instance_id)

            if await self.probe.check(handle):
                return

            if loop.time() >= deadline:
                self.log_error("Engine readiness timed out",
                               indexer_id=instance_id, pid=handle.pid,
                               elapsed=self.settings.readiness_timeout)
                raise SpawnError.timeout(
                    f"Engine not ready within {self.settings.readiness_timeout}s", instance_id)

            await asyncio.sleep(self.settings.poll_interval)

    # === Stop ===

    async def stop(self, handle: LocalHandle) -> None:
        pid = handle.pid
        self._reap(pid)

        if signal_group(pid, signal.SIGTERM):
            self.log_debug("Sent SIGTERM to engine", pid=pid, workdir=handle.workdir)
            if not await self._wait_exit(pid, self.settings.stop_grace_period):
                self.log_warning("Engine ignored SIGTERM, killing", pid=pid)
                signal_group(pid, signal.SIGKILL)
                if not await self._wait_exit(pid, self.settings.stop_grace_period):
                    raise StopError.unreachable(f"Engine process {pid} survived SIGKILL")
        else:
            self.log_debug("Engine already gone", pid=pid, workdir=handle.workdir)

        self._discard(Path(handle.workdir))
        self._children.pop(pid, None)

    async def _wait_exit(self, pid: int, timeout: float) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            self._reap(pid)
            if not group_alive(pid):
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(min(0.1, self.settings.poll_interval))

    async def _kill_now(self, handle: LocalHandle) -> None:
        """Kill the process group without grace and remove the project"""
        signal_group(handle.pid, signal.SIGKILL)
        if not await self._wait_exit(handle.pid, self.settings.stop_grace_period):
            self.log_warning("Engine did not exit after SIGKILL", pid=handle.pid)
        self._children.pop(handle.pid, None)
        self._discard(Path(handle.workdir))

    def _reap(self, pid: int) -> None:
        process = self._children.get(pid)
        if process is not None:
            process.poll()

    def _discard(self, workdir: Path) -> None:
        if workdir.exists():
            shutil.rmtree(workdir)

    # === Status ===

    async def status(self, handle: LocalHandle) -> RunState:
        self._reap(handle.pid)
        if is_process_alive(handle.pid):
            return RunState.RUNNING
        return RunState.CRASHED

    # === Discovery ===

    async def discover(self) -> List[DiscoveredResource]:
        if not self.data_dir.exists():
            return []

        resources = []
        for handle_file in sorted(self.data_dir.glob(f"*/{HANDLE_FILE}")):
            try:
                record = msgspec.json.decode(handle_file.read_bytes(), type=HandleRecord)
            except msgspec.DecodeError as e:
                self.log_warning("Unreadable handle file", path=str(handle_file), error=str(e))
                continue
            resources.append(DiscoveredResource(record.instance_id, record.handle))

        self.log_debug("Local discovery complete", count=len(resources))
        return resources
