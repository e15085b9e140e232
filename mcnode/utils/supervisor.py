import asyncio
import logging
import os
import re
import subprocess
import sys
from collections import deque
from pathlib import Path
import psutil
from pydantic import BaseModel
from mcnode.core.config import Settings
from mcnode.models.errors import ProcessError
from mcnode.models.servers import (
        ActionResult,
        ProcessRecord,
        ServerStateEnum
        )
from mcnode.utils.launch import make_executable
from mcnode.utils.paths import ServerPaths


logger = logging.getLogger(__name__)

# Known reasons for a start script that never writes its pid
LOG_HINTS = [
    (re.compile(r"You need to agree to the EULA", re.I),
     "EULA not accepted, ensure eula.txt has eula=true"),
    (re.compile(r"Unable to access jarfile|Server jar not found", re.I),
     "server jar path may be wrong in start.sh"),
    (re.compile(r"command not found: java|java: (command )?not found"
                r"|No such file or directory: .*java", re.I),
     "Java not found, install OpenJDK 17+ or set JAVA_PATH"),
]


class Launcher(BaseModel):
    args: list[str]
    cwd: Path
    # Only set when nothing else redirects the output
    log_file: Path | None = None
    tracked: bool = True


class ProcessSupervisor():
    """
    Starts and stops servers through their generated scripts. The pid
    file written by start.sh is the only source of truth, and a pid only
    counts when the process behind it is alive.
    """

    def __init__(self, settings: Settings, paths: ServerPaths):
        self.settings = settings
        self.paths = paths
        self.states: dict[str, ServerStateEnum] = {}
        self.locks: dict[str, asyncio.Lock] = {}
        self.spawned: dict[str, subprocess.Popen] = {}

    def read_pid(self, name: str) -> int | None:
        try:
            return int(self.paths.pid(name).read_text().strip())
        except (OSError, ValueError):
            return None

    @staticmethod
    def is_running(pid: int | None) -> bool:
        if not pid or pid <= 0 or not psutil.pid_exists(pid):
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            return True

    def record(self, name: str) -> ProcessRecord:
        pid = self.read_pid(name)
        return ProcessRecord(pid=pid, alive=self.is_running(pid))

    def clear_pid(self, name: str) -> None:
        self.paths.pid(name).unlink(missing_ok=True)

    def state(self, name: str) -> ServerStateEnum:
        if not self.paths.exists(name):
            return ServerStateEnum.unknown
        transitional = self.states.get(name)
        if self.record(name).live:
            if transitional is ServerStateEnum.stopping:
                return ServerStateEnum.stopping
            return ServerStateEnum.running
        if transitional is ServerStateEnum.starting:
            return ServerStateEnum.starting
        self.states.pop(name, None)
        return ServerStateEnum.stopped

    def _lock(self, name: str) -> asyncio.Lock:
        if name not in self.locks:
            self.locks[name] = asyncio.Lock()
        return self.locks[name]

    def select_launcher(self, name: str) -> Launcher:
        """
        start.bat on windows, else start.sh, else running server.jar
        directly which leaves no pid file behind
        """
        cwd = self.paths.server(name)
        start_bat = self.paths.start_bat(name)
        start_sh = self.paths.start_sh(name)
        if sys.platform == "win32" and start_bat.exists():
            return Launcher(args=["cmd", "/c", "start", "/min", "start.bat"],
                            cwd=cwd)
        if start_sh.exists():
            make_executable(start_sh)
            return Launcher(args=["bash", "-lc", "./start.sh"], cwd=cwd)
        if self.paths.jar(name).exists():
            return Launcher(args=[self.settings.JAVA_PATH,
                                  f"-Xmx{self.settings.FALLBACK_MEMORY}",
                                  "-jar", "server.jar", "nogui"],
                            cwd=cwd,
                            log_file=self.paths.log(name),
                            tracked=False)
        raise ProcessError("No start script or server.jar found")

    def spawn(self, name: str, launcher: Launcher) -> subprocess.Popen:
        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = (subprocess.DETACHED_PROCESS |
                                       subprocess.CREATE_NEW_PROCESS_GROUP)
        else:
            kwargs["start_new_session"] = True
        env = {**os.environ, "JAVA_PATH": self.settings.JAVA_PATH}

        if launcher.log_file:
            launcher.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(launcher.log_file, "ab") as out:
                proc = subprocess.Popen(launcher.args, cwd=launcher.cwd,
                                        env=env,
                                        stdin=subprocess.DEVNULL,
                                        stdout=out,
                                        stderr=subprocess.STDOUT,
                                        **kwargs)
        else:
            proc = subprocess.Popen(launcher.args, cwd=launcher.cwd, env=env,
                                    stdin=subprocess.DEVNULL,
                                    stdout=subprocess.DEVNULL,
                                    stderr=subprocess.DEVNULL,
                                    **kwargs)
        # Kept only so the launcher shell gets reaped
        self.spawned[name] = proc
        logger.info("Launched %s: %s", name, " ".join(launcher.args))
        return proc

    async def wait_for_pid(self, name: str) -> int | None:
        for _ in range(self.settings.PID_POLL_ATTEMPTS):
            await asyncio.sleep(self.settings.PID_POLL_INTERVAL)
            if name in self.spawned:
                self.spawned[name].poll()
            record = self.record(name)
            if record.live:
                return record.pid
        return None

    def log_hint(self, name: str) -> str:
        """Guesses from latest.log why no pid showed up"""
        try:
            with open(self.paths.log(name), "r", encoding="utf-8",
                      errors="replace") as f:
                recent = "".join(deque(f, maxlen=200))
        except OSError:
            return ""
        for pattern, hint in LOG_HINTS:
            if pattern.search(recent):
                return f" ({hint})"
        return ""

    async def start(self, name: str) -> ActionResult:
        if not self.paths.exists(name):
            return ActionResult(ok=False, message="Server folder missing",
                                state=ServerStateEnum.unknown)

        async with self._lock(name):
            record = self.record(name)
            if record.live:
                return ActionResult(ok=True,
                                    message=f"Already running (PID {record.pid})",
                                    pid=record.pid,
                                    state=ServerStateEnum.running)
            if record.stale:
                logger.info("Removing stale pid %s of %s", record.pid, name)
                self.clear_pid(name)

            try:
                launcher = self.select_launcher(name)
                self.states[name] = ServerStateEnum.starting
                self.spawn(name, launcher)
            except (ProcessError, OSError) as e:
                self.states.pop(name, None)
                logger.warning("Could not start %s: %s", name, e)
                return ActionResult(ok=False, message=str(e),
                                    state=ServerStateEnum.stopped)

            pid = await self.wait_for_pid(name) if launcher.tracked else None
            self.states.pop(name, None)
            if pid:
                return ActionResult(ok=True, message="Started", pid=pid,
                                    state=ServerStateEnum.running)

            log_path = self.paths.log(name)
            hint = self.log_hint(name)
            logger.info("No pid for %s yet%s", name, hint)
            return ActionResult(
                    ok=True, pending=True,
                    message=("Start invoked. PID not yet visible; "
                             f"check {log_path}{hint}"),
                    state=ServerStateEnum.starting
                    )

    def terminate(self, pid: int) -> None:
        """SIGTERM to the process and its children, children first"""
        proc = psutil.Process(pid)
        children = proc.children(recursive=True)
        for child in children:
            try:
                child.terminate()
            except psutil.NoSuchProcess:
                pass
        proc.terminate()

    async def stop(self, name: str) -> ActionResult:
        record = self.record(name)
        if not record.live:
            return ActionResult(ok=False, message="Not running",
                                state=ServerStateEnum.stopped)
        try:
            self.terminate(record.pid)
        except psutil.NoSuchProcess:
            return ActionResult(ok=False, message="Not running",
                                state=ServerStateEnum.stopped)
        except psutil.AccessDenied as e:
            return ActionResult(ok=False, message=f"Permission denied: {e}",
                                pid=record.pid,
                                state=ServerStateEnum.running)
        self.states[name] = ServerStateEnum.stopping
        logger.info("Sent SIGTERM to %s (PID %s)", name, record.pid)
        return ActionResult(ok=True, message="Stopping…", pid=record.pid,
                            state=ServerStateEnum.stopping)

    async def restart(self, name: str) -> ActionResult:
        # Not confirmed, start() no-ops while the old pid is still alive
        stopped = await self.stop(name)
        logger.info("Restarting %s: %s", name, stopped.message)
        return await self.start(name)
