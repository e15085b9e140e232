import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Literal
from pydantic import BaseModel
from mcnode.core.config import Settings


logger = logging.getLogger(__name__)

# Aikar's G1 flags, {mem} is the heap size
DEFAULT_FLAGS = [
    "-Xms{mem}",
    "-Xmx{mem}",
    "-XX:+UseG1GC",
    "-XX:+ParallelRefProcEnabled",
    "-XX:MaxGCPauseMillis=200",
    "-XX:+UnlockExperimentalVMOptions",
    "-XX:+DisableExplicitGC",
    "-XX:+AlwaysPreTouch",
    "-XX:G1NewSizePercent=30",
    "-XX:G1MaxNewSizePercent=40",
    "-XX:G1HeapRegionSize=8M",
    "-XX:G1ReservePercent=20",
    "-XX:G1HeapWastePercent=5",
    "-XX:G1MixedGCCountTarget=4",
    "-XX:InitiatingHeapOccupancyPercent=15",
    "-XX:G1MixedGCLiveThresholdPercent=90",
    "-XX:G1RSetUpdatingPauseTimePercent=5",
    "-XX:SurvivorRatio=32",
    "-XX:+PerfDisableSharedMem",
    "-XX:MaxTenuringThreshold=1",
]


def jvm_flags(memory: str) -> list[str]:
    return [flag.replace("{mem}", memory) for flag in DEFAULT_FLAGS]


class LaunchArtifact(BaseModel):
    """What the installer left behind to start the server with"""
    kind: Literal["jar", "runner"]
    unix: str
    win: str | None = None


class LaunchDescriptor(BaseModel):
    mode: Literal["direct", "delegated"]
    # direct: jvm arguments after the java binary
    args: list[str] = []
    # delegated: the installer's own run scripts
    runner_unix: str | None = None
    runner_win: str | None = None
    log_file: str = "logs/latest.log"
    pid_file: str = "server.pid"
    kill_pattern: str
    grace_seconds: int = 2

    @classmethod
    def for_artifact(cls, artifact: LaunchArtifact, memory: str,
                     grace_seconds: int = 2) -> "LaunchDescriptor":
        if artifact.kind == "runner":
            return cls(mode="delegated",
                       runner_unix=artifact.unix,
                       runner_win=artifact.win or "run.bat",
                       kill_pattern=artifact.unix,
                       grace_seconds=grace_seconds)
        return cls(mode="direct",
                   args=[*jvm_flags(memory), "-jar", artifact.unix, "nogui"],
                   kill_pattern=artifact.unix,
                   grace_seconds=grace_seconds)


class PosixScriptRenderer():
    """start.sh, stop.sh and restart.sh"""

    def command(self, d: LaunchDescriptor) -> str:
        if d.mode == "delegated":
            return f"./{shlex.quote(d.runner_unix)}"
        return f'"$JAVA_BIN" {shlex.join(d.args)}'

    def start(self, d: LaunchDescriptor) -> str:
        log_dir = str(Path(d.log_file).parent)
        return f"""#!/usr/bin/env bash
cd "$(dirname "$0")"
JAVA_BIN="${{JAVA_PATH:-java}}"
export JAVA_BIN
if [[ -f {d.pid_file} ]] && kill -0 "$(cat {d.pid_file})" 2>/dev/null; then
  echo "Already running (PID $(cat {d.pid_file}))"
  exit 0
fi
mkdir -p {shlex.quote(log_dir)}
nohup {self.command(d)} >> {shlex.quote(d.log_file)} 2>&1 &
echo $! > {d.pid_file}
"""

    def stop(self, d: LaunchDescriptor) -> str:
        return f"""#!/usr/bin/env bash
cd "$(dirname "$0")"
if [ -f {d.pid_file} ]; then
  PID="$(cat {d.pid_file})"
  pkill -TERM -P "$PID" 2>/dev/null || true
  kill "$PID" 2>/dev/null || true
  sleep {d.grace_seconds}
  if kill -0 "$PID" 2>/dev/null; then kill -9 "$PID" 2>/dev/null || true; fi
  rm -f {d.pid_file}
else
  pkill -f {shlex.quote(d.kill_pattern)} 2>/dev/null || true
fi
"""

    def restart(self, d: LaunchDescriptor) -> str:
        return f"""#!/usr/bin/env bash
cd "$(dirname "$0")"
./stop.sh || true
sleep {d.grace_seconds}
./start.sh
"""

    def render(self, d: LaunchDescriptor) -> dict[str, str]:
        return {
            "start.sh": self.start(d),
            "stop.sh": self.stop(d),
            "restart.sh": self.restart(d),
        }


class WindowsScriptRenderer():
    """
    start.bat starts launch.bat through powershell to learn its pid,
    launch.bat runs the server with output appended to the log
    """

    LAUNCHER = "launch.bat"

    def launch(self, d: LaunchDescriptor) -> str:
        if d.mode == "delegated":
            command = f"call {subprocess.list2cmdline([d.runner_win])}"
        else:
            command = '"%JAVA_BIN%" ' + subprocess.list2cmdline(d.args)
        log_file = d.log_file.replace("/", "\\")
        return f"""@echo off
cd /d %~dp0
{command} >> {log_file} 2>&1
"""

    def start(self, d: LaunchDescriptor) -> str:
        log_dir = str(Path(d.log_file).parent).replace("/", "\\")
        return f"""@echo off
cd /d %~dp0
set "JAVA_BIN=%JAVA_PATH%"
if "%JAVA_BIN%"=="" set "JAVA_BIN=java"
if not exist {log_dir} mkdir {log_dir}
if not exist {d.pid_file} goto launch
set /p PID=<{d.pid_file}
tasklist /FI "PID eq %PID%" 2>nul | find "%PID%" >nul
if not errorlevel 1 (
  echo Already running, PID %PID%
  exit /b 0
)
:launch
powershell -NoProfile -Command "$p = Start-Process -FilePath 'cmd.exe' -ArgumentList '/c', '{self.LAUNCHER}' -WindowStyle Hidden -PassThru; Set-Content -Path '{d.pid_file}' -Value $p.Id"
"""

    def render(self, d: LaunchDescriptor) -> dict[str, str]:
        return {"start.bat": self.start(d), self.LAUNCHER: self.launch(d)}


class LaunchScriptGenerator():
    def __init__(self, settings: Settings, renderers=None):
        self.grace_seconds = settings.STOP_GRACE_SECONDS
        self.renderers = renderers or [PosixScriptRenderer(),
                                       WindowsScriptRenderer()]

    def generate(self, server_dir: Path, artifact: LaunchArtifact,
                 memory: str) -> LaunchDescriptor:
        server_dir = Path(server_dir)
        (server_dir / "logs").mkdir(parents=True, exist_ok=True)
        descriptor = LaunchDescriptor.for_artifact(artifact, memory,
                                                   self.grace_seconds)
        if artifact.kind == "runner":
            make_executable(server_dir / artifact.unix)
        for renderer in self.renderers:
            for filename, content in renderer.render(descriptor).items():
                path = server_dir / filename
                newline = "\r\n" if filename.endswith(".bat") else "\n"
                with open(path, "w", encoding="utf-8", newline=newline) as f:
                    f.write(content)
                if filename.endswith(".sh"):
                    make_executable(path)
        logger.info("Wrote %s launch scripts in %s",
                    descriptor.mode, server_dir)
        return descriptor


def make_executable(path: Path) -> None:
    if sys.platform == "win32" or not path.exists():
        return
    path.chmod(path.stat().st_mode | 0o755)
