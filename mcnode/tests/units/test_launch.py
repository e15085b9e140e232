import os
import shutil
import subprocess
import sys
import time
import pytest
from mcnode.core.config import Settings
from mcnode.utils.launch import (
        LaunchArtifact,
        LaunchDescriptor,
        LaunchScriptGenerator,
        PosixScriptRenderer,
        WindowsScriptRenderer,
        jvm_flags
        )
from mcnode.utils.supervisor import ProcessSupervisor


needs_bash = pytest.mark.skipif(
        sys.platform == "win32" or shutil.which("bash") is None,
        reason="requires bash"
        )

FAKE_JAVA = """#!/usr/bin/env bash
echo "fake java $@"
exec sleep 30
"""


def test_jvm_flags_substitute_memory():
    flags = jvm_flags("4G")
    assert flags[:2] == ["-Xms4G", "-Xmx4G"]
    assert "-XX:+UseG1GC" in flags
    assert not any("{mem}" in flag for flag in flags)


def test_direct_descriptor():
    d = LaunchDescriptor.for_artifact(
            LaunchArtifact(kind="jar", unix="server.jar"), "2G"
            )
    assert d.mode == "direct"
    assert d.args[-3:] == ["-jar", "server.jar", "nogui"]
    assert d.kill_pattern == "server.jar"


def test_delegated_descriptor():
    d = LaunchDescriptor.for_artifact(
            LaunchArtifact(kind="runner", unix="run.sh", win="run.bat"), "2G"
            )
    assert d.mode == "delegated"
    assert d.args == []
    assert PosixScriptRenderer().command(d) == "./run.sh"
    scripts = WindowsScriptRenderer().render(d)
    assert "call run.bat >> logs\\latest.log 2>&1" in scripts["launch.bat"]


def test_generate_writes_every_script(settings: Settings, tmp_path):
    server_dir = tmp_path / "mc1"
    server_dir.mkdir()

    d = LaunchScriptGenerator(settings).generate(
            server_dir, LaunchArtifact(kind="jar", unix="server.jar"), "3G"
            )

    start = (server_dir / "start.sh").read_text()
    assert "-Xmx3G" in start
    assert "-jar server.jar nogui" in start
    assert "echo $! > server.pid" in start
    assert "Already running" in start
    assert "pkill -f server.jar" in (server_dir / "stop.sh").read_text()
    assert "./start.sh" in (server_dir / "restart.sh").read_text()
    assert (server_dir / "logs").is_dir()
    assert d.pid_file == "server.pid"

    bat = (server_dir / "start.bat").read_bytes()
    assert b"\r\n" in bat
    assert b"-PassThru" in bat
    assert b"'launch.bat'" in bat
    assert b"-RedirectStandard" not in bat
    launcher = (server_dir / "launch.bat").read_bytes()
    assert b"-Xmx3G" in launcher
    assert b"nogui >> logs\\latest.log 2>&1\r\n" in launcher
    if sys.platform != "win32":
        assert os.access(server_dir / "start.sh", os.X_OK)


def test_generate_marks_runner_executable(settings: Settings, tmp_path):
    server_dir = tmp_path / "mc1"
    server_dir.mkdir()
    (server_dir / "run.sh").write_text("#!/usr/bin/env bash\n")

    LaunchScriptGenerator(settings).generate(
            server_dir,
            LaunchArtifact(kind="runner", unix="run.sh", win="run.bat"),
            "2G"
            )

    assert "nohup ./run.sh" in (server_dir / "start.sh").read_text()
    if sys.platform != "win32":
        assert os.access(server_dir / "run.sh", os.X_OK)


def test_custom_renderers(settings: Settings, tmp_path):
    server_dir = tmp_path / "mc1"
    server_dir.mkdir()

    LaunchScriptGenerator(settings, [PosixScriptRenderer()]).generate(
            server_dir, LaunchArtifact(kind="jar", unix="server.jar"), "2G"
            )

    assert (server_dir / "start.sh").exists()
    assert not (server_dir / "start.bat").exists()


def wait_for(predicate, timeout: float = 5) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return False


@needs_bash
def test_generated_scripts_start_and_stop(settings: Settings, tmp_path):
    server_dir = tmp_path / "mc1"
    server_dir.mkdir()
    java = tmp_path / "java"
    java.write_text(FAKE_JAVA)
    java.chmod(0o755)
    LaunchScriptGenerator(settings).generate(
            server_dir, LaunchArtifact(kind="jar", unix="server.jar"), "1G"
            )
    env = {**os.environ, "JAVA_PATH": str(java)}
    pid_file = server_dir / "server.pid"

    subprocess.run(["bash", "./start.sh"], cwd=server_dir, env=env,
                   check=True)
    assert wait_for(pid_file.exists)
    pid = int(pid_file.read_text())
    log_file = server_dir / "logs" / "latest.log"
    assert wait_for(lambda: log_file.exists()
                    and "fake java" in log_file.read_text())

    # A second start is a no-op while the pid answers
    second = subprocess.run(["bash", "./start.sh"], cwd=server_dir, env=env,
                            check=True, capture_output=True, text=True)
    assert f"Already running (PID {pid})" in second.stdout

    subprocess.run(["bash", "./stop.sh"], cwd=server_dir, check=True)
    assert not pid_file.exists()
    assert wait_for(lambda: not ProcessSupervisor.is_running(pid))
