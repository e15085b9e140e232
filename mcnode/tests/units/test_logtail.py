import asyncio
import shutil
import pytest
import psutil
from mcnode.utils.server_utils import ServerManager
from mcnode.tests.utils.creators import create_server_dir


pytestmark = pytest.mark.skipif(shutil.which("tail") is None,
                                reason="requires tail")


async def next_line(stream) -> str:
    while True:
        event = await asyncio.wait_for(stream.__anext__(), 5)
        if event.kind == "line":
            return event.data


def tail_processes(log_file) -> list[psutil.Process]:
    found = []
    for proc in psutil.Process().children(recursive=True):
        try:
            if str(log_file) in proc.cmdline():
                found.append(proc)
        except psutil.NoSuchProcess:
            pass
    return found


@pytest.mark.asyncio()
async def test_backlog_then_new_lines(manager: ServerManager):
    create_server_dir(manager)
    log_file = manager.paths.log("mc1")
    log_file.write_text("[Server thread/INFO]: Starting\n"
                        "[Server thread/INFO]: Done (3.1s)!\n")

    stream = manager.logs.follow("mc1")
    try:
        assert await next_line(stream) == "[Server thread/INFO]: Starting"
        assert await next_line(stream) == "[Server thread/INFO]: Done (3.1s)!"
        with open(log_file, "a") as f:
            f.write("[Server thread/INFO]: Steve joined the game\n")
        assert await next_line(stream) == \
            "[Server thread/INFO]: Steve joined the game"
    finally:
        await stream.aclose()


@pytest.mark.asyncio()
async def test_keepalive_when_idle(manager: ServerManager):
    create_server_dir(manager)
    manager.paths.log("mc1").write_text("")

    stream = manager.logs.follow("mc1")
    try:
        event = await asyncio.wait_for(stream.__anext__(), 5)
        assert event.kind == "keepalive"
    finally:
        await stream.aclose()


@pytest.mark.asyncio()
async def test_closing_stream_ends_tail(manager: ServerManager):
    create_server_dir(manager)
    log_file = manager.paths.log("mc1")
    log_file.write_text("hello\n")

    stream = manager.logs.follow("mc1")
    assert await next_line(stream) == "hello"
    assert tail_processes(log_file)

    await stream.aclose()

    assert not tail_processes(log_file)


async def wait_for_line(stream, expected: str):
    # tail reports missing and truncated files on the same stream
    while await next_line(stream) != expected:
        pass


@pytest.mark.asyncio()
async def test_follows_missing_then_truncated_file(manager: ServerManager):
    create_server_dir(manager)
    log_file = manager.paths.log("mc1")

    stream = manager.logs.follow("mc1")
    try:
        # tail is running before the file exists
        await asyncio.wait_for(stream.__anext__(), 5)
        log_file.write_text("[Server thread/INFO]: first boot\n")
        await wait_for_line(stream, "[Server thread/INFO]: first boot")

        log_file.write_text("rebooted\n")
        await wait_for_line(stream, "rebooted")
    finally:
        await stream.aclose()


@pytest.mark.asyncio()
async def test_long_line_is_delivered(manager: ServerManager):
    create_server_dir(manager)
    log_file = manager.paths.log("mc1")
    log_file.write_text("x" * 70000 + "\nshort\n")

    stream = manager.logs.follow("mc1")
    try:
        assert await next_line(stream) == "x" * 70000
        assert await next_line(stream) == "short"
    finally:
        await stream.aclose()


@pytest.mark.asyncio()
async def test_line_over_limit_is_dropped(manager: ServerManager):
    manager.logs.line_limit = 1024
    create_server_dir(manager)
    log_file = manager.paths.log("mc1")
    log_file.write_text("x" * 5000 + "\nshort\n")

    stream = manager.logs.follow("mc1")
    try:
        # Only a tail fragment of the long line may come through
        line = await next_line(stream)
        while line != "short":
            assert set(line) == {"x"}
            assert len(line) < 5000
            line = await next_line(stream)
    finally:
        await stream.aclose()
