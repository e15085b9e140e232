import asyncio
import json
import subprocess
import pytest
from mcnode.models.errors import StatusPingError
from mcnode.utils import slp
from mcnode.utils.server_utils import ServerManager
from mcnode.tests.utils.creators import (
        create_server_dir,
        dead_pid,
        unused_port,
        write_pid
        )


STATUS = {
    "version": {"name": "1.21.1", "protocol": 767},
    "players": {"online": 3, "max": 20},
    "description": {"text": "A Minecraft Server"},
}


def status_handler(status):
    async def answer_status(reader: asyncio.StreamReader,
                            writer: asyncio.StreamWriter):
        try:
            # handshake then status request, both length prefixed
            for _ in range(2):
                length = await slp.read_varint(reader)
                await reader.readexactly(length)
            body = json.dumps(status).encode()
            writer.write(slp.packet(0x00,
                                    slp.encode_varint(len(body)) + body))
            await writer.drain()
        finally:
            writer.close()
    return answer_status


@pytest.fixture(name="sleeper")
def sleeper_fixture():
    proc = subprocess.Popen(["sleep", "30"])
    yield proc
    proc.kill()
    proc.wait()


def test_varint_encoding():
    assert slp.encode_varint(0) == b"\x00"
    assert slp.encode_varint(300) == b"\xac\x02"
    assert slp.encode_varint(-1) == b"\xff\xff\xff\xff\x0f"


@pytest.mark.asyncio()
async def test_read_varint_negative():
    reader = asyncio.StreamReader()
    reader.feed_data(b"\xff\xff\xff\xff\x0f")
    reader.feed_eof()
    assert await slp.read_varint(reader) == -1


@pytest.mark.asyncio()
async def test_status_offline():
    with pytest.raises(StatusPingError):
        await slp.status("127.0.0.1", unused_port(), timeout=0.5)


@pytest.mark.asyncio()
async def test_never_started_server(manager: ServerManager):
    create_server_dir(manager)

    snapshot = await manager.stats.collect("mc1")

    assert snapshot.pid is None
    assert not snapshot.running
    assert snapshot.cpu == 0.0
    assert snapshot.ram.used_mb == 0
    assert snapshot.players is None


@pytest.mark.asyncio()
async def test_stale_pid_is_reported_not_running(manager: ServerManager):
    create_server_dir(manager)
    stale = dead_pid()
    write_pid(manager, "mc1", stale)

    snapshot = await manager.stats.collect("mc1")

    assert snapshot.pid == stale
    assert not snapshot.running
    assert snapshot.cpu == 0.0


@pytest.mark.asyncio()
async def test_live_process_and_players(manager: ServerManager, sleeper):
    server = await asyncio.start_server(status_handler(STATUS),
                                        "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    create_server_dir(manager, port=port)
    write_pid(manager, "mc1", sleeper.pid)

    try:
        snapshot = await manager.stats.collect("mc1")
    finally:
        server.close()
        await server.wait_closed()

    assert snapshot.running
    assert snapshot.pid == sleeper.pid
    assert snapshot.cpu >= 0.0
    assert snapshot.ram.percent is not None
    assert snapshot.ram.total_mb > 0
    assert snapshot.players.online == 3
    assert snapshot.players.max == 20


@pytest.mark.asyncio()
async def test_gpu_without_nvidia_smi(manager: ServerManager,
                                            monkeypatch):
    monkeypatch.setattr("mcnode.utils.stats.NVIDIA_SMI",
                        ["definitely-not-nvidia-smi"])
    assert await manager.stats.sample_gpu() is None


@pytest.mark.asyncio()
async def test_malformed_status_only_drops_players(manager: ServerManager,
                                                   sleeper):
    for status in ([1, 2], {"players": "many"}, {"players": {"online": "x"}}):
        server = await asyncio.start_server(status_handler(status),
                                            "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        create_server_dir(manager, f"mc{port}", port=port)
        write_pid(manager, f"mc{port}", sleeper.pid)

        try:
            snapshot = await manager.stats.collect(f"mc{port}")
        finally:
            server.close()
            await server.wait_closed()

        assert snapshot.running
        assert snapshot.players is None


@pytest.mark.asyncio()
async def test_hung_gpu_utility_is_abandoned(manager: ServerManager,
                                             monkeypatch):
    monkeypatch.setattr("mcnode.utils.stats.NVIDIA_SMI", ["sleep", "30"])

    gpu = await asyncio.wait_for(manager.stats.sample_gpu(), 5)

    assert gpu is None
