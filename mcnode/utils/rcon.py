import asyncio
import logging
import random
import struct
from mcnode.core.config import Settings
from mcnode.models.errors import RconError
from mcnode.utils.paths import ServerPaths
from mcnode.utils.properties import read_int, read_properties


logger = logging.getLogger(__name__)

SERVERDATA_AUTH = 3
SERVERDATA_EXECCOMMAND = 2


def make_packet(req_id: int, pkt_type: int, payload: bytes) -> bytes:
    body = struct.pack("<ii", req_id, pkt_type) + payload + b"\x00\x00"
    return struct.pack("<i", len(body)) + body


async def read_packet(reader: asyncio.StreamReader) -> tuple[int, int, bytes]:
    size = struct.unpack("<i", await reader.readexactly(4))[0]
    if size < 10:
        raise RconError(f"Malformed RCON packet of size {size}")
    data = await reader.readexactly(size)
    req_id, pkt_type = struct.unpack("<ii", data[:8])
    return req_id, pkt_type, data[8:-2]


class RconClient():
    """
    One shot RCON: every call connects, authenticates, runs a single
    command and disconnects.
    """

    def __init__(self, settings: Settings, paths: ServerPaths):
        self.settings = settings
        self.paths = paths

    def connection_info(self, name: str,
                        password: str | None = None) -> tuple[int, str]:
        props = read_properties(self.paths.properties(name))
        port = read_int(props, "rcon.port", self.settings.RCON_PORT)
        password = (password
                    or self.settings.RCON_PASSWORD
                    or props.get("rcon.password")
                    or self.settings.RCON_DEFAULT_PASSWORD)
        return port, password

    async def _exchange(self, port: int, password: str, command: str) -> str:
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        try:
            auth_id = random.randint(1, 2147483647)
            writer.write(make_packet(auth_id, SERVERDATA_AUTH,
                                     password.encode("utf-8")))
            await writer.drain()
            req_id, _, _ = await read_packet(reader)
            if req_id == -1 or req_id != auth_id:
                raise RconError("RCON authentication failed")

            cmd_id = random.randint(1, 2147483647)
            writer.write(make_packet(cmd_id, SERVERDATA_EXECCOMMAND,
                                     command.encode("utf-8")))
            await writer.drain()
            _, _, payload = await read_packet(reader)
            return payload.decode("utf-8", errors="replace")
        finally:
            writer.close()

    async def send(self, name: str, command: str,
                   password: str | None = None) -> str:
        port, password = self.connection_info(name, password)
        try:
            out = await asyncio.wait_for(
                    self._exchange(port, password, command),
                    self.settings.RCON_TIMEOUT
                    )
        except asyncio.TimeoutError as e:
            raise RconError(f"RCON on port {port} timed out") from e
        except (OSError, asyncio.IncompleteReadError) as e:
            raise RconError(f"RCON on port {port} failed: {e}") from e
        logger.info("RCON %s: %s", name, command)
        return out
