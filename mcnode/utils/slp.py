"""
Minecraft Server List Ping, the unauthenticated status query a client
sends before joining. Only what is needed for player counts.
"""
import asyncio
import json
import struct
from mcnode.models.errors import StatusPingError


def encode_varint(value: int) -> bytes:
    if value < 0:
        value += 1 << 32
    result = b""
    while True:
        byte = value & 0x7F
        value >>= 7
        if value != 0:
            byte |= 0x80
        result += struct.pack("B", byte)
        if value == 0:
            return result


async def read_varint(reader: asyncio.StreamReader) -> int:
    result = 0
    for shift in range(0, 35, 7):
        byte = (await reader.readexactly(1))[0]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if result & (1 << 31):
                result -= 1 << 32
            return result
    raise StatusPingError("VarInt too long")


def packet(packet_id: int, payload: bytes = b"") -> bytes:
    data = encode_varint(packet_id) + payload
    return encode_varint(len(data)) + data


def handshake(host: str, port: int) -> bytes:
    host_bytes = host.encode("utf-8")
    return packet(0x00,
                  encode_varint(-1)
                  + encode_varint(len(host_bytes)) + host_bytes
                  + struct.pack(">H", port)
                  + encode_varint(1))


async def _query(host: str, port: int) -> dict:
    reader, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(handshake(host, port) + packet(0x00))
        await writer.drain()
        await read_varint(reader)  # packet length
        if await read_varint(reader) != 0x00:
            raise StatusPingError("Unexpected status packet")
        length = await read_varint(reader)
        return json.loads((await reader.readexactly(length)).decode("utf-8"))
    finally:
        writer.close()


async def status(host: str, port: int, timeout: float = 5.0) -> dict:
    """
    Returns the status json of the server, e.g.
    {"players": {"online": 1, "max": 20}, "version": {...}, ...}
    Raises StatusPingError on anything going wrong, offline included.
    """
    try:
        return await asyncio.wait_for(_query(host, port), timeout)
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError,
            ValueError) as e:
        raise StatusPingError(f"Status ping to {host}:{port} failed: {e}") from e
