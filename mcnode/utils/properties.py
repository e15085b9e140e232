import secrets
import string
from pathlib import Path


DEFAULT_PROPERTIES = {
    "gamemode": "survival",
    "online-mode": "true",
    "motd": "A Minecraft Server",
    "spawn-protection": "0",
    "view-distance": "10",
    "simulation-distance": "10",
    "max-players": "10",
    "white-list": "false",
    "enable-status": "true",
    "enable-rcon": "true",
}


def generate_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def read_properties(path: Path) -> dict[str, str]:
    """
    Parses a java style .properties file, returns {} when it is missing
    """
    props = {}
    path = Path(path)
    if not path.is_file():
        return props
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        props[key.strip()] = value.strip()
    return props


def read_int(props: dict[str, str], key: str, default: int) -> int:
    try:
        return int(props[key])
    except (KeyError, ValueError):
        return default


def write_properties(server_dir: Path, port: int, rcon_port: int,
                     rcon_password: str) -> bool:
    """
    Writes server.properties with our defaults. An existing file is
    never touched, returns whether a file was written.
    """
    path = Path(server_dir) / "server.properties"
    if path.exists():
        return False
    props = {"server-port": str(port), **DEFAULT_PROPERTIES,
             "rcon.port": str(rcon_port),
             "rcon.password": rcon_password}
    path.write_text(
            "".join(f"{key}={value}\n" for key, value in props.items()),
            encoding="utf-8"
            )
    return True


def write_eula(server_dir: Path, accept: bool) -> None:
    (Path(server_dir) / "eula.txt").write_text(
            f"eula={'true' if accept else 'false'}\n", encoding="utf-8"
            )
