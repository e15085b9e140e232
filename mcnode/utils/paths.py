from pathlib import Path
from mcnode.models.errors import ConfigError


class ServerPaths():
    """Filesystem layout of every instance below the servers root."""

    PID_FILE = "server.pid"
    LOG_FILE = "logs/latest.log"
    PROPERTIES_FILE = "server.properties"
    EULA_FILE = "eula.txt"

    def __init__(self, root: Path):
        self.root = Path(root)

    def server(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise ConfigError(f"Invalid server name: {name!r}")
        return self.root / name

    def pid(self, name: str) -> Path:
        return self.server(name) / self.PID_FILE

    def log(self, name: str) -> Path:
        return self.server(name) / self.LOG_FILE

    def properties(self, name: str) -> Path:
        return self.server(name) / self.PROPERTIES_FILE

    def start_sh(self, name: str) -> Path:
        return self.server(name) / "start.sh"

    def start_bat(self, name: str) -> Path:
        return self.server(name) / "start.bat"

    def jar(self, name: str) -> Path:
        return self.server(name) / "server.jar"

    def exists(self, name: str) -> bool:
        try:
            return self.server(name).is_dir()
        except ConfigError:
            return False

    def list_names(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())
