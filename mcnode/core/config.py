from pathlib import Path
from typing import Literal
from pydantic import BaseModel, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MetadataEndpoints(BaseModel):
    MOJANG_MANIFEST: str = (
        "https://piston-meta.mojang.com/mc/game/version_manifest_v2.json"
    )
    FABRIC_INSTALLERS: str = "https://meta.fabricmc.net/v2/versions/installer"
    FABRIC_MAVEN: str = "https://maven.fabricmc.net"
    FORGE_PROMOS: str = (
        "https://files.minecraftforge.net/net/minecraftforge/forge/"
        "promotions_slim.json"
    )
    FORGE_MAVEN: str = "https://maven.minecraftforge.net"
    NEOFORGE_METADATA: str = (
        "https://maven.neoforged.net/releases/net/neoforged/neoforge/"
        "maven-metadata.xml"
    )
    NEOFORGE_MAVEN: str = "https://maven.neoforged.net/releases"
    MODRINTH_API: str = "https://api.modrinth.com/v2"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
            env_file=".env",
            env_ignore_empty=True,
            env_nested_delimiter='__'
            )

    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    SERVERS_ROOT: Path = Path("servers")
    JAVA_PATH: str = "java"

    # Explicit override, wins over the per-instance rcon.password
    RCON_PASSWORD: str | None = None
    RCON_DEFAULT_PASSWORD: str = "changeme123"
    RCON_PORT: int = 25575
    RCON_TIMEOUT: float = 5.0

    USER_AGENT: str = "mc-panel/1.0"
    HTTP_TIMEOUT: float = 60.0
    MAX_REDIRECTS: int = 10
    PROGRESS_QUEUE_SIZE: int = 64

    PID_POLL_INTERVAL: float = 0.15
    PID_POLL_ATTEMPTS: int = 14
    STOP_GRACE_SECONDS: int = 2
    FALLBACK_MEMORY: str = "4G"

    STATUS_TIMEOUT: float = 5.0
    CPU_SAMPLE_SECONDS: float = 0.2

    LOG_TAIL_LINES: int = 200
    # Longest log line delivered whole, longer ones are dropped
    LOG_LINE_LIMIT: int = 1024 * 1024
    LOG_KEEPALIVE_SECONDS: float = 15.0

    ENDPOINTS: MetadataEndpoints = MetadataEndpoints()

    @computed_field
    @property
    def SERVERS_ROOT_ABSOLUTE(self) -> Path:
        return self.SERVERS_ROOT.expanduser().resolve()
