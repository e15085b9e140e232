from enum import Enum
from pathlib import Path
from sqlmodel import SQLModel, Field


class FlavorEnum(str, Enum):
    vanilla = "vanilla"
    fabric = "fabric"
    forge = "forge"
    neoforge = "neoforge"


class ServerStateEnum(str, Enum):
    unknown = "unknown"
    stopped = "stopped"
    starting = "starting"
    running = "running"
    stopping = "stopping"


#############################################################################
#                                  SERVER                                   #
#############################################################################
# A minecraft server installation living in <SERVERS_ROOT>/<name>/          #
#############################################################################
class ServerBase(SQLModel):
    name: str


class ServerCreate(ServerBase):
    # Flavor stays a plain string so an unknown flavor reaches the
    # pipeline and is reported on the progress stream
    flavor: str = FlavorEnum.vanilla.value
    version: str = "latest"
    memory: str = "2G"
    port: int = Field(default=25565, ge=1, le=65535)
    eula: bool = False
    modpack_url: str | None = None
    optimize: bool = False


class ServerCreated(ServerBase):
    flavor: FlavorEnum
    version: str
    dir: Path


class ServerPublic(ServerBase):
    state: ServerStateEnum
    running: bool
    pid: int | None = None
    port: int | None = None


#############################################################################
#                                 PROCESS                                   #
#############################################################################
class ProcessRecord(SQLModel):
    """What server.pid says and whether that pid is alive."""
    pid: int | None = None
    alive: bool = False

    @property
    def live(self) -> bool:
        return self.pid is not None and self.alive

    @property
    def stale(self) -> bool:
        return self.pid is not None and not self.alive


class ActionResult(SQLModel):
    ok: bool
    message: str
    pid: int | None = None
    pending: bool = False
    state: ServerStateEnum = ServerStateEnum.unknown


class RconCommand(SQLModel):
    command: str = ""


class RconReply(SQLModel):
    ok: bool
    out: str | None = None
    error: str | None = None
