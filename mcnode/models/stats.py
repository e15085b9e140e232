from sqlmodel import SQLModel


class RamStats(SQLModel):
    used_mb: int = 0
    total_mb: int | None = None
    percent: float | None = None


class GpuStats(SQLModel):
    used_mb: float
    total_mb: float
    percent: float


class PlayerCount(SQLModel):
    online: int
    max: int | None = None


class StatsSnapshot(SQLModel):
    pid: int | None = None
    running: bool = False
    cpu: float = 0.0
    ram: RamStats = RamStats()
    gpu: GpuStats | None = None
    players: PlayerCount | None = None
