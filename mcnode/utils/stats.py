import asyncio
import logging
import psutil
from mcnode.core.config import Settings
from mcnode.models.errors import StatusPingError
from mcnode.models.stats import GpuStats, PlayerCount, RamStats, StatsSnapshot
from mcnode.utils import slp
from mcnode.utils.paths import ServerPaths
from mcnode.utils.properties import read_int, read_properties
from mcnode.utils.supervisor import ProcessSupervisor


logger = logging.getLogger(__name__)

NVIDIA_SMI = [
    "nvidia-smi",
    "--query-gpu=memory.used,memory.total,utilization.gpu",
    "--format=csv,noheader,nounits",
]


class StatsCollector():
    """
    Builds a fresh StatsSnapshot per call. The resource, player and gpu
    samples are independent, a failing sample only drops its own field.
    """

    def __init__(self, settings: Settings, paths: ServerPaths,
                 supervisor: ProcessSupervisor):
        self.settings = settings
        self.paths = paths
        self.supervisor = supervisor

    def sample_process(self, pid: int) -> tuple[float, RamStats]:
        proc = psutil.Process(pid)
        cpu = proc.cpu_percent(interval=self.settings.CPU_SAMPLE_SECONDS)
        used_mb = proc.memory_info().rss / (1024 * 1024)
        total_mb = psutil.virtual_memory().total / (1024 * 1024)
        return cpu, RamStats(used_mb=round(used_mb),
                             total_mb=round(total_mb),
                             percent=round(used_mb / total_mb * 100, 1))

    async def sample_resources(self, pid: int | None,
                             running: bool) -> tuple[float, RamStats]:
        if not running:
            return 0.0, RamStats()
        try:
            return await asyncio.to_thread(self.sample_process, pid)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.debug("Resource sample for pid %s failed: %s", pid, e)
            return 0.0, RamStats()

    async def count_players(self, name: str) -> PlayerCount | None:
        try:
            props = read_properties(self.paths.properties(name))
            port = read_int(props, "server-port", 25565)
            res = await slp.status("127.0.0.1", port,
                                   self.settings.STATUS_TIMEOUT)
            players = res.get("players") if isinstance(res, dict) else None
            if not isinstance(players, dict):
                raise StatusPingError(f"No player info in status reply: {res!r:.80}")
            return PlayerCount(online=int(players.get("online", 0)),
                               max=players.get("max"))
        except (StatusPingError, OSError, AttributeError, TypeError,
                ValueError) as e:
            # Most likely simply offline
            logger.debug("Status ping for %s failed: %s", name, e)
            return None

    async def sample_gpu(self) -> GpuStats | None:
        try:
            proc = await asyncio.subprocess.create_subprocess_exec(
                    *NVIDIA_SMI,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                    )
        except OSError:
            return None
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(),
                                               self.settings.STATUS_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug("nvidia-smi timed out, killing PID %s", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            return None
        if proc.returncode != 0:
            return None
        try:
            first = stdout.decode().strip().splitlines()[0]
            used, total, util = (float(s.strip()) for s in first.split(","))
        except (IndexError, ValueError):
            return None
        return GpuStats(used_mb=used, total_mb=total, percent=util)

    async def collect(self, name: str) -> StatsSnapshot:
        record = self.supervisor.record(name)
        running = record.live
        (cpu, ram), players, gpu = await asyncio.gather(
                self.sample_resources(record.pid, running),
                self.count_players(name),
                self.sample_gpu(),
                )
        return StatsSnapshot(pid=record.pid, running=running, cpu=cpu,
                             ram=ram, gpu=gpu, players=players)
