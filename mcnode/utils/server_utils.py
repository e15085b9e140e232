from mcnode.core.config import Settings
from mcnode.models.servers import ServerPublic, ServerStateEnum
from mcnode.utils.fetcher import AssetFetcher
from mcnode.utils.installer import InstallerPipeline
from mcnode.utils.launch import LaunchScriptGenerator
from mcnode.utils.logtail import LogTailStreamer
from mcnode.utils.optimizer import OptimizationInstaller
from mcnode.utils.paths import ServerPaths
from mcnode.utils.properties import read_int, read_properties
from mcnode.utils.rcon import RconClient
from mcnode.utils.resolver import MetadataResolver
from mcnode.utils.stats import StatsCollector
from mcnode.utils.supervisor import ProcessSupervisor


class ServerManager():
    """Wires every component to the one Settings object of the process"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.paths = ServerPaths(settings.SERVERS_ROOT_ABSOLUTE)

        self.fetcher = AssetFetcher(settings)
        self.resolver = MetadataResolver(self.fetcher, settings)
        self.scripts = LaunchScriptGenerator(settings)
        self.optimizer = OptimizationInstaller(self.fetcher, settings)
        self.installer = InstallerPipeline(settings, self.paths,
                                           self.fetcher, self.resolver,
                                           self.scripts, self.optimizer)

        self.supervisor = ProcessSupervisor(settings, self.paths)
        self.stats = StatsCollector(settings, self.paths, self.supervisor)
        self.rcon = RconClient(settings, self.paths)
        self.logs = LogTailStreamer(settings, self.paths)

    def exists(self, name: str) -> bool:
        return self.paths.exists(name)

    def describe(self, name: str) -> ServerPublic:
        record = self.supervisor.record(name)
        props = read_properties(self.paths.properties(name))
        port = read_int(props, "server-port", 0) or None
        return ServerPublic(name=name,
                            state=self.supervisor.state(name),
                            running=record.live,
                            pid=record.pid if record.live else None,
                            port=port)

    def list_servers(self) -> list[ServerPublic]:
        return [self.describe(name) for name in self.paths.list_names()]

    def running_servers(self) -> list[str]:
        return [s.name for s in self.list_servers()
                if s.state is ServerStateEnum.running]
