import asyncio
import logging
import re
from collections import deque
from pathlib import Path
from typing import AsyncIterator
from mcnode.core.config import Settings
from mcnode.models.errors import ConfigError, InstallerError, NodeError
from mcnode.models.servers import FlavorEnum, ServerCreate, ServerCreated
from mcnode.utils import modpack
from mcnode.utils.fetcher import AssetFetcher
from mcnode.utils.launch import LaunchArtifact, LaunchScriptGenerator
from mcnode.utils.optimizer import OptimizationInstaller
from mcnode.utils.paths import ServerPaths
from mcnode.utils.progress import Progress, ProgressChannel, Say
from mcnode.utils.properties import (
        generate_password,
        write_eula,
        write_properties
        )
from mcnode.utils.resolver import MetadataResolver


logger = logging.getLogger(__name__)

MEMORY_RE = re.compile(r"\d+[MmGg]")

FLAVOR_LABELS = {
    FlavorEnum.fabric: "Fabric",
    FlavorEnum.forge: "Forge",
    FlavorEnum.neoforge: "NeoForge",
}

# Jar name the installer leaves behind, besides the installer itself
LAUNCH_JAR_PATTERNS = {
    FlavorEnum.fabric: "fabric-server-launch*.jar",
    FlavorEnum.forge: "forge-*.jar",
    FlavorEnum.neoforge: "neoforge-*.jar",
}


class InstallerPipeline():
    """
    Provisions one server directory: resolve, download, install, write
    launch scripts, optionally add mods. Runs strictly in sequence and
    reports through a Progress.
    """

    def __init__(self, settings: Settings, paths: ServerPaths,
                 fetcher: AssetFetcher, resolver: MetadataResolver,
                 scripts: LaunchScriptGenerator,
                 optimizer: OptimizationInstaller):
        self.settings = settings
        self.paths = paths
        self.fetcher = fetcher
        self.resolver = resolver
        self.scripts = scripts
        self.optimizer = optimizer

    @staticmethod
    def parse_flavor(flavor: str) -> FlavorEnum:
        try:
            return FlavorEnum((flavor or "").lower())
        except ValueError:
            raise ConfigError(f"Unknown flavor: {flavor}")

    @staticmethod
    def check_memory(memory: str) -> str:
        if not MEMORY_RE.fullmatch(memory or ""):
            raise ConfigError(
                    f"Invalid memory size {memory!r}, expected e.g. 2G or 512M"
                    )
        return memory.upper()

    async def create(self, request: ServerCreate, say: Say) -> ServerCreated:
        # Everything here must fail before touching the network
        flavor = self.parse_flavor(request.flavor)
        memory = self.check_memory(request.memory)
        server_dir = self.paths.server(request.name)

        p = Progress(say)
        server_dir.mkdir(parents=True, exist_ok=True)
        (server_dir / "logs").mkdir(exist_ok=True)

        await p.start(0.05, f"Preparing “{request.name}”…")
        write_properties(server_dir, request.port, self.settings.RCON_PORT,
                         generate_password())
        write_eula(server_dir, request.eula)
        version = await self.resolver.resolve_version(request.version)
        await p.end(f"Using Minecraft {version}.")

        if request.modpack_url:
            await self.install_modpack(server_dir, request.modpack_url, p)

        if flavor is FlavorEnum.vanilla:
            artifact = await self.install_vanilla(server_dir, version, p)
        else:
            artifact = await self.install_loader(server_dir, flavor,
                                                 version, p)

        await p.start(0.10, "Creating launch scripts…")
        self.scripts.generate(server_dir, artifact, memory)
        await p.end("Launch scripts ready.")

        if request.optimize and flavor is not FlavorEnum.vanilla:
            await p.start(0.10, "Installing optimization mods…")
            await self.optimizer.install(server_dir, flavor, version, p)
            await p.end("Optimization mods installed.")

        await p.start(1, "Finalizing…")
        await p.end("Finished setup.")
        logger.info("Provisioned %s (%s %s)", request.name,
                    flavor.value, version)
        return ServerCreated(name=request.name, flavor=flavor,
                             version=version, dir=server_dir)

    async def install_modpack(self, server_dir: Path, url: str,
                              p: Progress) -> None:
        archive = server_dir / "server-pack.zip"
        await p.start(0.20, "Fetching server pack…")
        await self.fetcher.download(
                url, archive,
                lambda r: p.emit(r, "Downloading server pack…")
                )
        await p.end("Downloaded server pack.")

        modpack.verify_archive(archive, server_dir)

        await p.start(0.10, "Extracting server pack…")
        await asyncio.to_thread(modpack.extract_server_pack,
                                archive, server_dir)
        archive.unlink(missing_ok=True)
        await p.end("Server pack extracted.")

    async def install_vanilla(self, server_dir: Path, version: str,
                              p: Progress) -> LaunchArtifact:
        resolved = await self.resolver.artifact(FlavorEnum.vanilla, version)
        await p.start(0.35, "Downloading vanilla server…")
        await self.fetcher.download(
                resolved.url, server_dir / "server.jar",
                lambda r: p.emit(r, "Downloading vanilla server…")
                )
        await p.end("Vanilla server downloaded.")
        return LaunchArtifact(kind="jar", unix="server.jar")

    async def install_loader(self, server_dir: Path, flavor: FlavorEnum,
                             version: str, p: Progress) -> LaunchArtifact:
        label = FLAVOR_LABELS[flavor]
        resolved = await self.resolver.artifact(flavor, version)
        installer_jar = server_dir / f"{flavor.value}-installer.jar"

        await p.start(0.10, f"Fetching {label} installer…")
        await self.fetcher.download(
                resolved.url, installer_jar,
                lambda r: p.emit(r, f"Fetching {label} installer…")
                )
        await p.end(f"{label} installer ready.")

        await p.start(0.25, f"Running {label} installer…")
        if flavor is FlavorEnum.fabric:
            args = ["server", "-mcversion", version, "-downloadMinecraft"]
        else:
            args = ["--installServer"]
        await self.run_installer(server_dir, installer_jar, args)
        await p.end(f"{label} installed.")
        return self.find_launch_artifact(server_dir, flavor)

    async def run_installer(self, cwd: Path, jar: Path,
                            args: list[str]) -> None:
        java = self.settings.JAVA_PATH
        logger.info("Running %s -jar %s %s", java, jar.name, " ".join(args))
        try:
            proc = await asyncio.subprocess.create_subprocess_exec(
                    java, "-jar", str(jar), *args,
                    cwd=cwd,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    )
        except FileNotFoundError as e:
            raise InstallerError(
                    f"Java not found ({java}), install a JDK or set JAVA_PATH"
                    ) from e

        tail = deque(maxlen=10)
        async for line in proc.stdout:
            sanitized_line = line.decode("utf-8", errors="replace").strip()
            if sanitized_line:
                logger.debug("[installer] %s", sanitized_line)
                tail.append(sanitized_line)
        code = await proc.wait()
        if code != 0:
            raise InstallerError(
                    f"Installer failed: {jar.name} exited with {code}"
                    + (f" ({tail[-1]})" if tail else "")
                    )

    @staticmethod
    def find_launch_artifact(server_dir: Path,
                             flavor: FlavorEnum) -> LaunchArtifact:
        """
        Prefers the installer's own run script, then a launch jar of the
        flavor, then server.jar
        """
        if (server_dir / "run.sh").exists() or \
                (server_dir / "run.bat").exists():
            return LaunchArtifact(kind="runner", unix="run.sh", win="run.bat")
        pattern = LAUNCH_JAR_PATTERNS.get(flavor)
        if pattern:
            for jar in sorted(server_dir.glob(pattern)):
                if "installer" not in jar.name:
                    return LaunchArtifact(kind="jar", unix=jar.name)
        logger.warning("No %s launch jar in %s, using server.jar",
                       flavor.value, server_dir)
        return LaunchArtifact(kind="jar", unix="server.jar")

    async def stream(self, request: ServerCreate) -> AsyncIterator[str]:
        """
        Runs create() as a task and yields its progress lines, ending with
        exactly one "DONE <json>" or "ERROR <message>" line.
        """
        channel = ProgressChannel(self.settings.PROGRESS_QUEUE_SIZE)

        async def run():
            try:
                result = await self.create(request, channel.put)
                line = f"DONE {result.model_dump_json()}"
            except NodeError as e:
                logger.warning("Provisioning %s failed: %s", request.name, e)
                line = f"ERROR {e}"
            except Exception as e:
                logger.exception("Provisioning %s crashed", request.name)
                line = f"ERROR {str(e) or e.__class__.__name__}"
            await channel.put(" ".join(line.splitlines()))
            await channel.close()

        yield "0% Starting…"
        task = asyncio.create_task(run())
        try:
            async for line in channel:
                yield line
        finally:
            if not task.done():
                # Consumer went away, downloads may leave partial files
                logger.info("Provisioning %s abandoned", request.name)
                task.cancel()
