import logging
import re
from pydantic import BaseModel
from mcnode.core.config import Settings
from mcnode.models.errors import ConfigError, NotFoundError
from mcnode.models.servers import FlavorEnum
from mcnode.utils.fetcher import AssetFetcher


logger = logging.getLogger(__name__)

NEOFORGE_VERSION_RE = re.compile(r"<version>([^<]+)</version>")


class ResolvedArtifact(BaseModel):
    flavor: FlavorEnum
    version: str
    url: str
    # The loader build when it differs from the minecraft version
    build: str | None = None


class MetadataResolver():
    """
    Maps a flavor plus a version token to a concrete minecraft version and
    the download url of the artifact that flavor needs. Nothing is cached,
    every call hits the metadata endpoints again.
    """

    def __init__(self, fetcher: AssetFetcher, settings: Settings):
        self.fetcher = fetcher
        self.endpoints = settings.ENDPOINTS

    async def latest_vanilla(self) -> str:
        manifest = await self.fetcher.fetch_json(
                self.endpoints.MOJANG_MANIFEST
                )
        release = (manifest.get("latest") or {}).get("release")
        if release:
            return release
        for entry in manifest.get("versions", []):
            if entry.get("type") == "release":
                return entry["id"]
        raise NotFoundError("No release found in the version manifest")

    async def resolve_version(self, version: str) -> str:
        if not version or version.lower() == "latest":
            return await self.latest_vanilla()
        return version

    async def vanilla_server_url(self, version: str) -> str:
        manifest = await self.fetcher.fetch_json(
                self.endpoints.MOJANG_MANIFEST
                )
        match = next((v for v in manifest.get("versions", [])
                      if v.get("id") == version), None)
        if match is None:
            raise NotFoundError(f"Version {version} not found")
        meta = await self.fetcher.fetch_json(match["url"])
        url = ((meta.get("downloads") or {}).get("server") or {}).get("url")
        if not url:
            raise NotFoundError(f"No server jar for {version}")
        return url

    async def fabric_installer_url(self) -> tuple[str, str]:
        items = await self.fetcher.fetch_json(
                self.endpoints.FABRIC_INSTALLERS
                )
        if not items:
            raise NotFoundError("Fabric installer list is empty")
        chosen = next((x for x in items if x.get("stable")), items[0])
        v = chosen["version"]
        return (f"{self.endpoints.FABRIC_MAVEN}/net/fabricmc/fabric-installer/"
                f"{v}/fabric-installer-{v}.jar"), v

    async def forge_installer_url(self, mc: str) -> tuple[str, str]:
        promos = await self.fetcher.fetch_json(self.endpoints.FORGE_PROMOS)
        promos = promos.get("promos") or {}
        build = promos.get(f"{mc}-recommended") or promos.get(f"{mc}-latest")
        if not build:
            raise NotFoundError(f"No Forge build for {mc}")
        ver = f"{mc}-{build}"
        return (f"{self.endpoints.FORGE_MAVEN}/net/minecraftforge/forge/"
                f"{ver}/forge-{ver}-installer.jar"), ver

    @staticmethod
    def neoforge_line(mc: str) -> str:
        """
        NeoForge numbers builds after the minecraft minor line,
        1.21.1 -> "21.", 26.1 -> "26."
        """
        parts = mc.split(".")
        line = parts[1] if parts[0] == "1" and len(parts) > 1 else parts[0]
        return f"{line}."

    async def neoforge_installer_url(self, mc: str) -> tuple[str, str]:
        xml = await self.fetcher.fetch_text(self.endpoints.NEOFORGE_METADATA)
        versions = NEOFORGE_VERSION_RE.findall(xml)
        if not versions:
            raise NotFoundError("NeoForge metadata empty")
        line = self.neoforge_line(mc)
        candidates = [v for v in versions if v.startswith(line)]
        chosen = candidates[-1] if candidates else versions[-1]
        if not candidates:
            logger.warning("No NeoForge build for %s, using %s", mc, chosen)
        return (f"{self.endpoints.NEOFORGE_MAVEN}/net/neoforged/neoforge/"
                f"{chosen}/neoforge-{chosen}-installer.jar"), chosen

    async def artifact(self, flavor: FlavorEnum,
                       version: str) -> ResolvedArtifact:
        """Download coordinate for an already concrete version"""
        build = None
        if flavor is FlavorEnum.vanilla:
            url = await self.vanilla_server_url(version)
        elif flavor is FlavorEnum.fabric:
            url, build = await self.fabric_installer_url()
        elif flavor is FlavorEnum.forge:
            url, build = await self.forge_installer_url(version)
        elif flavor is FlavorEnum.neoforge:
            url, build = await self.neoforge_installer_url(version)
        else:
            raise ConfigError(f"Unknown flavor: {flavor}")
        logger.info("Resolved %s %s -> %s", flavor.value, version, url)
        return ResolvedArtifact(flavor=flavor, version=version, url=url,
                                build=build)

    async def resolve(self, flavor: FlavorEnum,
                      version: str) -> ResolvedArtifact:
        concrete = await self.resolve_version(version)
        return await self.artifact(flavor, concrete)
