import json
import logging
from pathlib import Path
from urllib.parse import quote, urlparse
from mcnode.core.config import Settings
from mcnode.models.errors import NodeError
from mcnode.models.servers import FlavorEnum
from mcnode.utils.fetcher import AssetFetcher
from mcnode.utils.progress import Progress


logger = logging.getLogger(__name__)

# Modrinth project slugs of server side performance mods
OPTIMIZATION_MODS: dict[str, list[str]] = {
    "fabric": [
        "lithium",
        "ferrite-core",
        "krypton",
        "c2me-fabric",
        "servercore",
        "memoryleakfix",
        "lazydfu",
    ],
    "forge": ["ferrite-core", "memoryleakfix", "lazydfu"],
    "neoforge": ["ferrite-core", "memoryleakfix", "lazydfu"],
}


class OptimizationInstaller():
    """
    Best effort download of performance mods from Modrinth. A mod that
    has no compatible build or fails to download is skipped.
    """

    def __init__(self, fetcher: AssetFetcher, settings: Settings):
        self.fetcher = fetcher
        self.api = settings.ENDPOINTS.MODRINTH_API

    async def latest_download_url(self, slug: str, mc_version: str,
                                  loader: str) -> str | None:
        url = f"{self.api}/project/{quote(slug, safe='')}/version"
        versions = await self.fetcher.fetch_json(url, params={
            "game_versions": json.dumps([mc_version]),
            "loaders": json.dumps([loader]),
            })
        if not isinstance(versions, list) or not versions:
            return None
        files = versions[0].get("files") or []
        primary = next((f for f in files if f.get("primary")),
                       files[0] if files else None)
        return primary.get("url") if primary else None

    async def install(self, server_dir: Path, flavor: FlavorEnum,
                      mc_version: str, progress: Progress) -> list[Path]:
        if flavor is FlavorEnum.vanilla:
            return []
        loader = flavor.value
        slugs = OPTIMIZATION_MODS[loader]
        mods_dir = Path(server_dir) / "mods"
        mods_dir.mkdir(parents=True, exist_ok=True)
        installed = []

        for i, slug in enumerate(slugs):
            step = i / len(slugs)
            try:
                url = await self.latest_download_url(slug, mc_version, loader)
                if not url:
                    logger.info("No %s build of %s for %s",
                                loader, slug, mc_version)
                    await progress.emit(
                            step, f"Skipping {slug}: no compatible build found."
                            )
                    continue
                filename = Path(urlparse(url).path).name or f"{slug}.jar"
                await progress.emit(step, f"Downloading {slug}…")
                installed.append(await self.fetcher.download(
                    url, mods_dir / filename,
                    lambda r, s=slug, i=i: progress.emit(
                        (i + r) / len(slugs), f"Downloading {s}…")
                    ))
            except (NodeError, OSError) as e:
                logger.warning("Optimization mod %s failed: %s", slug, e)
                await progress.emit(step, f"Failed {slug}: {e}")
        return installed
