import fnmatch
import logging
import shutil
import zipfile
from pathlib import Path
from mcnode.models.errors import VerificationError


logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
SPACE_FACTOR = 2.5

# Client side content shipped in server packs
CLIENT_ONLY_DIRS = ("overrides", "resourcepacks", "shaderpacks")
EXCLUDE_PATTERNS = (
        "overrides/*",
        "resourcepacks/*",
        "shaderpacks/*",
        "*.zip",
        "*.zip.txt",
        )


def assert_zip_magic(path: Path) -> None:
    with open(path, "rb") as f:
        head = f.read(4)
    if head != ZIP_MAGIC:
        raise VerificationError(
                "Downloaded file is not a ZIP (bad magic bytes)."
                )


def free_bytes(path: Path) -> int | None:
    try:
        return shutil.disk_usage(path).free
    except OSError:
        return None


def assert_free_space(archive: Path, target: Path) -> None:
    needed = Path(archive).stat().st_size * SPACE_FACTOR
    free = free_bytes(target)
    if free is not None and free < needed:
        raise VerificationError(
                "Not enough disk space to extract server pack. "
                f"Have ~{free / 1024 ** 3:.1f} GB, "
                f"need at least ~{needed / 1024 ** 3:.1f} GB."
                )


def is_excluded(member: str) -> bool:
    member = member.replace("\\", "/")
    return any(fnmatch.fnmatch(member, pattern)
               for pattern in EXCLUDE_PATTERNS)


def verify_archive(archive: Path, target: Path) -> None:
    """Raises VerificationError before anything gets extracted"""
    assert_zip_magic(archive)
    assert_free_space(archive, target)


def extract_server_pack(archive: Path, target: Path) -> int:
    """
    Extracts a server pack into target while leaving out client only
    content. Returns the number of extracted entries.
    """
    count = 0
    try:
        with zipfile.ZipFile(archive) as zf:
            for member in zf.infolist():
                if is_excluded(member.filename):
                    continue
                zf.extract(member, target)
                count += 1
    except (zipfile.BadZipFile, OSError) as e:
        remove_client_dirs(target)
        raise VerificationError(
                f"Failed to extract server pack (disk full or corrupt zip): {e}"
                ) from e
    remove_client_dirs(target)
    logger.info("Extracted %d entries from %s", count, archive)
    return count


def remove_client_dirs(target: Path) -> None:
    for name in CLIENT_ONLY_DIRS:
        shutil.rmtree(Path(target) / name, ignore_errors=True)
