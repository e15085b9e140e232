import zipfile
from pathlib import Path
import pytest
from mcnode.models.errors import VerificationError
from mcnode.utils import modpack


def make_pack(path: Path, members: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def test_non_zip_is_rejected(tmp_path):
    archive = tmp_path / "server-pack.zip"
    archive.write_text("<html>Not found</html>")

    with pytest.raises(VerificationError, match="not a ZIP"):
        modpack.verify_archive(archive, tmp_path)


def test_not_enough_space(tmp_path, monkeypatch):
    archive = make_pack(tmp_path / "server-pack.zip", {"mods/a.jar": "a"})
    monkeypatch.setattr(modpack, "free_bytes", lambda path: 1)

    with pytest.raises(VerificationError, match="Not enough disk space"):
        modpack.verify_archive(archive, tmp_path)


def test_unknown_free_space_passes(tmp_path, monkeypatch):
    archive = make_pack(tmp_path / "server-pack.zip", {"mods/a.jar": "a"})
    monkeypatch.setattr(modpack, "free_bytes", lambda path: None)

    modpack.verify_archive(archive, tmp_path)


@pytest.mark.parametrize("member, excluded", [
    ("overrides/config/a.toml", True),
    ("resourcepacks/pack.zip", True),
    ("shaderpacks/bsl.zip", True),
    ("mods\\client-pack.zip", True),
    ("notes.zip.txt", True),
    ("mods/lithium.jar", False),
    ("config/server.toml", False),
    ("server-icon.png", False),
])
def test_exclusions(member, excluded):
    assert modpack.is_excluded(member) is excluded


def test_extract_drops_client_content(tmp_path):
    target = tmp_path / "mc1"
    target.mkdir()
    archive = make_pack(tmp_path / "server-pack.zip", {
        "mods/lithium.jar": "jar",
        "config/server.toml": "x=1",
        "overrides/options.txt": "client",
        "resourcepacks/faithful.zip": "zip",
        "extra.zip": "zip",
        })

    count = modpack.extract_server_pack(archive, target)

    assert count == 2
    assert (target / "mods" / "lithium.jar").read_text() == "jar"
    assert (target / "config" / "server.toml").exists()
    assert not (target / "overrides").exists()
    assert not (target / "resourcepacks").exists()
    assert not (target / "extra.zip").exists()


def test_extract_corrupt_archive(tmp_path):
    archive = tmp_path / "server-pack.zip"
    archive.write_bytes(modpack.ZIP_MAGIC + b"\x00" * 64)

    with pytest.raises(VerificationError, match="Failed to extract"):
        modpack.extract_server_pack(archive, tmp_path / "mc1")
