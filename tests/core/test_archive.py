"""
Unit tests for the core library archive engine.

Tests packing and unpacking including:
- Round trips of content and permission bits
- Exclusion of the core/target build cache
- Rejection of entries escaping the core directory
- Restoring file and directory modification times
"""

import io
import os
import stat
import sys
import zipfile
from pathlib import Path

import pytest

from multimoon.core.archive import (
    ARCHIVE_COMMENT,
    ExtractOptions,
    pack,
    pack_to_zipfile,
    unpack,
)
from multimoon.core.exceptions import ArchiveError, InsecureArchiveError

unix_only = pytest.mark.skipif(
    sys.platform == "win32", reason="Unix permission bits"
)

# Even number of seconds: zip timestamps have two-second resolution
ARCHIVED_TIME = 1700000000


def _names(data: bytes):
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return zf.namelist()


class TestPack:
    """Test pack() and pack_to_zipfile()."""

    def test_entries_are_relative_to_lib(self, config, core_tree):
        """Test every entry lives under core/."""
        names = _names(pack(config.lib_dir))

        assert "core/" in names
        assert "core/moon.mod.json" in names
        assert "core/builtin/" in names
        assert "core/builtin/array.mbt" in names
        assert all(name.startswith("core/") for name in names)

    def test_build_cache_excluded(self, config, core_tree):
        """Test core/target and everything below it is skipped."""
        names = _names(pack(config.lib_dir))
        assert not any(name.startswith("core/target") for name in names)

    def test_build_cache_not_traversed(self, config, core_tree, monkeypatch):
        """Test an unlistable build cache doesn't break packing."""
        target = core_tree / "target"
        original_iterdir = Path.iterdir

        def iterdir(self):
            if self == target or target in self.parents:
                raise PermissionError(13, "Permission denied", str(self))
            return original_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)

        names = _names(pack(config.lib_dir))
        assert "core/moon.mod.json" in names
        assert not any(name.startswith("core/target") for name in names)

    def test_unreadable_directory(self, config, core_tree, monkeypatch):
        """Test read failures outside the build cache surface as ArchiveError."""
        builtin = core_tree / "builtin"
        original_iterdir = Path.iterdir

        def iterdir(self):
            if self == builtin:
                raise PermissionError(13, "Permission denied", str(self))
            return original_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", iterdir)

        with pytest.raises(ArchiveError, match="cannot read"):
            pack(config.lib_dir)

    def test_sorted_order(self, config, core_tree):
        """Test entries are produced in sorted order."""
        (core_tree / "a.mbt").write_bytes(b"a")
        (core_tree / "z.mbt").write_bytes(b"z")

        names = _names(pack(config.lib_dir))
        assert names.index("core/a.mbt") < names.index("core/builtin/")
        assert names.index("core/builtin/array.mbt") < names.index("core/moon.mod.json")
        assert names.index("core/moon.mod.json") < names.index("core/z.mbt")

    def test_comment(self, config, core_tree):
        """Test the archive carries the MultiMoon comment."""
        with zipfile.ZipFile(io.BytesIO(pack(config.lib_dir))) as zf:
            assert zf.comment == ARCHIVE_COMMENT

    def test_missing_core(self, config):
        """Test packing without a core directory fails."""
        config.lib_dir.mkdir(parents=True)
        with pytest.raises(ArchiveError, match="doesn't exist"):
            pack(config.lib_dir)

    def test_missing_marker(self, config, core_tree):
        """Test packing a core without moon.mod.json fails."""
        (core_tree / "moon.mod.json").unlink()
        with pytest.raises(ArchiveError, match="not a valid library root"):
            pack(config.lib_dir)

    def test_pack_to_stream_counts_entries(self, config, core_tree):
        """Test pack_to_zipfile reports the number of entries written."""
        buffer = io.BytesIO()
        count = pack_to_zipfile(config.lib_dir, buffer)
        assert count == len(_names(buffer.getvalue()))


class TestRoundTrip:
    """Test pack followed by unpack."""

    def test_content_round_trip(self, config, core_tree, tmp_path):
        """Test file contents are reproduced."""
        data = pack(config.lib_dir)
        target_lib = tmp_path / "restored" / "lib"

        written = unpack(data, target_lib)

        assert written == 3
        for rel in ("moon.mod.json", "builtin/array.mbt", "builtin/moon.pkg.json"):
            assert (target_lib / "core" / rel).read_bytes() == (core_tree / rel).read_bytes()
        assert not (target_lib / "core" / "target").exists()

    @unix_only
    def test_modes_round_trip(self, config, core_tree, tmp_path):
        """Test Unix permission bits are reproduced."""
        script = core_tree / "builtin" / "gen.sh"
        script.write_bytes(b"#!/bin/sh\n")
        os.chmod(script, 0o755)
        os.chmod(core_tree / "moon.mod.json", 0o600)

        target_lib = tmp_path / "restored" / "lib"
        unpack(pack(config.lib_dir), target_lib)

        restored = target_lib / "core"
        assert stat.S_IMODE((restored / "builtin" / "gen.sh").stat().st_mode) == 0o755
        assert stat.S_IMODE((restored / "moon.mod.json").stat().st_mode) == 0o600

    def test_overwrites_existing_files(self, config, core_tree):
        """Test unpacking over an existing core replaces file contents."""
        data = pack(config.lib_dir)
        (core_tree / "moon.mod.json").write_bytes(b"changed")

        unpack(data, config.lib_dir)

        assert (core_tree / "moon.mod.json").read_bytes() != b"changed"


class TestUnpackSecurity:
    """Test path validation in unpack()."""

    @pytest.mark.parametrize(
        "evil_name",
        ["core/../../evil.txt", "../evil.txt", "other/file.txt", "/etc/evil"],
    )
    def test_rejects_escaping_entries(self, tmp_path, evil_name):
        """Test entries outside core/ abort the unpack."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("core/moon.mod.json", b"{}")
            zf.writestr(evil_name, b"evil")

        lib_dir = tmp_path / "lib"
        with pytest.raises(InsecureArchiveError):
            unpack(buffer.getvalue(), lib_dir)

    def test_nothing_written_before_rejection(self, tmp_path):
        """Test validation happens before any entry is written."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("core/moon.mod.json", b"{}")
            zf.writestr("core/builtin/array.mbt", b"fn f() -> Unit {}")
            zf.writestr("core/../../evil.txt", b"evil")

        lib_dir = tmp_path / "lib"
        with pytest.raises(InsecureArchiveError):
            unpack(buffer.getvalue(), lib_dir)

        assert not (lib_dir / "core" / "moon.mod.json").exists()
        assert not (tmp_path / "evil.txt").exists()

    def test_invalid_archive(self, tmp_path):
        """Test non-zip data is an archive error."""
        with pytest.raises(ArchiveError, match="unable to read archive"):
            unpack(b"not a zip", tmp_path / "lib")


class TestUnpackTimestamps:
    """Test modification times restored by unpack()."""

    def test_file_mtime_restored(self, config, core_tree, tmp_path):
        """Test file mtimes equal the archived values."""
        os.utime(core_tree / "moon.mod.json", (ARCHIVED_TIME, ARCHIVED_TIME))

        target_lib = tmp_path / "restored" / "lib"
        unpack(pack(config.lib_dir), target_lib)

        restored = target_lib / "core" / "moon.mod.json"
        assert int(restored.stat().st_mtime) == ARCHIVED_TIME

    def test_directory_mtime_restored(self, config, core_tree, tmp_path):
        """Test directory mtimes survive files being written into them."""
        builtin = core_tree / "builtin"
        for child in builtin.iterdir():
            os.utime(child, (ARCHIVED_TIME, ARCHIVED_TIME))
        os.utime(builtin, (ARCHIVED_TIME, ARCHIVED_TIME))

        target_lib = tmp_path / "restored" / "lib"
        unpack(pack(config.lib_dir), target_lib)

        assert int((target_lib / "core" / "builtin").stat().st_mtime) == ARCHIVED_TIME

    def test_fallback_timestamp(self, tmp_path):
        """Test entries with an unusable date fall back to the given time."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            info = zipfile.ZipInfo("core/moon.mod.json", date_time=(1980, 0, 0, 0, 0, 0))
            zf.writestr(info, b"{}")

        lib_dir = tmp_path / "lib"
        unpack(buffer.getvalue(), lib_dir, ExtractOptions(fallback_timestamp=ARCHIVED_TIME))

        assert int((lib_dir / "core" / "moon.mod.json").stat().st_mtime) == ARCHIVED_TIME

    def test_archive_path_source(self, config, core_tree, tmp_path):
        """Test unpacking from a zip file on disk."""
        archive_path = tmp_path / "core.zip"
        archive_path.write_bytes(pack(config.lib_dir))

        target_lib = tmp_path / "restored" / "lib"
        assert unpack(archive_path, target_lib) == 3
