"""
Zip packing and unpacking of the MoonBit core library.

The core library lives at `<moonhome>/lib/core` and may contain
thousands of source files. This module turns that tree into a zip
archive (for backups) and materializes zip archives back onto disk (for
restores and for installing the core bundle downloaded from the
registry).

Archive layout:
    Entry paths are relative to `<moonhome>/lib`, so every entry lives
    under `core/` (e.g. `core/moon.mod.json`, `core/builtin/`).

Unpacking guarantees:
- Every entry is validated before anything is written; an entry that
  would land outside `<lib>/core` aborts the whole unpack.
- Unix permission bits stored in the archive are restored.
- Modification times are restored in a second pass, files before
  directories, because writing a file updates its directory's mtime.
"""

import io
import logging
import os
import shutil
import stat
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple, Union

from multimoon.core.config import CORE_MARKER_FILE
from multimoon.core.exceptions import (
    CORRUPTION_NOTICE,
    ArchiveError,
    InsecureArchiveError,
)
from multimoon.core.filesystem import IS_UNIX, is_relative_to, set_file_times

logger = logging.getLogger(__name__)

CORE_DIR_NAME = "core"
IGNORED_SUBPATH = PurePosixPath(CORE_DIR_NAME, "target")
ARCHIVE_COMMENT = b"backup of MoonBit core, generated by MultiMoon"
COMPRESS_LEVEL = 6
PROGRESS_LIMIT = 5

# zip stores local time with a 1980 epoch; DOS directory attribute bit
_ZIP_MIN_DATE = (1980, 1, 1, 0, 0, 0)
_ZIP_MAX_DATE = (2107, 12, 31, 23, 59, 58)
_MSDOS_DIRECTORY = 0x10
_UNIX_SYSTEM = 3

ArchiveSource = Union[bytes, Path, BinaryIO, zipfile.ZipFile]


@dataclass
class ExtractOptions:
    """Options for unpacking a core archive."""

    fallback_timestamp: float = field(default_factory=time.time)
    """Timestamp used for entries whose archived time can't be resolved"""

    verbose: bool = False
    """Log every extracted path instead of only the first few"""


class _ProgressReporter:
    """Names the first few paths, then summarizes the rest once."""

    def __init__(
        self, verb: str, past_tense: str, verbose: bool, limit: int = PROGRESS_LIMIT
    ):
        self.verb = verb
        self.past_tense = past_tense
        self.verbose = verbose
        self.limit = limit
        self.count = 0

    def report(self, path: Union[str, Path]) -> None:
        if self.verbose or self.count < self.limit:
            logger.info(f"{self.verb} {path}")
        self.count += 1

    def finish(self) -> None:
        omitted = self.count - self.limit
        if not self.verbose and omitted > 0:
            logger.info(f" (further {omitted} {self.past_tense} files omitted)")


# ============================================================================
# Packing
# ============================================================================


def _walk_sorted(root: Path, skip: Callable[[Path], bool]) -> Iterator[Path]:
    """
    Yield root and its descendants depth-first, siblings sorted by name.

    Paths for which `skip` returns True are neither yielded nor descended into.
    """
    if skip(root):
        return
    yield root
    if root.is_dir() and not root.is_symlink():
        for child in sorted(root.iterdir(), key=lambda p: p.name):
            yield from _walk_sorted(child, skip)


def _zip_date_time(mtime: float) -> Tuple[int, int, int, int, int, int]:
    """Convert an mtime to a zip (local time) date_time tuple, clamped to range."""
    date_time = time.localtime(mtime)[:6]
    if date_time < _ZIP_MIN_DATE:
        return _ZIP_MIN_DATE
    if date_time > _ZIP_MAX_DATE:
        return _ZIP_MAX_DATE
    return date_time


def _make_zipinfo(arcname: str, path: Path, is_dir: bool) -> zipfile.ZipInfo:
    st = path.stat()
    info = zipfile.ZipInfo(arcname, date_time=_zip_date_time(st.st_mtime))
    if IS_UNIX:
        info.create_system = _UNIX_SYSTEM
        info.external_attr = (st.st_mode & 0xFFFF) << 16
    if is_dir:
        info.external_attr |= _MSDOS_DIRECTORY
        info.compress_type = zipfile.ZIP_STORED
    else:
        info.compress_type = zipfile.ZIP_DEFLATED
    return info


def pack_to_zipfile(lib_dir: Path, out: BinaryIO, verbose: bool = False) -> int:
    """
    Write a zip archive of `<lib_dir>/core` to a binary stream.

    Args:
        lib_dir: The `lib` directory containing `core`
        out: Seekable binary stream to write the archive to
        verbose: Log every archived path

    Returns:
        Number of entries written

    Raises:
        ArchiveError: If `core` or its manifest marker file is missing, or
            a file under `core` can't be read
    """
    lib_dir = Path(lib_dir)
    core_dir = lib_dir / CORE_DIR_NAME

    logger.info(f"archiving {core_dir}")

    if not core_dir.is_dir():
        raise ArchiveError(f"archive error: core path {core_dir} doesn't exist")
    marker = core_dir / CORE_MARKER_FILE
    if not marker.is_file():
        raise ArchiveError(
            f"archive error: core json {marker} is missing (not a valid library root)"
        )

    def relative(path: Path) -> PurePosixPath:
        return PurePosixPath(*path.relative_to(lib_dir).parts)

    def ignored(path: Path) -> bool:
        return relative(path) == IGNORED_SUBPATH

    progress = _ProgressReporter("archiving", "archived", verbose)
    entries = 0

    with zipfile.ZipFile(out, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.comment = ARCHIVE_COMMENT

        try:
            for path in _walk_sorted(core_dir, skip=ignored):
                rel = relative(path)
                if path.is_file():
                    progress.report(rel)
                    info = _make_zipinfo(str(rel), path, is_dir=False)
                    zf.writestr(info, path.read_bytes(), compresslevel=COMPRESS_LEVEL)
                    entries += 1
                elif path.is_dir():
                    progress.report(rel)
                    info = _make_zipinfo(f"{rel}/", path, is_dir=True)
                    zf.writestr(info, b"")
                    entries += 1
        except OSError as e:
            raise ArchiveError(f"archive error: cannot read {e.filename or core_dir}: {e}") from e

    progress.finish()
    return entries


def pack(lib_dir: Path, verbose: bool = False) -> bytes:
    """
    Pack `<lib_dir>/core` into an in-memory zip archive.

    Entries are produced in sorted order, so packing an identical tree
    twice yields identical archives apart from timestamps. The build
    cache `core/target` is never archived.

    Args:
        lib_dir: The `lib` directory containing `core`
        verbose: Log every archived path

    Returns:
        Zip archive bytes

    Raises:
        ArchiveError: If `core` or its manifest marker file is missing

    Example:
        >>> data = pack(Path.home() / ".moon" / "lib")
        >>> Path("backup.zip").write_bytes(data)
    """
    buffer = io.BytesIO()
    pack_to_zipfile(lib_dir, buffer, verbose=verbose)
    return buffer.getvalue()


# ============================================================================
# Unpacking
# ============================================================================


def _open_archive(source: ArchiveSource) -> zipfile.ZipFile:
    if isinstance(source, zipfile.ZipFile):
        return source
    try:
        if isinstance(source, (bytes, bytearray)):
            return zipfile.ZipFile(io.BytesIO(source))
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as e:
        raise ArchiveError(f"extract error: unable to read archive: {e}") from e


def _entry_output_path(name: str, lib_dir: Path, core_dir: Path) -> Path:
    """
    Resolve where an archive entry would be written.

    Raises:
        InsecureArchiveError: If the entry would end up outside `core_dir`
    """
    normalized = name.replace("\\", "/")
    is_absolute = normalized.startswith("/") or (
        len(normalized) > 1 and normalized[1] == ":"
    )
    candidate = (lib_dir / normalized).resolve()

    if is_absolute or not is_relative_to(candidate, core_dir):
        raise InsecureArchiveError(
            f"extract error: extracted path {name} is not within core path "
            f"{core_dir}! (invalid core archive?)"
        )
    return candidate


def _unix_mode(info: zipfile.ZipInfo) -> Optional[int]:
    """Permission bits stored for an entry, or None if the archive has none."""
    if info.create_system != _UNIX_SYSTEM:
        return None
    mode = info.external_attr >> 16
    return stat.S_IMODE(mode) if mode else None


def _timestamp_from_zipinfo(info: zipfile.ZipInfo, fallback: float) -> float:
    """Interpret an entry's stored local date/time, or fall back."""
    try:
        return datetime(*info.date_time).timestamp()
    except (ValueError, OverflowError, OSError):
        return fallback


def unpack(
    source: ArchiveSource,
    lib_dir: Path,
    options: Optional[ExtractOptions] = None,
) -> int:
    """
    Unpack a core archive into `lib_dir`.

    Args:
        source: Zip archive as bytes, a path, a binary stream or an open ZipFile
        lib_dir: The `lib` directory; entries must resolve inside `<lib_dir>/core`
        options: Extraction options (fallback timestamp, verbosity)

    Returns:
        Number of files written

    Raises:
        InsecureArchiveError: If any entry escapes `<lib_dir>/core` (nothing is written)
        ArchiveError: If the archive is unreadable or a file can't be written

    Example:
        >>> unpack(Path("core.zip"), Path.home() / ".moon" / "lib",
        ...        ExtractOptions(fallback_timestamp=1715040000))
    """
    options = options or ExtractOptions()
    archive = _open_archive(source)
    try:
        return _unpack_archive(archive, Path(lib_dir), options)
    finally:
        if archive is not source:
            archive.close()


def _unpack_archive(
    archive: zipfile.ZipFile, lib_dir: Path, options: ExtractOptions
) -> int:
    core_dir = (lib_dir / CORE_DIR_NAME).resolve()

    # Validate all paths first
    entries: List[Tuple[zipfile.ZipInfo, Path]] = [
        (info, _entry_output_path(info.filename, lib_dir, core_dir))
        for info in archive.infolist()
    ]

    progress = _ProgressReporter("extract to", "extracted", options.verbose)
    written = 0

    for info, outpath in entries:
        try:
            if info.is_dir():
                outpath.mkdir(parents=True, exist_ok=True)
            else:
                outpath.parent.mkdir(parents=True, exist_ok=True)
                progress.report(outpath)
                with archive.open(info) as src, open(outpath, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                written += 1
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveError(
                f"extract error: failed to write {outpath} {CORRUPTION_NOTICE}"
            ) from e

        mode = _unix_mode(info)
        if IS_UNIX and mode is not None:
            try:
                os.chmod(outpath, mode)
            except OSError as e:
                raise ArchiveError(
                    f"extract error: failed to set permission to {outpath} "
                    f"{CORRUPTION_NOTICE}"
                ) from e

    progress.finish()

    # Set times of files and directories (best effort)
    # Files first: writing a file touches its parent directory's mtime
    for info, outpath in entries:
        if not info.is_dir():
            set_file_times(
                outpath, _timestamp_from_zipinfo(info, options.fallback_timestamp)
            )
    for info, outpath in entries:
        if info.is_dir():
            set_file_times(
                outpath, _timestamp_from_zipinfo(info, options.fallback_timestamp)
            )

    return written


__all__ = [
    "ARCHIVE_COMMENT",
    "IGNORED_SUBPATH",
    "ExtractOptions",
    "pack",
    "pack_to_zipfile",
    "unpack",
]
