"""
Header resolution for single read files and directories of shards.

Distributed writers put one copy of the same header into every shard, so a
directory's header is read from its first ``part-`` file.
"""

import logging
import urllib.parse
from pathlib import Path
from typing import List

import pysam

from .errors import NotFoundError, ReadsIOError
from .types import ReadsHeader

logger = logging.getLogger(__name__)

SHARD_PREFIX = "part-"
HIDDEN_PREFIXES = ("_", ".")
SPLITTING_INDEX_SUFFIX = ".splitting-bai"
INDEX_SUFFIXES = (SPLITTING_INDEX_SUFFIX, ".bai", ".crai", ".csi")
REMOTE_SCHEMES = ("http", "https", "ftp", "s3", "gs")


def is_remote(path: str) -> bool:
    return urllib.parse.urlparse(str(path)).scheme in REMOTE_SCHEMES


def qualify_path(path: str) -> str:
    """
    Resolve a path to its absolute, filesystem-qualified form.

    Remote URLs are returned unchanged; ``file://`` URLs and plain paths become
    absolute local paths.
    """
    path = str(path)
    if is_remote(path):
        return path

    parsed_url = urllib.parse.urlparse(path)
    if parsed_url.scheme == "file":
        path = urllib.parse.unquote(parsed_url.path)
    return str(Path(path).expanduser().resolve())


def is_directory(path: str) -> bool:
    return not is_remote(path) and Path(path).is_dir()


def _list_directory(path: str) -> List[Path]:
    # Sorted so "first" is the same on every filesystem.
    return sorted(Path(path).iterdir(), key=lambda entry: entry.name)


def list_shards(path: str) -> List[str]:
    """List the shard files of a directory, in name order."""
    return [
        str(entry)
        for entry in _list_directory(path)
        if entry.name.startswith(SHARD_PREFIX)
        and not entry.name.endswith(INDEX_SUFFIXES)
        and entry.is_file()
    ]


def list_input_files(path: str) -> List[str]:
    """
    List the data files behind a path.

    A file (or remote URL) is its own single input. A directory yields every
    regular file that is neither hidden nor an index. Names starting with
    ``_`` or ``.`` are bookkeeping files such as ``_SUCCESS`` or ``.crc``
    checksums; index files (``.splitting-bai``, ``.bai``, ``.crai``,
    ``.csi``) sit next to the shards they describe.
    """
    qualified = qualify_path(path)
    if not is_directory(qualified):
        if not is_remote(qualified) and not Path(qualified).exists():
            raise NotFoundError(f"Input path does not exist: {qualified}")
        return [qualified]

    files = [
        str(entry)
        for entry in _list_directory(qualified)
        if entry.is_file()
        and not entry.name.startswith(HIDDEN_PREFIXES)
        and not entry.name.endswith(INDEX_SUFFIXES)
    ]
    if not files:
        raise NotFoundError(f"No input files found in: {qualified}")
    return files


def read_header(path: str) -> ReadsHeader:
    """Parse the header of one alignment file."""
    with pysam.AlignmentFile(path, "r", check_sq=False) as samfile:
        return ReadsHeader.from_alignment_header(samfile.header)


def resolve_header(path: str) -> ReadsHeader:
    """
    Load the one canonical header of a file or a directory of shards.

    Raises NotFoundError when a directory holds no shards, and ReadsIOError
    (chained to the original exception) on any listing or parse failure.
    """
    try:
        qualified = qualify_path(path)
        if is_directory(qualified):
            shards = list_shards(qualified)
            if not shards:
                raise NotFoundError(f"No shard files to load header from in: {qualified}")
            logger.debug(f"Found {len(shards)} shards in {qualified}, reading header from {shards[0]}")
            qualified = shards[0]
        elif not is_remote(qualified) and not Path(qualified).exists():
            raise NotFoundError(f"Input path does not exist: {qualified}")

        return read_header(qualified)
    except (OSError, ValueError) as e:
        raise ReadsIOError(f"unable to load header: {e}") from e
