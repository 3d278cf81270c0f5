"""
Split points from alignment index files.

A BAM file can only be cut where a record starts. Index files already store
the virtual offsets of record starts, so splits are planned from the index
alone and no record is decoded while planning. Two index formats are read:

* ``.splitting-bai``: big-endian 64-bit virtual offsets of every Nth record,
  closed by the file length shifted into a virtual offset. Distributed BAM
  writers put one next to each shard.
* ``.bai``: the standard BAM index. Every bin chunk and every linear index
  entry starts at a record.
"""

import logging
import os
import struct
import urllib.parse
from typing import List, Optional

import requests

from .header import SPLITTING_INDEX_SUFFIX, is_remote

logger = logging.getLogger(__name__)

BAI_MAGIC = b"BAI\x01"
BAI_METADATA_BIN = 37450
FETCH_TIMEOUT = 60
# Object stores answer 403 instead of 404 for missing keys in public buckets.
MISSING_STATUS_CODES = (403, 404)


def index_locations(path: str) -> List[str]:
    """Candidate index files for an alignment file, most specific first."""
    locations = [path + SPLITTING_INDEX_SUFFIX, path + ".bai"]
    root, ext = os.path.splitext(path)
    if ext == ".bam":
        locations.append(root + ".bai")
    return locations


def _read_bytes(location: str) -> Optional[bytes]:
    if is_remote(location):
        if urllib.parse.urlparse(location).scheme not in ("http", "https"):
            return None
        resp = requests.get(location, timeout=FETCH_TIMEOUT)
        if resp.status_code in MISSING_STATUS_CODES:
            return None
        resp.raise_for_status()
        return resp.content

    if not os.path.isfile(location):
        return None
    with open(location, "rb") as handle:
        return handle.read()


def parse_splitting_index(data: bytes) -> List[int]:
    if len(data) % 8:
        raise ValueError(f"splitting index holds {len(data)} bytes, not a multiple of 8")
    offsets = [offset for (offset,) in struct.iter_unpack(">Q", data)]
    # The last entry marks the end of the file, not a record.
    return offsets[:-1]


def parse_bai(data: bytes) -> List[int]:
    """Record-start virtual offsets found in a BAI index, unsorted."""
    if data[:4] != BAI_MAGIC:
        raise ValueError("not a BAI index")

    offsets = []
    try:
        (n_ref,) = struct.unpack_from("<i", data, 4)
        pos = 8
        for _ in range(n_ref):
            (n_bin,) = struct.unpack_from("<i", data, pos)
            pos += 4
            for _ in range(n_bin):
                bin_id, n_chunk = struct.unpack_from("<Ii", data, pos)
                pos += 8
                chunks = struct.unpack_from(f"<{2 * n_chunk}Q", data, pos)
                pos += 16 * n_chunk
                # The metadata bin stores counts, not chunk offsets.
                if bin_id != BAI_METADATA_BIN:
                    offsets.extend(chunks[::2])

            (n_intv,) = struct.unpack_from("<i", data, pos)
            pos += 4
            offsets.extend(struct.unpack_from(f"<{n_intv}Q", data, pos))
            pos += 8 * n_intv
    except struct.error as e:
        raise ValueError(f"truncated BAI index: {e}") from e
    return offsets


def find_split_offsets(path: str) -> Optional[List[int]]:
    """
    Sorted record-start virtual offsets from the first index found next to
    ``path``, or None when the file has no index.
    """
    for location in index_locations(path):
        data = _read_bytes(location)
        if data is None:
            continue

        if location.endswith(SPLITTING_INDEX_SUFFIX):
            offsets = parse_splitting_index(data)
        else:
            offsets = parse_bai(data)
        logger.debug(f"Read {len(offsets):,} split candidates from {location}")
        return sorted(set(offsets))
    return None
