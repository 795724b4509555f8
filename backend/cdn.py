# cdn.py — Chunked asset uploads and file management under configured CDN scopes
# Features:
# - In-memory chunk store (TTL cache bounded by count and bytes) with collision-checked 32 char ids
# - Name/path validation before any filesystem access
# - Temp-file assembly with SHA-512 verification, then copy-and-delete publish
# - List, read, create folder, copy/move (files and trees) and delete

import os
import asyncio
import shutil
import logging
import tempfile
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel

import config
import crypto_utils
from config import CdnScope
from exceptions import (
    ValidationError, IntegrityError, ConflictError, NotFoundError, InfrastructureError, CapacityError,
)
from ttl_cache import TTLCache

logger = logging.getLogger("arcadia-panel.cdn")

CHUNK_ID_LENGTH = 32
CHUNK_ID_ATTEMPTS = 10
CHUNK_STORE_FULL = "Too many chunks are pending upload right now. Please try again later"

NAME_ALLOWED_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.:%$[](){}@! "
)
PATH_ALLOWED_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.:%$/ "
)


# ============================================================
# CHUNK STORE
# ============================================================

class ChunkStore:
    """Uploaded chunks waiting to be assembled, keyed by random id.

    Capacity is bounded by the cache's ``max_entries`` and by ``max_bytes`` of
    pending chunk data. A full store rejects new uploads instead of evicting
    chunks that an assembly may still need.
    """

    def __init__(self, cache: TTLCache, max_bytes: Optional[int] = None):
        self.cache = cache
        self.max_bytes = max_bytes

    @property
    def pending_bytes(self) -> int:
        return sum(len(chunk) for _, chunk in self.cache.items())

    def _check_capacity(self, size: int) -> None:
        if self.cache.max_entries is not None and len(self.cache) >= self.cache.max_entries:
            logger.warning(f"Chunk store full ({self.cache.max_entries} chunks pending)")
            raise CapacityError(CHUNK_STORE_FULL)
        if self.max_bytes is not None and self.pending_bytes + size > self.max_bytes:
            logger.warning(f"Chunk store full ({self.pending_bytes} of {self.max_bytes} bytes pending)")
            raise CapacityError(CHUNK_STORE_FULL)

    def upload(self, chunk: bytes) -> str:
        if not chunk:
            raise ValidationError("Chunk is empty")
        if len(chunk) > config.MAX_CHUNK_SIZE:
            raise ValidationError("Chunk size is too large")
        self._check_capacity(len(chunk))

        for _ in range(CHUNK_ID_ATTEMPTS):
            chunk_id = crypto_utils.gen_random(CHUNK_ID_LENGTH)
            if chunk_id not in self.cache:
                self.cache.insert(chunk_id, chunk)
                logger.debug(f"Stored chunk {chunk_id} ({len(chunk)} bytes)")
                return chunk_id

        raise InfrastructureError("Failed to generate a chunk ID")

    def __contains__(self, chunk_id: str) -> bool:
        return chunk_id in self.cache

    def take(self, chunk_id: str) -> bytes:
        chunk = self.cache.remove(chunk_id)
        if chunk is None:
            raise IntegrityError(f"Chunk {chunk_id} does not exist")
        return chunk


# ============================================================
# VALIDATION / RESOLUTION
# ============================================================

def validate_name(name: str) -> None:
    if (any(c not in NAME_ALLOWED_CHARS for c in name)
            or "/" in name or "\\" in name or name.startswith(".")):
        raise ValidationError(
            "Asset name cannot contain disallowed characters, slashes or backslashes or start with a dot"
        )


def validate_path(path: str) -> None:
    if (any(c not in PATH_ALLOWED_CHARS for c in path)
            or ".." in path or "//" in path or "\\" in path or path.startswith("/")):
        raise ValidationError(
            "Asset path cannot contain disallowed characters, dot-dots, doubleslashes, "
            "backslashes or start with a slash"
        )


@dataclass(frozen=True)
class AssetLocation:
    scope: str
    root: str
    asset_dir: str
    final_path: str

    @property
    def is_root(self) -> bool:
        return os.path.normpath(self.final_path) == os.path.normpath(self.root)


def resolve(scopes: Dict[str, CdnScope], scope_name: str, path: str, name: str) -> AssetLocation:
    scope = scopes.get(scope_name)
    if scope is None:
        raise ValidationError("Invalid CDN scope")

    validate_name(name)
    validate_path(path)

    asset_dir = os.path.join(scope.path, path) if path else scope.path
    final_path = os.path.join(asset_dir, name) if name else asset_dir
    return AssetLocation(scope=scope_name, root=scope.path, asset_dir=asset_dir, final_path=final_path)


# ============================================================
# OPERATIONS
# ============================================================

class CdnAssetItem(BaseModel):
    name: str
    path: str
    size: int
    last_modified: int
    is_dir: bool
    permissions: int


def list_path(loc: AssetLocation) -> List[CdnAssetItem]:
    if not os.path.exists(loc.asset_dir):
        raise ValidationError("Asset path does not exist")
    if not os.path.isdir(loc.asset_dir):
        raise ValidationError("Asset path already exists and is not a directory")

    items = []
    with os.scandir(loc.asset_dir) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            try:
                st = entry.stat()
            except FileNotFoundError:
                # Dangling symlink
                st = entry.stat(follow_symlinks=False)
            items.append(CdnAssetItem(
                name=entry.name,
                path=os.path.relpath(entry.path, loc.root),
                size=st.st_size,
                last_modified=int(st.st_mtime),
                is_dir=entry.is_dir(),
                permissions=st.st_mode,
            ))
    return items


def read_file(loc: AssetLocation) -> str:
    if not os.path.exists(loc.final_path):
        raise ValidationError("Asset does not exist")
    if not os.path.isfile(loc.final_path):
        raise ValidationError("Asset path is not a file")
    return loc.final_path


def create_folder(loc: AssetLocation) -> None:
    if os.path.lexists(loc.final_path):
        raise ConflictError("Asset path already exists")
    try:
        os.makedirs(loc.final_path)
    except OSError as e:
        raise InfrastructureError(f"Creating folder failed: {e.strerror or e}") from e
    logger.info(f"Created CDN folder {loc.scope}:{os.path.relpath(loc.final_path, loc.root)}")


def _write_verified(loc: AssetLocation, parts: List[bytes], sha512: str, temp_dir: str) -> None:
    fd, tmp_path = tempfile.mkstemp(prefix="arcadia-cdn-file", dir=temp_dir)
    try:
        with os.fdopen(fd, "wb") as tmp:
            for part in parts:
                tmp.write(part)
            tmp.flush()
            os.fsync(tmp.fileno())

        digest = crypto_utils.sha512_file(tmp_path)
        if digest != sha512.strip().lower():
            logger.warning(f"SHA-512 mismatch publishing {loc.scope}:{loc.final_path}")
            raise IntegrityError("SHA512 hash does not match")

        shutil.copyfile(tmp_path, loc.final_path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


async def add_file(loc: AssetLocation, chunks: ChunkStore, chunk_ids: List[str], sha512: str,
                   overwrite: bool, temp_dir: Optional[str] = None) -> None:
    """Assemble ``chunk_ids`` into ``loc``; writing and hashing run in a worker thread.

    Chunks are consumed from the store on the event loop before the write starts.
    """
    if not chunk_ids:
        raise ValidationError("No chunks were provided")
    if len(chunk_ids) > config.MAX_CHUNKS_PER_FILE:
        raise ValidationError("Too many chunks were provided")
    for chunk_id in chunk_ids:
        if chunk_id not in chunks:
            raise IntegrityError("Chunk does not exist")

    if os.path.lexists(loc.final_path):
        if not overwrite:
            raise ConflictError("Asset already exists")
        if os.path.isdir(loc.final_path):
            raise ValidationError("Asset to be replaced is a directory")

    if os.path.lexists(loc.asset_dir):
        if not os.path.isdir(loc.asset_dir):
            raise ValidationError("Asset path already exists and is not a directory")
    else:
        os.makedirs(loc.asset_dir)

    parts = [chunks.take(chunk_id) for chunk_id in chunk_ids]
    await asyncio.to_thread(_write_verified, loc, parts, sha512, temp_dir or config.CDN_TEMP_DIR)

    logger.info(f"Published CDN asset {loc.scope}:{os.path.relpath(loc.final_path, loc.root)} "
                f"({len(chunk_ids)} chunks)")


def move_dir_tree(src: str, dst: str) -> None:
    """Rename every file of ``src`` into ``dst``, recreating its directories."""
    os.makedirs(dst, exist_ok=True)
    with os.scandir(src) as entries:
        for entry in entries:
            target = os.path.join(dst, entry.name)
            if entry.is_dir(follow_symlinks=False):
                move_dir_tree(entry.path, target)
            else:
                os.rename(entry.path, target)


def copy_dir_tree(src: str, dst: str) -> None:
    os.makedirs(dst, exist_ok=True)
    with os.scandir(src) as entries:
        for entry in entries:
            target = os.path.join(dst, entry.name)
            if entry.is_dir(follow_symlinks=False):
                copy_dir_tree(entry.path, target)
            else:
                shutil.copy(entry.path, target)


def _real(path: str) -> str:
    # The last component is kept as is so a symlinked asset is compared as itself
    head, tail = os.path.split(os.path.normpath(path))
    return os.path.join(os.path.realpath(head), tail)


def _is_within(path: str, parent: str) -> bool:
    path, parent = _real(path), _real(parent)
    return os.path.commonpath([path, parent]) == parent


def copy_file(loc: AssetLocation, copy_to: str, overwrite: bool, delete_original: bool) -> None:
    validate_path(copy_to)
    if not copy_to:
        raise ValidationError("copy_to location cannot be empty")
    target = os.path.join(loc.root, copy_to)

    if os.path.lexists(target) and not os.path.isdir(target) and not overwrite:
        raise ConflictError("copy_to location already exists")

    if not os.path.lexists(loc.final_path):
        raise NotFoundError("Could not find asset")
    if delete_original and loc.is_root:
        raise ValidationError("Cannot move the root of a CDN scope")

    is_file = os.path.islink(loc.final_path) or os.path.isfile(loc.final_path)
    if is_file and os.path.isdir(target):
        target = os.path.join(target, os.path.basename(loc.final_path))
    if _is_within(target, loc.final_path):
        raise ValidationError("copy_to cannot be inside the asset being copied")

    try:
        if is_file:
            if delete_original:
                os.rename(loc.final_path, target)
            else:
                shutil.copy(loc.final_path, target)
        elif os.path.isdir(loc.final_path):
            if delete_original:
                move_dir_tree(loc.final_path, target)
                shutil.rmtree(loc.final_path)
            else:
                copy_dir_tree(loc.final_path, target)
    except OSError as e:
        logger.error(f"CDN copy {loc.final_path} -> {target} failed: {e}")
        raise InfrastructureError(f"Failed to copy asset: {e.strerror or e}") from e

    verb = "Moved" if delete_original else "Copied"
    logger.info(f"{verb} CDN asset {loc.scope}:{os.path.relpath(loc.final_path, loc.root)} -> {copy_to}")


def delete(loc: AssetLocation) -> None:
    if not os.path.lexists(loc.final_path):
        raise NotFoundError("Could not find asset")
    if loc.is_root:
        raise ValidationError("Cannot delete the root of a CDN scope")

    if os.path.islink(loc.final_path) or os.path.isfile(loc.final_path):
        os.remove(loc.final_path)
    elif os.path.isdir(loc.final_path):
        shutil.rmtree(loc.final_path)
    logger.info(f"Deleted CDN asset {loc.scope}:{os.path.relpath(loc.final_path, loc.root)}")
