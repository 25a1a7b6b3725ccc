"""Local content-addressed tile store.

Layout under the store location::

    blobs/<sha256>             tile payloads, named by the hash of their bytes
    roots/<entrypoint>.json    tree manifest of one mirror, rewritten on flush
    roots/<entrypoint>.lock    flock-ed by the single writer of that mirror

Writer info has the form ``<entrypoint>:<secret>``; the manifest only keeps
a hash of the secret.
"""
import fcntl
import hashlib
import json
import logging
import mimetypes
import os
import secrets
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Sequence, Tuple

from tile_mirror.interfaces.tile_store import ITileStore
from tile_mirror.exceptions.tile_mirror_exceptions import EntryNotFoundError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = 'application/octet-stream'


class LocalContentStore(ITileStore):
    """Filesystem implementation of the content-addressed store"""

    def __init__(self, location: str, writer_info: Optional[str] = None):
        if not location:
            raise StoreError("Store location is not set")

        self.location = os.path.abspath(location)
        self.blobs_dir = os.path.join(self.location, 'blobs')
        self.roots_dir = os.path.join(self.location, 'roots')
        self._lock_fd: Optional[int] = None

        try:
            os.makedirs(self.blobs_dir, exist_ok=True)
            os.makedirs(self.roots_dir, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot prepare store at {self.location}: {e}")

        if writer_info:
            self._entrypoint, secret = self._parse_writer_info(writer_info)
            self._secret = secret
            self._manifest = self._load_manifest()
            if self._manifest.get('writerHash') != self._hash_secret(secret):
                raise StoreError(f"Writer info does not match root {self._entrypoint}")
            self.created = False
        else:
            self._entrypoint = uuid.uuid4().hex
            self._secret = secrets.token_hex(16)
            self._manifest = {
                'entrypoint': self._entrypoint,
                'writerHash': self._hash_secret(self._secret),
                'entries': {},
            }
            self.created = True

        self._acquire_lock()
        if self.created:
            try:
                self.flush()
            except StoreError:
                self.close()
                raise

    def __enter__(self) -> "LocalContentStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @staticmethod
    def _parse_writer_info(writer_info: str) -> Tuple[str, str]:
        entrypoint, sep, secret = writer_info.partition(':')
        if not sep or not entrypoint or not secret:
            raise StoreError("Malformed writer info, expected '<entrypoint>:<secret>'")
        return entrypoint, secret

    @staticmethod
    def _hash_secret(secret: str) -> str:
        return hashlib.sha256(secret.encode('utf-8')).hexdigest()

    def _manifest_path(self) -> str:
        return os.path.join(self.roots_dir, f"{self._entrypoint}.json")

    def _load_manifest(self) -> Dict[str, Any]:
        path = self._manifest_path()
        if not os.path.exists(path):
            raise StoreError(f"Root {self._entrypoint} not found in {self.location}")
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read manifest of root {self._entrypoint}: {e}")

    def _acquire_lock(self) -> None:
        # flock is tied to the open descriptor, so the OS drops it if the writer dies
        lock_path = os.path.join(self.roots_dir, f"{self._entrypoint}.lock")
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_RDWR)
        except OSError as e:
            raise StoreError(f"Cannot lock root {self._entrypoint}: {e}")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise StoreError(f"Root {self._entrypoint} is already opened by another writer ({lock_path})")
        except OSError as e:
            os.close(fd)
            raise StoreError(f"Cannot lock root {self._entrypoint}: {e}")
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode('ascii'))
        self._lock_fd = fd

    def close(self) -> None:
        """Release the writer lock; unflushed entries are dropped"""
        if self._lock_fd is None:
            return
        fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        os.close(self._lock_fd)
        self._lock_fd = None

    @staticmethod
    def _entry_key(path_segments: Sequence[str]) -> str:
        segments = list(path_segments)
        if not segments:
            raise StoreError("Entry path must not be empty")
        for segment in segments:
            if not segment or '/' in segment or segment in ('.', '..'):
                raise StoreError(f"Invalid entry path segment: {segment!r}")
        return '/'.join(segments)

    def _blob_path(self, content_id: str) -> str:
        return os.path.join(self.blobs_dir, content_id)

    def set_entry_file(self, path_segments: Sequence[str],
                       chunks: Iterable[bytes]) -> Tuple[str, str]:
        """Store one leaf; errors raised while reading ``chunks`` propagate as-is"""
        if self._lock_fd is None:
            raise StoreError("Store is closed")
        key = self._entry_key(path_segments)

        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.blobs_dir, prefix='.incoming-')
        except OSError as e:
            raise StoreError(f"Cannot create blob for {key}: {e}")

        hasher = hashlib.sha256()
        size = 0
        try:
            with os.fdopen(fd, 'wb') as f:
                for chunk in chunks:
                    if not chunk:
                        continue
                    self._write_chunk(f, chunk, key)
                    hasher.update(chunk)
                    size += len(chunk)
                self._sync(f, key)

            content_id = hasher.hexdigest()
            blob_path = self._blob_path(content_id)
            try:
                if os.path.exists(blob_path):
                    os.remove(tmp_path)
                else:
                    os.replace(tmp_path, blob_path)
            except OSError as e:
                raise StoreError(f"Cannot publish blob for {key}: {e}")
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

        mime_type = mimetypes.guess_type(path_segments[-1])[0] or DEFAULT_MIME_TYPE
        self._manifest['entries'][key] = {
            'blob': content_id,
            'mimeType': mime_type,
            'size': size,
        }
        return content_id, mime_type

    @staticmethod
    def _write_chunk(f: BinaryIO, chunk: bytes, key: str) -> None:
        try:
            f.write(chunk)
        except OSError as e:
            raise StoreError(f"Cannot write blob for {key}: {e}")

    @staticmethod
    def _sync(f: BinaryIO, key: str) -> None:
        try:
            f.flush()
            os.fsync(f.fileno())
        except OSError as e:
            raise StoreError(f"Cannot sync blob for {key}: {e}")

    def open_entry_data(self, path_segments: Sequence[str]) -> BinaryIO:
        entry = self._manifest['entries'].get(self._entry_key(path_segments))
        if entry is None:
            raise EntryNotFoundError(path_segments)
        try:
            return open(self._blob_path(entry['blob']), 'rb')
        except FileNotFoundError:
            raise EntryNotFoundError(path_segments)
        except OSError as e:
            raise StoreError(f"Cannot open entry {'/'.join(path_segments)}: {e}")

    def entry_content_id(self, path_segments: Sequence[str]) -> str:
        entry = self._manifest['entries'].get(self._entry_key(path_segments))
        if entry is None:
            raise EntryNotFoundError(path_segments)
        return entry['blob']

    def list_entries(self) -> List[str]:
        return sorted(self._manifest['entries'])

    def flush(self) -> None:
        """Atomically rewrite the root manifest"""
        if self._lock_fd is None:
            raise StoreError("Store is closed")
        self._manifest['flushedAt'] = datetime.now(timezone.utc).isoformat()

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.roots_dir, prefix='.manifest-')
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._manifest, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._manifest_path())
            tmp_path = None
        except OSError as e:
            raise StoreError(f"Failed to flush root {self._entrypoint}: {e}")
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

        logger.debug("Flushed root %s (%d entries)", self._entrypoint, len(self._manifest['entries']))

    def root_entrypoint(self) -> str:
        return self._entrypoint

    def root_writer_info(self) -> str:
        return f"{self._entrypoint}:{self._secret}"
