"""
Key-addressed project store.

Every project lives in its own directory, derived from its key:

    <root>/<chainID>/<tokenAddress>/metadata.json
    <root>/<chainID>/<tokenAddress>/project-image.<ext>

A project exists if and only if its metadata.json exists. An image without metadata is the leftover of a
failed create and is removed when the project is created again.
"""

import json
import logging
import os
import shutil
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from metastore.models import IMAGE_EXTENSIONS, ProjectFields, ProjectKey, ProjectRecord, StagedUpload, StoredProject

METADATA_FILENAME = "metadata.json"
IMAGE_STEM = "project-image"


class InvalidProjectKey(ValueError):
    pass


class StorageError(Exception):
    pass


class StorageWriteFailed(StorageError):
    pass


class StorageReadFailed(StorageError):
    pass


def _check_segment(name: str, value: str):
    if not value or value in {".", ".."} or any(c in value for c in "/\\\0"):
        raise InvalidProjectKey(f"Invalid {name}: {value!r} cannot be used as a storage path segment")


class KeyedLocks:
    """Hands out one lock per project key, and forgets locks that nobody holds or waits for."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[ProjectKey, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: ProjectKey) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users == 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


class ProjectStore:
    def __init__(self, root: Path, public_url: str, logger: logging.Logger | None = None):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        self.logger = logger or logging.getLogger(__name__)
        self.locks = KeyedLocks()

    def project_dir(self, key: ProjectKey) -> Path:
        _check_segment("chainID", key.chain_id)
        _check_segment("tokenAddress", key.token_address)
        return self.root / key.chain_id / key.token_address

    def metadata_path(self, key: ProjectKey) -> Path:
        return self.project_dir(key) / METADATA_FILENAME

    def url_for(self, key: ProjectKey, filename: str) -> str:
        return f"{self.public_url}/storage/{key.chain_id}/{key.token_address}/{filename}"

    def exists(self, key: ProjectKey) -> bool:
        path = self.metadata_path(key)
        return path.is_file() and os.access(path, os.R_OK)

    def fetch(self, key: ProjectKey) -> StoredProject:
        """
        Read an existing project. The metadata document is returned as stored.
        A project whose image has gone missing is returned with image_name and image_url set to None.
        """
        try:
            with self.metadata_path(key).open(encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageReadFailed(f"Cannot read metadata of project {key}: {e}") from e
        if not isinstance(metadata, dict):
            raise StorageReadFailed(f"Cannot read metadata of project {key}: not a JSON object")
        image = self._find_image(self.project_dir(key))
        if image is None:
            self.logger.warning(f"Project {key} has metadata but no image")
        return StoredProject(
            metadata=metadata,
            metadata_url=self.url_for(key, METADATA_FILENAME),
            image_name=image.name if image else None,
            image_url=self.url_for(key, image.name) if image else None,
        )

    def create_or_fetch(
        self, key: ProjectKey, fields: ProjectFields, staged: StagedUpload
    ) -> tuple[StoredProject, bool]:
        """
        Create the project from the given fields and staged image, unless it already exists.
        Returns the project and whether it was created. An existing project is returned as is, and the staged
        upload is left alone (it is up to the caller to discard it).
        """
        with self.locks.hold(key):
            if self.exists(key):
                self.logger.info(f"Project {key} already exists, not overwriting")
                return self.fetch(key), False
            return self._create(key, fields, staged), True

    def locate(self, key: ProjectKey, filename: str) -> Path | None:
        """Find a published file of a project, or None if there is no such file"""
        if filename.startswith(".") or any(c in filename for c in "/\\\0"):
            return None
        path = self.project_dir(key) / filename
        return path if path.is_file() else None

    def _create(self, key: ProjectKey, fields: ProjectFields, staged: StagedUpload) -> StoredProject:
        project_dir = self.project_dir(key)
        image_name = f"{IMAGE_STEM}{staged.extension}"
        image_url = self.url_for(key, image_name)
        try:
            self.logger.info(f"Creating project directory {project_dir}")
            project_dir.mkdir(parents=True, exist_ok=True)
            for orphan in self._list_images(project_dir):
                self.logger.warning(f"Removing orphaned image {orphan} of project {key}")
                orphan.unlink()

            self.logger.info(f"Moving uploaded file {staged.path} to {project_dir / image_name}")
            shutil.move(staged.path, project_dir / image_name)
            staged.consumed = True

            record = ProjectRecord.create(fields, image_url=image_url)
            self._write_metadata(project_dir, record)
        except OSError as e:
            raise StorageWriteFailed(f"Cannot store project {key}: {e}") from e
        self.logger.info(f"Stored project {key}")
        return StoredProject(
            metadata=record.model_dump(mode="json", by_alias=True),
            metadata_url=self.url_for(key, METADATA_FILENAME),
            image_name=image_name,
            image_url=image_url,
        )

    def _write_metadata(self, project_dir: Path, record: ProjectRecord):
        # Readers see either no metadata.json or a complete one
        tmp = project_dir / f".{METADATA_FILENAME}.tmp"
        try:
            tmp.write_text(record.to_document(), encoding="utf-8")
            os.replace(tmp, project_dir / METADATA_FILENAME)
        finally:
            tmp.unlink(missing_ok=True)

    @staticmethod
    def _list_images(project_dir: Path) -> list[Path]:
        if not project_dir.is_dir():
            return []
        return sorted(p for p in project_dir.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS)

    def _find_image(self, project_dir: Path) -> Path | None:
        images = self._list_images(project_dir)
        return images[0] if images else None
