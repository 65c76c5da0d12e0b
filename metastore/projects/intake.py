"""
Intake of project submissions.

A submission is a set of form fields plus (at most) one image. The image is staged in the upload directory first,
then the submission passes these gates in order:

- all required fields are present and not blank
- if the project already exists, the existing project is returned and nothing else is checked
- an image was uploaded
- the image has an accepted content type
- the image is not larger than the maximum size

A staged image that does not end up in the store is always removed before submit returns.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Mapping, Protocol, Sequence

from metastore.models import (
    ALLOWED_MIME_TYPES,
    IMAGE_EXTENSIONS,
    OPTIONAL_FIELDS,
    REQUIRED_FIELDS,
    ProjectFields,
    StagedUpload,
    StoredProject,
)
from metastore.projects.store import ProjectStore, StorageWriteFailed

CHUNK_SIZE = 64 * 1024


class Upload(Protocol):
    """The part of an uploaded file (e.g. fastapi.UploadFile) that intake relies on"""

    filename: str | None
    file: BinaryIO

    @property
    def content_type(self) -> str | None: ...


class IntakeError(ValueError):
    """A submission that is rejected before anything is stored"""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.details = details


class MissingFields(IntakeError):
    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required fields: {', '.join(missing)}", missingFields=missing)


class MissingImage(IntakeError):
    def __init__(self):
        super().__init__("Project image is required")


class UnsupportedMediaType(IntakeError):
    def __init__(self, content_type: str | None):
        super().__init__(
            f"Invalid file type: {content_type}. Only JPEG, PNG, and GIF images are allowed.",
            allowedTypes=list(ALLOWED_MIME_TYPES),
        )


class PayloadTooLarge(IntakeError):
    def __init__(self, max_size: int):
        super().__init__(f"File size exceeds {format_size(max_size)} limit", maxSize=max_size)


class TooManyFiles(IntakeError):
    def __init__(self, n: int):
        super().__init__(f"Too many files uploaded ({n}), only one image is allowed")


@dataclass
class IntakeResult:
    created: bool
    metadata_url: str
    image_url: str | None


def format_size(nbytes: int) -> str:
    if nbytes % (1024 * 1024) == 0:
        return f"{nbytes // (1024 * 1024)}MB"
    return f"{nbytes / (1024 * 1024):.1f}MB"


def upload_extension(filename: str | None, content_type: str | None) -> str:
    """
    The extension to store an image under: the extension of the uploaded file if it is an image extension
    (case preserved), otherwise the usual extension for its content type.
    """
    suffix = Path(filename).suffix if filename else ""
    if suffix.lower() in IMAGE_EXTENSIONS:
        return suffix
    return ALLOWED_MIME_TYPES.get(content_type or "", suffix)


def expected_inputs(max_image_size: int) -> dict[str, str]:
    """Description of all inputs, included in error responses so clients can correct their request"""
    return {
        "projectName": "string",
        "projectDescription": "string",
        "chainID": "string",
        "tokenAddress": "string",
        "website": "string (optional)",
        "twitter": "string (optional)",
        "telegram": "string (optional)",
        "discord": "string (optional)",
        "image": f"image file (required for new projects, jpeg/png/gif, max {format_size(max_image_size)})",
    }


def blank(value: str | None) -> bool:
    return value is None or not value.strip()


class IntakePipeline:
    def __init__(
        self, store: ProjectStore, upload_dir: Path, max_image_size: int, logger: logging.Logger | None = None
    ):
        self.store = store
        self.upload_dir = Path(upload_dir)
        self.max_image_size = max_image_size
        self.logger = logger or logging.getLogger(__name__)

    def stage(self, upload: Upload) -> StagedUpload:
        """
        Copy an upload into the upload directory.
        Stops reading one byte past the maximum size, which is enough to reject the file later on.
        """
        extension = upload_extension(upload.filename, upload.content_type)
        path = self.upload_dir / f"{uuid.uuid4().hex}{extension}"
        size = 0
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as out:
                while size <= self.max_image_size:
                    chunk = upload.file.read(min(CHUNK_SIZE, self.max_image_size + 1 - size))
                    if not chunk:
                        break
                    out.write(chunk)
                    size += len(chunk)
        except OSError as e:
            path.unlink(missing_ok=True)
            raise StorageWriteFailed(f"Cannot stage upload {upload.filename!r} in {self.upload_dir}: {e}") from e
        self.logger.debug(f"Staged upload {upload.filename!r} as {path} ({size} bytes)")
        return StagedUpload(
            path=path, content_type=upload.content_type, filename=upload.filename, extension=extension, size=size
        )

    def discard(self, staged: StagedUpload):
        """Remove a staged upload. Failing to do so is logged, never raised."""
        try:
            staged.path.unlink(missing_ok=True)
            self.logger.debug(f"Cleaned up temporary upload file {staged.path}")
        except OSError as e:
            self.logger.error(f"Failed to clean up temporary upload file {staged.path}: {e}")

    def submit(self, form: Mapping[str, str | None], images: Sequence[Upload] = ()) -> IntakeResult:
        """
        Store a new project, or return the existing project with the same chain ID and token address.
        Raises an IntakeError if the submission is rejected, or a StorageError if it could not be stored.
        """
        # A form without a chosen file still sends an empty file part
        images = [image for image in images if image.filename]
        if len(images) > 1:
            raise TooManyFiles(len(images))
        staged = self.stage(images[0]) if images else None
        try:
            return self._submit(form, staged)
        finally:
            if staged is not None and not staged.consumed:
                self.discard(staged)

    def _submit(self, form: Mapping[str, str | None], staged: StagedUpload | None) -> IntakeResult:
        missing = [f for f in REQUIRED_FIELDS if blank(form.get(f))]
        if missing:
            self.logger.warning(f"Missing required fields: {missing}")
            raise MissingFields(missing)

        fields = ProjectFields(**{f: form.get(f) or "" for f in REQUIRED_FIELDS + OPTIONAL_FIELDS})
        key = fields.key
        if self.store.exists(key):
            self.logger.info(f"Project {key} already exists, returning existing data")
            return self._result(self.store.fetch(key), created=False)

        if staged is None:
            self.logger.warning(f"No image uploaded for new project {key}")
            raise MissingImage()
        if staged.content_type not in ALLOWED_MIME_TYPES:
            self.logger.warning(f"File type rejected: {staged.content_type}")
            raise UnsupportedMediaType(staged.content_type)
        if staged.size > self.max_image_size:
            self.logger.warning(f"Image for project {key} exceeds {self.max_image_size} bytes")
            raise PayloadTooLarge(self.max_image_size)

        project, created = self.store.create_or_fetch(key, fields, staged)
        return self._result(project, created)

    @staticmethod
    def _result(project: StoredProject, created: bool) -> IntakeResult:
        return IntakeResult(created=created, metadata_url=project.metadata_url, image_url=project.image_url)
