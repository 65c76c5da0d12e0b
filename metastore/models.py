from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_FIELDS = ("projectName", "projectDescription", "chainID", "tokenAddress")
OPTIONAL_FIELDS = ("website", "twitter", "telegram", "discord")

ALLOWED_MIME_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
}
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif")


class ProjectKey(BaseModel):
    """
    Identifies a project by the chain it lives on and its token address.
    Both parts are used exactly as submitted, so addresses that differ only in case are different projects.
    """

    model_config = ConfigDict(frozen=True)

    chain_id: str
    token_address: str

    def __str__(self) -> str:
        return f"{self.chain_id}/{self.token_address}"


class ProjectFields(BaseModel):
    """The text fields of a project submission, stored verbatim."""

    model_config = ConfigDict(populate_by_name=True)

    project_name: str = Field(alias="projectName")
    project_description: str = Field(alias="projectDescription")
    chain_id: str = Field(alias="chainID")
    token_address: str = Field(alias="tokenAddress")
    website: str = ""
    twitter: str = ""
    telegram: str = ""
    discord: str = ""

    @property
    def key(self) -> ProjectKey:
        return ProjectKey(chain_id=self.chain_id, token_address=self.token_address)


class ProjectRecord(ProjectFields):
    """The metadata document (metadata.json) of a stored project."""

    image_url: str = Field(alias="imageUrl")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def create(cls, fields: ProjectFields, image_url: str) -> "ProjectRecord":
        now = datetime.now(UTC)
        return cls(**fields.model_dump(), image_url=image_url, created_at=now, updated_at=now)

    def to_document(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class StoredProject(BaseModel):
    """A project as found in (or just written to) the store."""

    metadata: dict[str, Any]
    metadata_url: str
    image_name: str | None = None
    image_url: str | None = None


class StagedUpload(BaseModel):
    """An uploaded image waiting in the upload directory until it is moved into the store or discarded."""

    path: Path
    content_type: str | None
    filename: str | None
    extension: str
    size: int
    consumed: bool = False
