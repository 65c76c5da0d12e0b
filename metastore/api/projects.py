"""API Endpoints to store project metadata and to read stored files."""

import functools
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from metastore.config import get_settings
from metastore.models import ProjectKey
from metastore.projects.intake import IntakePipeline
from metastore.projects.store import ProjectStore

app_projects = APIRouter(prefix="", tags=["projects"])


@functools.lru_cache()
def _project_store(root: Path, public_url: str) -> ProjectStore:
    # One store per location, so that all requests share its per-project locks
    return ProjectStore(root, public_url)


def get_store() -> ProjectStore:
    settings = get_settings()
    return _project_store(settings.storage_dir, settings.public_url)


def get_pipeline(store: ProjectStore = Depends(get_store)) -> IntakePipeline:
    settings = get_settings()
    return IntakePipeline(store, settings.upload_dir, settings.max_image_size)


# RESPONSE MODELS
class StoreProjectResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = Field(description="Whether the project is stored")
    message: str = Field(description="What happened")
    metadata_url: str = Field(description="Public URL of the metadata.json document")
    image_url: str | None = Field(description="Public URL of the project image, null if the image is missing")
    existing: bool | None = Field(None, description="Set if the project already existed")


@app_projects.post(
    "/store",
    status_code=status.HTTP_201_CREATED,
    response_model=StoreProjectResponse,
    responses={
        200: {"model": StoreProjectResponse, "description": "The project already exists"},
        400: {"description": "The submission is invalid"},
        500: {"description": "The project could not be stored"},
    },
)
def store_project(
    project_name: Annotated[str | None, Form(alias="projectName", description="Name of the project")] = None,
    project_description: Annotated[
        str | None, Form(alias="projectDescription", description="Description of the project")
    ] = None,
    chain_id: Annotated[str | None, Form(alias="chainID", description="Chain the token lives on")] = None,
    token_address: Annotated[str | None, Form(alias="tokenAddress", description="Address of the token")] = None,
    website: Annotated[str | None, Form(description="Project website")] = None,
    twitter: Annotated[str | None, Form(description="Twitter / X handle or link")] = None,
    telegram: Annotated[str | None, Form(description="Telegram link")] = None,
    discord: Annotated[str | None, Form(description="Discord invite")] = None,
    image: Annotated[
        list[UploadFile | str] | None, File(description="Project image (jpeg, png or gif)")
    ] = None,
    pipeline: IntakePipeline = Depends(get_pipeline),
):
    """
    Store the metadata and image of a project, identified by its chain ID and token address.

    If the project already exists it is not changed: the existing metadata and image urls are returned (status 200)
    and an image, if one was sent, is ignored. A new project needs an image (status 201).
    """
    form = dict(
        projectName=project_name,
        projectDescription=project_description,
        chainID=chain_id,
        tokenAddress=token_address,
        website=website,
        twitter=twitter,
        telegram=telegram,
        discord=discord,
    )
    # A file part without a filename arrives as an (empty) string
    uploads = [f for f in image or [] if isinstance(f, UploadFile)]
    result = pipeline.submit(form, uploads)
    if result.created:
        response = StoreProjectResponse(
            success=True,
            message="Project metadata stored successfully",
            metadata_url=result.metadata_url,
            image_url=result.image_url,
        )
        return JSONResponse(
            status_code=status.HTTP_201_CREATED, content=response.model_dump(by_alias=True, exclude_none=True)
        )
    response = StoreProjectResponse(
        success=True,
        message="Project already exists",
        metadata_url=result.metadata_url,
        image_url=result.image_url,
        existing=True,
    )
    return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(by_alias=True))


@app_projects.get("/storage/{chain_id}/{token_address}/{filename}")
def storage_file(chain_id: str, token_address: str, filename: str, store: ProjectStore = Depends(get_store)):
    """
    Read-only access to the files of stored projects (metadata.json and the project image).
    """
    path = store.locate(ProjectKey(chain_id=chain_id, token_address=token_address), filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    media_type = "application/json" if path.suffix.lower() == ".json" else None
    return FileResponse(path, media_type=media_type)
