"""
Metastore Configuration

We read configuration from 2 sources, in order of precedence (higher is more priority)
- Environment variables
- A .env file, either in the current working directory or in a location specified
  by the METASTORE_ENV_FILE environment variable
"""

import functools
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

from class_doc import extract_docs_from_cls_obj
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "metastore_"

DEFAULT_ORIGINS = {
    "production": ["https://launchpad.poodl.org"],
    "development": ["http://localhost:5173"],
}


class Environment(str, Enum):
    #: local development: error responses include details and the request id
    development = "development"

    #: public deployment: storage errors are reported without details
    production = "production"

    @classmethod
    def validate(cls, value: str):
        if value not in cls.__members__:
            options = ", ".join(Environment.__members__.keys())
            return f"{value} is not a valid environment. Choose one of {{{options}}}"


for field, doc in extract_docs_from_cls_obj(Environment).items():
    Environment[field].__doc__ = "\n".join(doc)


class Settings(BaseSettings):
    env_file: Annotated[
        Path,
        Field(
            description="Location of a .env file (if used) relative to working directory",
        ),
    ] = Path(".env")

    environment: Annotated[
        Environment, Field(description="Deployment environment")
    ] = Environment.development

    storage_dir: Annotated[
        Path,
        Field(
            description="Root directory of the project store (served read-only under /storage)",
        ),
    ] = Path("storage")

    upload_dir: Annotated[
        Path,
        Field(
            description="Directory where uploads are staged before they are moved into the store",
        ),
    ] = Path("tmp/uploads")

    max_image_size: Annotated[
        int,
        Field(
            description="Maximum size of a project image in bytes",
            gt=0,
        ),
    ] = 3 * 1024 * 1024

    port: Annotated[int, Field(description="Port to listen on")] = 5143

    public_url: Annotated[
        str,
        Field(
            description="Public base URL of this server, used to build metadata and image URLs",
        ),
    ] = "http://localhost:5143"

    allowed_origins: Annotated[
        list[str] | None,
        Field(
            description=(
                "Origins allowed to call the API (JSON list). "
                "Default: the launchpad in production, the local dev server otherwise"
            ),
        ),
    ] = None

    @model_validator(mode="after")
    def set_defaults(self: Any) -> "Settings":
        self.public_url = self.public_url.rstrip("/")
        if self.allowed_origins is None:
            self.allowed_origins = list(DEFAULT_ORIGINS[self.environment.value])
        return self

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX)


@functools.lru_cache()
def get_settings() -> Settings:
    # Read once to find out where the .env file lives, then let it fill in what the environment doesn't set
    temp = Settings()
    load_dotenv(temp.env_file, override=False)
    return Settings()


def validate_settings():
    settings = get_settings()
    if settings.environment == Environment.production and settings.public_url.startswith("http://"):
        return (
            f"The public url {settings.public_url} is not an https address."
            " Metadata and image urls handed out to clients will be insecure."
        )


if __name__ == "__main__":
    # Echo the settings
    for k, v in get_settings().model_dump().items():
        print(f"{ENV_PREFIX.upper()}{k.upper()}={v}")
