"""
Metastore REST API
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import dotenv_values
from pydantic.fields import FieldInfo
from uvicorn.config import LOGGING_CONFIG

from metastore.config import ENV_PREFIX, Environment, get_settings, validate_settings
from metastore.models import ProjectKey
from metastore.projects.store import ProjectStore


def run(args):
    settings = get_settings()
    port = int(args.port or settings.port)
    logging.info(
        f"Starting server at port {port}, debug={not args.nodebug}, environment={settings.environment.value}, "
        f"storage={settings.storage_dir}, max image size={settings.max_image_size} bytes"
    )
    if warning := validate_settings():
        logging.warning(warning)
    logging.info(
        "To change server config, create an .env file and/or set environment parameters,\n"
        f"{' ' * 26}see metastore/config.py for more information.\n"
        f"{' ' * 26}You can also run `python -m metastore config` to create the .env settings file interactively\n"
    )
    log_config = "logging.yml" if Path("logging.yml").exists() else LOGGING_CONFIG
    uvicorn.run("metastore.api:app", host="0.0.0.0", reload=not args.nodebug, port=port, log_config=log_config)


def show(args):
    settings = get_settings()
    store = ProjectStore(settings.storage_dir, settings.public_url)
    key = ProjectKey(chain_id=args.chain_id, token_address=args.token_address)
    if not store.exists(key):
        print(f"*** Project {key} does not exist in {settings.storage_dir} ***")
        sys.exit(1)
    project = store.fetch(key)
    print(json.dumps(project.metadata, indent=2))
    print(f"metadata: {project.metadata_url}")
    print(f"image:    {project.image_url or '(missing)'}")


def create_env(args):
    if os.path.exists(".env"):
        print("*** File .env already exists, quitting ***")
        sys.exit(1)
    env = {f"{ENV_PREFIX}environment": args.environment}
    if args.public_url:
        env[f"{ENV_PREFIX}public_url"] = args.public_url
    with open(".env", "w") as f:
        for key, val in env.items():
            f.write(f"{key}={val}\n")
    print("*** Created .env file ***")


def config_metastore(args):
    settings = get_settings()
    print(f"Reading/writing settings from {settings.env_file}")
    changes = {}
    for fieldname, fieldinfo in type(settings).model_fields.items():
        if fieldname == "env_file":
            continue
        value = ask(fieldname, fieldinfo, getattr(settings, fieldname))
        if value is ABORTED:
            return
        if value is not UNCHANGED:
            changes[fieldname] = value

    # Unchanged settings keep what the .env file says, or else their (possibly derived) default
    values = {
        key.lower().removeprefix(ENV_PREFIX): value
        for key, value in dotenv_values(settings.env_file).items()
        if key.lower().startswith(ENV_PREFIX) and value is not None
    }
    values.update(changes)
    with settings.env_file.open("w") as f:
        for fieldname, fieldinfo in type(settings).model_fields.items():
            if fieldname not in values:
                continue
            if fieldinfo.description:
                f.write(f"# {fieldinfo.description}\n")
            f.write(f"{ENV_PREFIX}{fieldname}={values[fieldname]}\n\n")
    print(f"*** Written {bold(settings.env_file)} ***")


def bold(x):
    return "\033[1m" + str(x) + "\033[0m"


ABORTED = object()
UNCHANGED = object()


def ask(fieldname: str, fieldinfo: FieldInfo, value):
    """Ask for a new value for a setting. Returns UNCHANGED if the user just presses enter."""
    print(f"\n{bold(fieldname)}: {fieldinfo.description}")
    if fieldname == "environment":
        for option in Environment:
            print(f"  - {option.name}: {option.__doc__}")
    print(f"The current value for {bold(fieldname)} is {bold(value)}.")
    while True:
        try:
            new = input("Enter a new value, press [enter] to leave unchanged, or press [control+c] to abort: ")
        except KeyboardInterrupt:
            return ABORTED
        if not new.strip():
            return UNCHANGED
        if fieldname == "environment" and (message := Environment.validate(new)):
            print(f"\nInvalid value: {message}")
            continue
        return new


def main():
    parser = argparse.ArgumentParser(description=__doc__, prog="python -m metastore")

    subparsers = parser.add_subparsers(dest="action", title="action", help="Action to perform:", required=True)
    p = subparsers.add_parser("run", help="Run the backend API in development mode")
    p.add_argument(
        "--no-debug",
        action="store_true",
        dest="nodebug",
        help="Disable debug mode (no auto reload)",
    )
    p.add_argument("-p", "--port", help="Port (default: from settings)")
    p.set_defaults(func=run)

    p = subparsers.add_parser("create-env", help="Create a minimal .env file")
    p.add_argument("-e", "--environment", choices=[e.value for e in Environment], default="development")
    p.add_argument("-u", "--public-url", help="Public base URL of this server")
    p.set_defaults(func=create_env)

    p = subparsers.add_parser("config", help="Configure metastore settings in an interactive menu.")
    p.set_defaults(func=config_metastore)

    p = subparsers.add_parser("show", help="Show the stored metadata of a project")
    p.add_argument("chain_id", help="Chain ID of the project")
    p.add_argument("token_address", help="Token address of the project")
    p.set_defaults(func=show)

    args = parser.parse_args()

    logging.basicConfig(format="[%(levelname)-7s:%(name)-15s] %(message)s", level=logging.INFO)
    args.func(args)


if __name__ == "__main__":
    main()
