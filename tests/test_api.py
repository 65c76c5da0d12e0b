import pytest

from metastore.config import Environment
from tests.conftest import PUBLIC_URL
from tests.tools import (
    check,
    image_bytes,
    listdir,
    metastore_settings,
    post_empty_file_part,
    post_project,
    project_form,
)


def test_store_new_project(client, storage_dir, upload_dir):
    """A new project is stored and its urls returned"""
    res = post_project(client, project_form(), ("logo.png", image_bytes(10 * 1024), "image/png"))
    assert res == {
        "success": True,
        "message": "Project metadata stored successfully",
        "metadataUrl": f"{PUBLIC_URL}/storage/1/0xABC/metadata.json",
        "imageUrl": f"{PUBLIC_URL}/storage/1/0xABC/project-image.png",
    }
    assert '"chainID": "1"' in (storage_dir / "1" / "0xABC" / "metadata.json").read_text(encoding="utf-8")
    assert listdir(upload_dir) == set()


def test_store_existing_project(client, upload_dir):
    """Submitting the same project again returns the original project unchanged"""
    first = post_project(client, project_form())
    original = client.get("/storage/1/0xABC/metadata.json").json()

    res = post_project(client, project_form(projectDescription="Something else"), expected=200)
    assert res == {
        "success": True,
        "message": "Project already exists",
        "metadataUrl": first["metadataUrl"],
        "imageUrl": first["imageUrl"],
        "existing": True,
    }
    after = client.get("/storage/1/0xABC/metadata.json").json()
    assert after == original
    assert after["createdAt"] == original["createdAt"]
    assert after["projectDescription"] == "Bar"
    assert listdir(upload_dir) == set()

    # No image is needed to look up an existing project
    assert post_project(client, project_form(), image=None, expected=200)["existing"]


def test_existing_project_without_image(client, storage_dir):
    post_project(client, project_form())
    (storage_dir / "1" / "0xABC" / "project-image.png").unlink()
    res = post_project(client, project_form(), image=None, expected=200)
    assert res["imageUrl"] is None
    assert res["existing"] is True


def test_missing_fields(client):
    form = project_form()
    del form["tokenAddress"]
    res = post_project(client, form, expected=400)
    assert res["success"] is False
    assert "tokenAddress" in res["error"]
    assert res["missingFields"] == ["tokenAddress"]
    assert set(res["requiredFields"]) == {
        "projectName",
        "projectDescription",
        "chainID",
        "tokenAddress",
        "website",
        "twitter",
        "telegram",
        "discord",
        "image",
    }


def test_all_missing_fields_are_reported(client):
    res = post_project(client, {}, image=None, expected=400)
    assert res["missingFields"] == ["projectName", "projectDescription", "chainID", "tokenAddress"]


def test_image_too_large(client, storage_dir, upload_dir):
    form = project_form(chain_id="5", token_address="0xBIG")
    res = post_project(client, form, ("big.png", image_bytes(5 * 1024 * 1024), "image/png"), expected=400)
    assert res["success"] is False
    assert "exceeds 3MB" in res["error"]
    assert not (storage_dir / "5").exists()
    assert listdir(upload_dir) == set()


def test_unsupported_file_type(client, storage_dir, upload_dir):
    form = project_form(chain_id="5", token_address="0xTXT")
    res = post_project(client, form, ("notes.txt", b"just some text", "text/plain"), expected=400)
    assert res["success"] is False
    assert "Invalid file type" in res["error"]
    assert res["allowedTypes"] == ["image/jpeg", "image/png", "image/gif"]
    assert not (storage_dir / "5" / "0xTXT").exists()
    assert listdir(upload_dir) == set()


def test_missing_image(client, storage_dir):
    res = post_project(client, project_form(), image=None, expected=400)
    assert res["error"] == "Project image is required"
    assert not (storage_dir / "1" / "0xABC").exists()


@pytest.mark.parametrize("with_filename", [True, False])
def test_empty_file_part_is_no_image(client, storage_dir, upload_dir, with_filename):
    """A file input left empty counts as no image at all"""
    response = post_empty_file_part(client, project_form(), with_filename)
    check(response, 400)
    assert response.json()["error"] == "Project image is required"
    assert not (storage_dir / "1" / "0xABC").exists()
    assert listdir(upload_dir) == set()


@pytest.mark.parametrize("with_filename", [True, False])
def test_empty_file_part_existing_project(client, upload_dir, with_filename):
    first = post_project(client, project_form())
    response = post_empty_file_part(client, project_form(), with_filename)
    check(response, 200)
    assert response.json()["existing"] is True
    assert response.json()["imageUrl"] == first["imageUrl"]
    assert listdir(upload_dir) == set()


def test_too_many_files(client, upload_dir):
    files = [("image", ("a.png", image_bytes(100), "image/png")), ("image", ("b.png", image_bytes(100), "image/png"))]
    response = client.post("/store", data=project_form(), files=files)
    check(response, 400)
    assert "Too many files" in response.json()["error"]
    assert listdir(upload_dir) == set()


def test_invalid_key(client, upload_dir):
    res = post_project(client, project_form(chain_id=".."), expected=400)
    assert "chainID" in res["error"]
    assert "tokenAddress" in res["requiredFields"]
    assert listdir(upload_dir) == set()


def test_storage_failure(client, upload_dir, monkeypatch):
    def fail(*args, **kargs):
        raise OSError("disk full")

    monkeypatch.setattr("metastore.projects.store.shutil.move", fail)
    res = post_project(client, project_form(), expected=500)
    assert res["success"] is False
    assert res["error"] == "Failed to store project metadata"
    assert "disk full" in res["details"]
    assert listdir(upload_dir) == set()


def test_storage_failure_hides_details_in_production(client, monkeypatch):
    def fail(*args, **kargs):
        raise OSError("disk full")

    monkeypatch.setattr("metastore.projects.store.shutil.move", fail)
    with metastore_settings(environment=Environment.production):
        res = post_project(client, project_form(), expected=500)
    assert res == {"success": False, "error": "Failed to store project metadata"}


def test_read_stored_files(client):
    post_project(client, project_form(), ("logo.gif", b"GIF89a" + b"\0" * 100, "image/gif"))

    response = client.get("/storage/1/0xABC/metadata.json")
    check(response, 200)
    assert response.headers["content-type"].startswith("application/json")
    metadata = response.json()
    assert metadata["projectName"] == "Foo"
    assert metadata["imageUrl"] == f"{PUBLIC_URL}/storage/1/0xABC/project-image.gif"

    response = client.get("/storage/1/0xABC/project-image.gif")
    check(response, 200)
    assert response.headers["content-type"] == "image/gif"
    assert response.content.startswith(b"GIF89a")

    check(client.get("/storage/1/0xABC/project-image.png"), 404)
    check(client.get("/storage/1/0xDEF/metadata.json"), 404)
    check(client.get("/storage/1/0xABC/.metadata.json.tmp"), 404)


def test_cors(client):
    headers = {"Origin": "http://localhost:5173", "Access-Control-Request-Method": "POST"}
    response = client.options("/store", headers=headers)
    check(response, 200)
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"

    headers = {"Origin": "https://evil.example", "Access-Control-Request-Method": "POST"}
    response = client.options("/store", headers=headers)
    assert "access-control-allow-origin" not in response.headers


def test_health(client):
    res = client.get("/health").json()
    assert res["status"] == "ok"
    assert res["max_image_size"] == 3 * 1024 * 1024
    assert res["allowed_origins"] == ["http://localhost:5173"]
