"""Endpoint tests for image uploads (/api/v1/files)."""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import auth, make_user
from vbs.config import settings

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _stored(upload_dir) -> list:
    return list(upload_dir.iterdir()) if upload_dir.exists() else []


@pytest.mark.asyncio
async def test_upload_and_serve_image(async_client: AsyncClient, db_session: AsyncSession, upload_dir):
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/files/upload",
        files={"file": ("Logo.PNG", PNG_BYTES, "image/png")},
        headers=auth(user),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["filename"].endswith(".png")
    assert data["url"] == f"/api/v1/files/{data['filename']}"
    assert [p.name for p in _stored(upload_dir)] == [data["filename"]]

    served = await async_client.get(data["url"])
    assert served.status_code == 200
    assert served.content == PNG_BYTES


@pytest.mark.asyncio
async def test_non_image_rejected_before_write(async_client: AsyncClient, db_session: AsyncSession, upload_dir):
    """A non-image upload fails and nothing reaches the upload directory."""
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/files/upload",
        files={"file": ("notes.pdf", b"%PDF-1.4 fake", "application/pdf")},
        headers=auth(user),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Only images are allowed"
    assert _stored(upload_dir) == []


@pytest.mark.asyncio
async def test_oversized_image_rejected(
    async_client: AsyncClient, db_session: AsyncSession, upload_dir, monkeypatch
):
    user = await make_user(db_session)
    await db_session.commit()
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 0)

    resp = await async_client.post(
        "/api/v1/files/upload",
        files={"file": ("big.png", PNG_BYTES, "image/png")},
        headers=auth(user),
    )
    assert resp.status_code == 400
    assert _stored(upload_dir) == []


@pytest.mark.asyncio
async def test_empty_image_rejected(async_client: AsyncClient, db_session: AsyncSession, upload_dir):
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/files/upload",
        files={"file": ("empty.png", b"", "image/png")},
        headers=auth(user),
    )
    assert resp.status_code == 400
    assert _stored(upload_dir) == []


@pytest.mark.asyncio
async def test_upload_requires_authentication(async_client: AsyncClient, upload_dir):
    resp = await async_client.post(
        "/api/v1/files/upload", files={"file": ("logo.png", PNG_BYTES, "image/png")}
    )
    assert resp.status_code == 401
    assert _stored(upload_dir) == []


@pytest.mark.asyncio
async def test_missing_file_returns_404(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/files/absent.png")
    assert resp.status_code == 404
