"""
Regression tests for cross-cutting behaviour.

1. X-Query-Count reports the real number of SQL statements
2. CORS only answers for configured origins and never allows credentials
3. Errors are rendered as {"detail", "code"}
4. Cached search pages are dropped when a provider changes
5. Constraint names follow the metadata naming convention
6. Search pagination over HTTP honours page and clamps page_size
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import auth, make_commande, make_prestataire, make_user
from vbs.cache import cache
from vbs.config import settings
from vbs.database import Base
from vbs.models import Avis, PrestataireService


# ---------------------------------------------------------------------------
# 1. Query counter
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_query_count_header_exact_for_search(async_client: AsyncClient, db_session: AsyncSession):
    """
    Search issues COUNT + SELECT(joinedload user) + selectinload(services,
    joinedload service) = 3 queries, eager loads included.
    """
    await make_prestataire(db_session)
    await db_session.commit()

    resp = await async_client.get("/api/v1/prestataires")
    assert resp.status_code == 200
    count = int(resp.headers["x-query-count"])
    assert count == 3, f"Expected exactly 3 queries for provider search, got {count}"
    assert float(resp.headers["x-response-time-ms"]) >= 0


@pytest.mark.asyncio
async def test_health_has_no_queries(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.headers["x-query-count"] == "0"


# ---------------------------------------------------------------------------
# 2. CORS
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_allows_configured_origin_without_credentials(async_client: AsyncClient):
    resp = await async_client.options(
        "/api/v1/secteurs",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )
    assert resp.headers.get("access-control-allow-origin") == "http://localhost:3000"
    assert resp.headers.get("access-control-allow-credentials") != "true"


@pytest.mark.asyncio
async def test_cors_ignores_unknown_origin(async_client: AsyncClient):
    resp = await async_client.get("/health", headers={"Origin": "https://evil.example"})
    assert "access-control-allow-origin" not in resp.headers


# ---------------------------------------------------------------------------
# 3. Error envelope
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_error_envelope(async_client: AsyncClient, db_session: AsyncSession):
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.get("/api/v1/commandes/12345", headers=auth(user))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Commande 12345 not found", "code": "NOT_FOUND"}


# ---------------------------------------------------------------------------
# 4. Cache invalidation
# ---------------------------------------------------------------------------

class _FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache-aside paths."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


@pytest.mark.asyncio
async def test_review_invalidates_cached_search(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    prestataire = await make_prestataire(db_session)
    commande = await make_commande(db_session, client, prestataire)
    await db_session.commit()

    cache._redis = _FakeRedis()
    try:
        first = await async_client.get("/api/v1/prestataires")
        assert first.json()["items"][0]["note_moyenne"] == 0.0
        assert any(k.startswith("prestataires:search:") for k in cache._redis.store)

        await async_client.post(
            "/api/v1/avis", json={"commande_id": commande.id, "note": 5}, headers=auth(client)
        )
        assert not any(k.startswith("prestataires:search:") for k in cache._redis.store)

        second = await async_client.get("/api/v1/prestataires")
        assert second.json()["items"][0]["note_moyenne"] == 5.0
    finally:
        cache._redis = None


# ---------------------------------------------------------------------------
# 5. Constraint naming
# ---------------------------------------------------------------------------

def test_constraint_names_follow_convention():
    uniques = {c.name for c in PrestataireService.__table__.constraints}
    assert "uq_prestataire_services_prestataire_id" in uniques
    checks = {c.name for c in Avis.__table__.constraints}
    assert "ck_avis_note_range" in checks
    assert Base.metadata.tables["avis"].primary_key.name == "pk_avis"


# ---------------------------------------------------------------------------
# 6. Pagination
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_search_pagination_over_http(async_client: AsyncClient, db_session: AsyncSession):
    await make_prestataire(db_session, raison_sociale="Excellent", note_moyenne=4.9)
    await make_prestataire(db_session, raison_sociale="Moyen", note_moyenne=3.5)
    await make_prestataire(db_session, raison_sociale="Nouveau", note_moyenne=0.0)
    await db_session.commit()

    resp = await async_client.get("/api/v1/prestataires", params={"page": 2, "page_size": 2})
    body = resp.json()
    assert body["page"] == 2
    assert body["pages"] == 2
    assert [p["raison_sociale"] for p in body["items"]] == ["Nouveau"]

    too_big = await async_client.get("/api/v1/prestataires", params={"page_size": settings.MAX_PAGE_SIZE + 1})
    assert too_big.status_code == 422
