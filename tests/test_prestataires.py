"""
Endpoint tests for provider profiles (/api/v1/prestataires), the caller's
account (/api/v1/users) and the service catalog.
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import auth, make_commande, make_prestataire, make_service, make_user
from vbs.models import Avis, KycStatut, PrestataireService, Role


# ---------------------------------------------------------------------------
# Profile creation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_profile_promotes_user(async_client: AsyncClient, db_session: AsyncSession):
    user = await make_user(db_session)
    service = await make_service(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/prestataires",
        json={"raison_sociale": "Gueye Plomberie", "service_ids": [service.id, service.id]},
        headers=auth(user),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["kyc_statut"] == "EN_ATTENTE"
    assert data["abonnement_actif"] is False
    assert data["note_moyenne"] == 0.0
    assert data["nombre_avis"] == 0

    await db_session.refresh(user)
    assert user.role == Role.PRESTATAIRE

    me = await async_client.get("/api/v1/prestataires/me", headers=auth(user))
    assert me.status_code == 200
    assert [s["service_id"] for s in me.json()["services"]] == [service.id]


@pytest.mark.asyncio
async def test_duplicate_profile_returns_409(async_client: AsyncClient, db_session: AsyncSession):
    prestataire = await make_prestataire(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/prestataires", json={"raison_sociale": "Doublon"}, headers=auth(prestataire.user)
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_unverified_profile_hidden_from_search(async_client: AsyncClient, db_session: AsyncSession):
    await make_prestataire(db_session, raison_sociale="Verifie")
    await make_prestataire(db_session, raison_sociale="Pas verifie", kyc_statut=KycStatut.EN_ATTENTE)
    await db_session.commit()

    resp = await async_client.get("/api/v1/prestataires")
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert [p["raison_sociale"] for p in body["items"]] == ["Verifie"]


@pytest.mark.asyncio
async def test_search_rejects_unknown_sort(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/prestataires", params={"tri": "prix"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_availability_toggle_hides_provider(async_client: AsyncClient, db_session: AsyncSession):
    prestataire = await make_prestataire(db_session)
    await db_session.commit()

    resp = await async_client.patch(
        "/api/v1/prestataires/me/disponibilite", json={"disponibilite": False}, headers=auth(prestataire.user)
    )
    assert resp.status_code == 200
    assert resp.json()["disponibilite"] is False

    search = await async_client.get("/api/v1/prestataires")
    assert search.json()["total"] == 0


@pytest.mark.asyncio
async def test_me_requires_provider_role(async_client: AsyncClient, db_session: AsyncSession):
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.get("/api/v1/prestataires/me", headers=auth(user))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Public profile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_public_profile_shows_active_services_and_visible_reviews(
    async_client: AsyncClient, db_session: AsyncSession
):
    offered = await make_service(db_session, nom="Climatisation")
    dropped = await make_service(db_session, nom="Chauffage")
    prestataire = await make_prestataire(db_session, service=offered)
    db_session.add(PrestataireService(prestataire_id=prestataire.id, service_id=dropped.id, actif=False))
    c1 = await make_user(db_session)
    c2 = await make_user(db_session)
    cmd1 = await make_commande(db_session, c1, prestataire)
    cmd2 = await make_commande(db_session, c2, prestataire)
    db_session.add_all([
        Avis(commande_id=cmd1.id, prestataire_id=prestataire.id, utilisateur_id=c1.id, note=4),
        Avis(commande_id=cmd2.id, prestataire_id=prestataire.id, utilisateur_id=c2.id, note=1, visible=False),
    ])
    await db_session.commit()

    resp = await async_client.get(f"/api/v1/prestataires/{prestataire.id}")
    assert resp.status_code == 200
    data = resp.json()
    assert [s["service"]["nom"] for s in data["services"]] == ["Climatisation"]
    assert [a["note"] for a in data["avis"]] == [4]


@pytest.mark.asyncio
async def test_profile_of_deactivated_account_is_404(async_client: AsyncClient, db_session: AsyncSession):
    prestataire = await make_prestataire(db_session)
    prestataire.user.actif = False
    await db_session.commit()

    resp = await async_client.get(f"/api/v1/prestataires/{prestataire.id}")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# /users/me
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_me_partial(async_client: AsyncClient, db_session: AsyncSession):
    user = await make_user(db_session, address="Medina")
    await db_session.commit()

    resp = await async_client.patch(
        "/api/v1/users/me", json={"email": "moussa@example.sn"}, headers=auth(user)
    )
    assert resp.status_code == 200
    assert resp.json()["email"] == "moussa@example.sn"
    assert resp.json()["address"] == "Medina"

    me = await async_client.get("/api/v1/users/me", headers=auth(user))
    assert me.json()["email"] == "moussa@example.sn"


@pytest.mark.asyncio
async def test_update_me_duplicate_email_returns_409(async_client: AsyncClient, db_session: AsyncSession):
    await make_user(db_session, email="pris@example.sn")
    user = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.patch("/api/v1/users/me", json={"email": "pris@example.sn"}, headers=auth(user))
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_invalid_token_rejected(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid token"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_catalog_endpoints(async_client: AsyncClient, db_session: AsyncSession):
    service = await make_service(db_session, nom="Vidange")
    await db_session.commit()

    tree = await async_client.get("/api/v1/secteurs")
    assert tree.status_code == 200
    assert tree.json()[0]["sous_secteurs"][0]["services"][0]["nom"] == "Vidange"

    flat = await async_client.get("/api/v1/services", params={"sous_secteur_id": service.sous_secteur_id})
    assert [s["id"] for s in flat.json()] == [service.id]
