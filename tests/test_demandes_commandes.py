"""
Endpoint tests for the request -> order flow (/api/v1/demandes,
/api/v1/commandes).
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import auth, make_commande, make_prestataire, make_service, make_user
from vbs.models import Commande, Role, StatutCommande


# ---------------------------------------------------------------------------
# Demandes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_demande_defaults_to_user_address(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session, address="Sacre-Coeur 3, Dakar")
    service = await make_service(db_session)
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/demandes",
        json={"service_id": service.id, "description": "Robinet qui fuit"},
        headers=auth(client),
    )
    assert resp.status_code == 201
    data = resp.json()
    assert data["statut"] == "EN_ATTENTE"
    assert data["adresse"] == "Sacre-Coeur 3, Dakar"
    assert data["service"]["nom"] == service.nom

    mine = await async_client.get("/api/v1/demandes", headers=auth(client))
    assert [d["id"] for d in mine.json()] == [data["id"]]


@pytest.mark.asyncio
async def test_create_demande_for_inactive_service(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    service = await make_service(db_session)
    service.actif = False
    await db_session.commit()

    resp = await async_client.post(
        "/api/v1/demandes", json={"service_id": service.id, "description": "x"}, headers=auth(client)
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_provider_accepts_demande(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    service = await make_service(db_session)
    prestataire = await make_prestataire(db_session, service=service)
    other_service = await make_service(db_session, nom="Peinture")
    await db_session.commit()

    created = await async_client.post(
        "/api/v1/demandes", json={"service_id": service.id, "description": "Chauffe-eau"}, headers=auth(client)
    )
    await async_client.post(
        "/api/v1/demandes", json={"service_id": other_service.id, "description": "Salon"}, headers=auth(client)
    )
    demande_id = created.json()["id"]

    inbox = await async_client.get("/api/v1/demandes/prestataire", headers=auth(prestataire.user))
    assert [d["id"] for d in inbox.json()] == [demande_id]

    resp = await async_client.post(f"/api/v1/demandes/{demande_id}/accept", headers=auth(prestataire.user))
    assert resp.status_code == 200
    assert resp.json()["statut"] == "ACCEPTEE"

    commande = (await db_session.execute(select(Commande))).scalar_one()
    assert commande.demande_id == demande_id
    assert commande.prestataire_id == prestataire.id
    assert commande.utilisateur_id == client.id
    assert commande.statut == StatutCommande.EN_ATTENTE

    refused = await async_client.post(f"/api/v1/demandes/{demande_id}/refuse", headers=auth(prestataire.user))
    assert refused.status_code == 400


@pytest.mark.asyncio
async def test_only_providers_answer_demandes(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    await db_session.commit()

    resp = await async_client.post("/api/v1/demandes/1/accept", headers=auth(client))
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Commandes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_contact_opens_single_order(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    service = await make_service(db_session)
    prestataire = await make_prestataire(db_session, service=service)
    await db_session.commit()
    demande = await async_client.post(
        "/api/v1/demandes", json={"service_id": service.id, "description": "Carrelage"}, headers=auth(client)
    )

    payload = {"demande_id": demande.json()["id"], "prestataire_id": prestataire.id}
    first = await async_client.post("/api/v1/commandes/contact", json=payload, headers=auth(client))
    assert first.status_code == 201
    assert first.json()["statut"] == "EN_COURS"
    second = await async_client.post("/api/v1/commandes/contact", json=payload, headers=auth(client))
    assert second.json()["id"] == first.json()["id"]

    stranger = await make_user(db_session)
    await db_session.commit()
    resp = await async_client.post("/api/v1/commandes/contact", json=payload, headers=auth(stranger))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_client_completes_order_then_reviews(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    prestataire = await make_prestataire(db_session)
    commande = await make_commande(db_session, client, prestataire, statut=StatutCommande.EN_COURS)
    await db_session.commit()

    done = await async_client.post(f"/api/v1/commandes/{commande.id}/terminer", headers=auth(client))
    assert done.status_code == 200
    assert done.json()["statut"] == "TERMINEE"

    review = await async_client.post(
        "/api/v1/avis", json={"commande_id": commande.id, "note": 5}, headers=auth(client)
    )
    assert review.status_code == 201

    detail = await async_client.get(f"/api/v1/commandes/{commande.id}", headers=auth(client))
    assert detail.json()["avis"]["note"] == 5

    again = await async_client.post(f"/api/v1/commandes/{commande.id}/terminer", headers=auth(client))
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_provider_status_transitions(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    prestataire = await make_prestataire(db_session)
    other = await make_prestataire(db_session, raison_sociale="Concurrent")
    commande = await make_commande(db_session, client, prestataire, statut=StatutCommande.EN_ATTENTE)
    await db_session.commit()

    url = f"/api/v1/commandes/{commande.id}/statut"
    accepted = await async_client.patch(url, json={"statut": "ACCEPTEE"}, headers=auth(prestataire.user))
    assert accepted.status_code == 200
    assert accepted.json()["statut"] == "ACCEPTEE"

    backwards = await async_client.patch(url, json={"statut": "EN_ATTENTE"}, headers=auth(prestataire.user))
    assert backwards.status_code == 400

    foreign = await async_client.patch(url, json={"statut": "EN_COURS"}, headers=auth(other.user))
    assert foreign.status_code == 404

    cancelled = await async_client.patch(url, json={"statut": "ANNULEE"}, headers=auth(prestataire.user))
    assert cancelled.status_code == 200
    reopened = await async_client.patch(url, json={"statut": "EN_COURS"}, headers=auth(prestataire.user))
    assert reopened.status_code == 400

    listing = await async_client.get("/api/v1/commandes/prestataire", headers=auth(prestataire.user))
    assert [c["id"] for c in listing.json()] == [commande.id]


@pytest.mark.asyncio
async def test_order_visibility(async_client: AsyncClient, db_session: AsyncSession):
    client = await make_user(db_session)
    stranger = await make_user(db_session)
    admin = await make_user(db_session, role=Role.ADMIN)
    prestataire = await make_prestataire(db_session)
    commande = await make_commande(db_session, client, prestataire)
    await db_session.commit()

    url = f"/api/v1/commandes/{commande.id}"
    assert (await async_client.get(url, headers=auth(client))).status_code == 200
    assert (await async_client.get(url, headers=auth(prestataire.user))).status_code == 200
    assert (await async_client.get(url, headers=auth(admin))).status_code == 200
    assert (await async_client.get(url, headers=auth(stranger))).status_code == 403
    assert (await async_client.get("/api/v1/commandes/999", headers=auth(client))).status_code == 404

    mine = await async_client.get("/api/v1/commandes", headers=auth(client))
    assert [c["id"] for c in mine.json()] == [commande.id]
