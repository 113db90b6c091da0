from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.exceptions import BadRequestError
from vbs.dependencies import get_current_user
from vbs.models import User
from vbs.schemas import EspecesDeclaration, PaiementResponse, WaveInit, WaveInitResponse, WaveWebhookPayload
from vbs.services import paiement_service

router = APIRouter(prefix="/api/v1/paiements", tags=["paiements"])
webhooks_router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

@router.post("/wave/initier", status_code=201, response_model=WaveInitResponse)
async def initier_wave(
    data: WaveInit,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    paiement, url = await paiement_service.initier_wave(db, user, data.abonnement_id, data.montant)
    return {"paiement": paiement, "url_paiement": url}

@router.post("/especes", status_code=201, response_model=PaiementResponse)
async def declarer_especes(
    data: EspecesDeclaration,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await paiement_service.declarer_especes(
        db, user, data.abonnement_id, data.montant, data.justificatif_url
    )

@router.get("/me/historique", response_model=list[PaiementResponse])
async def get_historique(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await paiement_service.get_historique(db, user)

@webhooks_router.post("/wave/confirmation")
async def wave_confirmation(
    request: Request,
    x_wave_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
):
    body = await request.body()
    paiement_service.verify_wave_signature(body, x_wave_signature)
    try:
        payload = WaveWebhookPayload.model_validate_json(body)
    except ValidationError as exc:
        raise BadRequestError("Malformed webhook payload") from exc
    await paiement_service.handle_wave_webhook(db, payload)
    return {"received": True}
