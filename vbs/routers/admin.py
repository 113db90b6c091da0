from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vbs.database import get_db
from vbs.dependencies import require_admin
from vbs.models import KycStatut, Role, User
from vbs.schemas import (
    AdminActivityResponse,
    AdminStatsResponse,
    AdminUserResponse,
    AvisModeration,
    AvisResponse,
    AvisVisibilityUpdate,
    CommandeResponse,
    DemandeResponse,
    ExpirationResult,
    KycDecision,
    PaiementDecision,
    PaiementResponse,
    PendingPaiementResponse,
    PrestataireResponse,
    PrestataireSummary,
    UserActiveUpdate,
    UserResponse,
)
from vbs.services import (
    abonnement_service,
    admin_service,
    avis_service,
    commande_service,
    demande_service,
    user_service,
)

# Every route of this router requires an ADMIN caller.
router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(require_admin)])

@router.get("/stats", response_model=AdminStatsResponse)
async def get_stats(db: AsyncSession = Depends(get_db)):
    return await admin_service.get_global_stats(db)

@router.get("/activities", response_model=list[AdminActivityResponse])
async def get_activities(db: AsyncSession = Depends(get_db)):
    return await admin_service.get_recent_activities(db)

@router.get("/users", response_model=list[AdminUserResponse])
async def list_users(role: Role | None = None, search: str | None = None, db: AsyncSession = Depends(get_db)):
    return await user_service.list_users(db, role, search)

@router.patch("/users/{user_id}/actif", response_model=UserResponse)
async def set_user_active(user_id: int, data: UserActiveUpdate, db: AsyncSession = Depends(get_db)):
    return await user_service.set_user_active(db, user_id, data.actif)

@router.get("/prestataires/pending-kyc", response_model=list[PrestataireSummary])
async def list_pending_kyc(db: AsyncSession = Depends(get_db)):
    return await admin_service.list_prestataires_pending_kyc(db)

@router.post("/prestataires/{prestataire_id}/validate-kyc", response_model=PrestataireResponse)
async def validate_kyc(
    prestataire_id: int,
    data: KycDecision,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.validate_kyc(db, prestataire_id, KycStatut(data.statut), admin, data.motif)

@router.get("/paiements/pending", response_model=list[PendingPaiementResponse])
async def list_pending_payments(db: AsyncSession = Depends(get_db)):
    return await admin_service.list_pending_cash_payments(db)

@router.post("/paiements/{paiement_id}/validate", response_model=PaiementResponse)
async def validate_paiement(
    paiement_id: int,
    data: PaiementDecision,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await admin_service.validate_paiement(db, paiement_id, data.statut, admin, data.motif)

@router.post("/abonnements/check-expirations", response_model=ExpirationResult)
async def check_expirations(db: AsyncSession = Depends(get_db)):
    return {"expired": await abonnement_service.check_expirations(db)}

@router.get("/avis", response_model=list[AvisModeration])
async def list_avis(visible: bool | None = None, db: AsyncSession = Depends(get_db)):
    return await avis_service.list_avis_for_moderation(db, visible)

@router.patch("/avis/{avis_id}", response_model=AvisResponse)
async def set_avis_visibility(
    avis_id: int,
    data: AvisVisibilityUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await avis_service.set_avis_visibility(db, avis_id, data.visible, admin, data.motif)

@router.get("/demandes", response_model=list[DemandeResponse])
async def list_demandes(db: AsyncSession = Depends(get_db)):
    return await demande_service.list_all_demandes(db)

@router.get("/commandes", response_model=list[CommandeResponse])
async def list_commandes(db: AsyncSession = Depends(get_db)):
    return await commande_service.list_all_commandes(db)
