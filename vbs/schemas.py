from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from vbs.models import (
    KycStatut,
    MethodePaiement,
    Role,
    StatutAbonnement,
    StatutCommande,
    StatutDemande,
    StatutPaiement,
    TypeAbonnement,
)

# Admin decisions: the pending state is never a valid target.
Decision = Literal["VALIDE", "REFUSE"]


# --- User ---

class UserResponse(BaseModel):
    id: int
    phone: str
    email: str | None = None
    role: Role
    actif: bool
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UserUpdate(BaseModel):
    email: str | None = Field(None, max_length=255)
    address: str | None = Field(None, max_length=255)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class UserContact(BaseModel):
    """Public subset of a user embedded in other resources."""
    id: int
    phone: str
    email: str | None = None
    address: str | None = None
    model_config = ConfigDict(from_attributes=True)


class UserActiveUpdate(BaseModel):
    actif: bool


# --- Catalog ---

class ServiceResponse(BaseModel):
    id: int
    nom: str
    description: str | None = None
    sous_secteur_id: int
    model_config = ConfigDict(from_attributes=True)


class SousSecteurResponse(BaseModel):
    id: int
    nom: str
    secteur_id: int
    services: list[ServiceResponse] = []
    model_config = ConfigDict(from_attributes=True)


class SecteurResponse(BaseModel):
    id: int
    nom: str
    description: str | None = None
    sous_secteurs: list[SousSecteurResponse] = []
    model_config = ConfigDict(from_attributes=True)


# --- Avis ---

class AvisCreate(BaseModel):
    commande_id: int
    note: int = Field(ge=1, le=5)
    commentaire: str | None = Field(None, max_length=2000)


class AvisResponse(BaseModel):
    id: int
    commande_id: int
    prestataire_id: int
    utilisateur_id: int
    note: int
    commentaire: str | None = None
    visible: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AvisModeration(AvisResponse):
    prestataire_raison_sociale: str | None = None


class AvisVisibilityUpdate(BaseModel):
    visible: bool
    motif: str | None = None


# --- Prestataire ---

class PrestataireCreate(BaseModel):
    raison_sociale: str = Field(min_length=1, max_length=200)
    description: str | None = None
    logo_url: str | None = Field(None, max_length=500)
    service_ids: list[int] = []


class DisponibiliteUpdate(BaseModel):
    disponibilite: bool


class PrestataireServiceResponse(BaseModel):
    service_id: int
    actif: bool
    service: ServiceResponse | None = None
    model_config = ConfigDict(from_attributes=True)


class PrestataireResponse(BaseModel):
    id: int
    user_id: int
    raison_sociale: str
    description: str | None = None
    logo_url: str | None = None
    kyc_statut: KycStatut
    kyc_motif: str | None = None
    note_moyenne: float
    nombre_avis: int
    disponibilite: bool
    abonnement_actif: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class PrestataireSummary(PrestataireResponse):
    user: UserContact | None = None
    services: list[PrestataireServiceResponse] = []


class PrestataireDetail(PrestataireSummary):
    avis: list[AvisResponse] = []


class KycDecision(BaseModel):
    statut: Decision
    motif: str | None = Field(None, max_length=1000)


# --- Demande / Commande ---

class DemandeCreate(BaseModel):
    service_id: int
    description: str = Field(min_length=1)
    adresse: str | None = Field(None, max_length=255)


class DemandeResponse(BaseModel):
    id: int
    utilisateur_id: int
    service_id: int
    description: str
    adresse: str | None = None
    statut: StatutDemande
    created_at: datetime
    service: ServiceResponse | None = None
    model_config = ConfigDict(from_attributes=True)


class ContactPrestataire(BaseModel):
    demande_id: int
    prestataire_id: int


class CommandeStatusUpdate(BaseModel):
    statut: StatutCommande


class CommandeResponse(BaseModel):
    id: int
    demande_id: int
    prestataire_id: int
    utilisateur_id: int
    prix: float
    statut: StatutCommande
    created_at: datetime
    updated_at: datetime
    avis: AvisResponse | None = None
    model_config = ConfigDict(from_attributes=True)


# --- Abonnement / Paiement ---

class PlanResponse(BaseModel):
    id: int
    nom: str
    type: TypeAbonnement
    prix: float
    model_config = ConfigDict(from_attributes=True)


class AbonnementCreate(BaseModel):
    type: TypeAbonnement
    plan_id: int | None = None
    tarif: float | None = Field(None, ge=0)


class PaiementResponse(BaseModel):
    id: int
    abonnement_id: int
    prestataire_id: int
    methode: MethodePaiement
    montant: float
    statut: StatutPaiement
    reference_externe: str | None = None
    justificatif_url: str | None = None
    date_validation: datetime | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AbonnementResponse(BaseModel):
    id: int
    prestataire_id: int
    plan_id: int | None = None
    type: TypeAbonnement
    date_debut: datetime
    date_fin: datetime
    tarif: float | None = None
    statut: StatutAbonnement
    plan: PlanResponse | None = None
    model_config = ConfigDict(from_attributes=True)


class AbonnementDetail(AbonnementResponse):
    paiements: list[PaiementResponse] = []


class WaveInit(BaseModel):
    abonnement_id: int
    montant: float = Field(gt=0)


class WaveInitResponse(BaseModel):
    paiement: PaiementResponse
    url_paiement: str


class EspecesDeclaration(BaseModel):
    abonnement_id: int
    montant: float = Field(ge=0)
    justificatif_url: str = Field(min_length=1, max_length=500)


class PaiementDecision(BaseModel):
    statut: Decision
    motif: str | None = Field(None, max_length=1000)


class PendingPaiementResponse(PaiementResponse):
    abonnement: AbonnementResponse | None = None
    prestataire: PrestataireResponse | None = None


class WaveWebhookPayload(BaseModel):
    status: str
    transaction_id: str | None = Field(None, alias="transactionId")
    reference: str | None = None
    model_config = ConfigDict(populate_by_name=True)


# --- Files ---

class UploadResponse(BaseModel):
    filename: str
    url: str


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    page_size: int
    pages: int


# --- Admin ---

class AdminStatsResponse(BaseModel):
    total_utilisateurs: int
    total_prestataires: int
    prestataires_pending_kyc: int
    paiements_pending_validation: int
    demandes_actives: int
    commandes_en_cours: int
    abonnements_actifs: int
    chiffre_affaire_total: float
    cache_info: dict = {}


class AdminActivityResponse(BaseModel):
    id: int
    admin_id: int
    type: str
    cible_id: int | None = None
    meta: dict | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AdminUserResponse(UserResponse):
    prestataire: PrestataireResponse | None = None


class ExpirationResult(BaseModel):
    expired: int
