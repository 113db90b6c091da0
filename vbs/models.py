from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vbs.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[enum.Enum]) -> Enum:
    # Stored as VARCHAR so new statuses never need a native type migration.
    return Enum(enum_cls, native_enum=False, length=30, validate_strings=True)


# ---------------------------------------------------------------------------
# Status enums (values are the wire format used by the web client)
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    USER = "USER"
    PRESTATAIRE = "PRESTATAIRE"
    ADMIN = "ADMIN"


class KycStatut(str, enum.Enum):
    EN_ATTENTE = "EN_ATTENTE"
    VALIDE = "VALIDE"
    REFUSE = "REFUSE"


class StatutDemande(str, enum.Enum):
    EN_ATTENTE = "EN_ATTENTE"
    ACCEPTEE = "ACCEPTEE"
    REFUSEE = "REFUSEE"
    ANNULEE = "ANNULEE"


class StatutCommande(str, enum.Enum):
    EN_ATTENTE = "EN_ATTENTE"
    ACCEPTEE = "ACCEPTEE"
    EN_COURS = "EN_COURS"
    TERMINEE = "TERMINEE"
    ANNULEE = "ANNULEE"


class TypeAbonnement(str, enum.Enum):
    MENSUEL = "MENSUEL"
    ANNUEL = "ANNUEL"


class StatutAbonnement(str, enum.Enum):
    EN_ATTENTE = "EN_ATTENTE"
    ACTIF = "ACTIF"
    EXPIRE = "EXPIRE"
    ANNULE = "ANNULE"


class MethodePaiement(str, enum.Enum):
    WAVE = "WAVE"
    ORANGE_MONEY = "ORANGE_MONEY"
    ESPECES = "ESPECES"


class StatutPaiement(str, enum.Enum):
    EN_ATTENTE = "EN_ATTENTE"
    VALIDE = "VALIDE"
    REJETE = "REJETE"


# ---------------------------------------------------------------------------
# Shared columns
# ---------------------------------------------------------------------------

class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, onupdate=_now, nullable=False
    )


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------
class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    role: Mapped[Role] = mapped_column(_enum(Role), default=Role.USER, nullable=False)
    actif: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Relationships — lazy="noload" enforces explicit eager loading in services
    prestataire: Mapped[Optional["Prestataire"]] = relationship(
        "Prestataire", back_populates="user", uselist=False, lazy="noload"
    )


# ---------------------------------------------------------------------------
# Taxonomy: Secteur -> SousSecteur -> Service
# ---------------------------------------------------------------------------
class Secteur(Base):
    __tablename__ = "secteurs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nom: Mapped[str] = mapped_column(String(150), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sous_secteurs: Mapped[List["SousSecteur"]] = relationship(
        "SousSecteur", back_populates="secteur", lazy="noload", order_by="SousSecteur.nom"
    )


class SousSecteur(Base):
    __tablename__ = "sous_secteurs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nom: Mapped[str] = mapped_column(String(150), nullable=False)
    secteur_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("secteurs.id", ondelete="CASCADE"), nullable=False, index=True
    )

    secteur: Mapped["Secteur"] = relationship("Secteur", back_populates="sous_secteurs", lazy="noload")
    services: Mapped[List["Service"]] = relationship(
        "Service", back_populates="sous_secteur", lazy="noload", order_by="Service.nom"
    )


class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nom: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actif: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sous_secteur_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sous_secteurs.id", ondelete="CASCADE"), nullable=False, index=True
    )

    sous_secteur: Mapped["SousSecteur"] = relationship(
        "SousSecteur", back_populates="services", lazy="noload"
    )


# ---------------------------------------------------------------------------
# Prestataire
# ---------------------------------------------------------------------------
class Prestataire(TimestampMixin, Base):
    __tablename__ = "prestataires"

    __table_args__ = (
        # Public search: visible providers ranked by rating
        Index(
            "ix_prestataires_visibility",
            "abonnement_actif", "kyc_statut", "disponibilite", "note_moyenne",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    raison_sociale: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    kyc_statut: Mapped[KycStatut] = mapped_column(
        _enum(KycStatut), default=KycStatut.EN_ATTENTE, nullable=False, index=True
    )
    kyc_motif: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    note_moyenne: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    nombre_avis: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    disponibilite: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    abonnement_actif: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="prestataire", lazy="noload")
    services: Mapped[List["PrestataireService"]] = relationship(
        "PrestataireService", back_populates="prestataire", lazy="noload"
    )
    avis: Mapped[List["Avis"]] = relationship("Avis", back_populates="prestataire", lazy="noload")
    abonnements: Mapped[List["Abonnement"]] = relationship(
        "Abonnement", back_populates="prestataire", lazy="noload"
    )


class PrestataireService(Base):
    __tablename__ = "prestataire_services"

    __table_args__ = (UniqueConstraint("prestataire_id", "service_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prestataire_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prestataires.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actif: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    prestataire: Mapped["Prestataire"] = relationship(
        "Prestataire", back_populates="services", lazy="noload"
    )
    service: Mapped["Service"] = relationship("Service", lazy="noload")


# ---------------------------------------------------------------------------
# Demande -> Commande -> Avis
# ---------------------------------------------------------------------------
class Demande(TimestampMixin, Base):
    __tablename__ = "demandes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    utilisateur_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("services.id"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    adresse: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    statut: Mapped[StatutDemande] = mapped_column(
        _enum(StatutDemande), default=StatutDemande.EN_ATTENTE, nullable=False, index=True
    )

    service: Mapped["Service"] = relationship("Service", lazy="noload")
    utilisateur: Mapped["User"] = relationship("User", lazy="noload")


class Commande(TimestampMixin, Base):
    __tablename__ = "commandes"

    __table_args__ = (
        Index("ix_commandes_prestataire_id_statut", "prestataire_id", "statut"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    demande_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("demandes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prestataire_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prestataires.id", ondelete="CASCADE"), nullable=False
    )
    utilisateur_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prix: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    statut: Mapped[StatutCommande] = mapped_column(
        _enum(StatutCommande), default=StatutCommande.EN_ATTENTE, nullable=False
    )

    demande: Mapped["Demande"] = relationship("Demande", lazy="noload")
    prestataire: Mapped["Prestataire"] = relationship("Prestataire", lazy="noload")
    utilisateur: Mapped["User"] = relationship("User", lazy="noload")
    avis: Mapped[Optional["Avis"]] = relationship(
        "Avis", back_populates="commande", uselist=False, lazy="noload"
    )


class Avis(TimestampMixin, Base):
    __tablename__ = "avis"

    __table_args__ = (
        CheckConstraint("note BETWEEN 1 AND 5", name="note_range"),
        Index("ix_avis_prestataire_id_visible", "prestataire_id", "visible"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # One review per order, enforced by the database as well as the service.
    commande_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("commandes.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    prestataire_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prestataires.id", ondelete="CASCADE"), nullable=False
    )
    utilisateur_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    note: Mapped[int] = mapped_column(Integer, nullable=False)
    commentaire: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    commande: Mapped["Commande"] = relationship("Commande", back_populates="avis", lazy="noload")
    prestataire: Mapped["Prestataire"] = relationship(
        "Prestataire", back_populates="avis", lazy="noload"
    )
    utilisateur: Mapped["User"] = relationship("User", lazy="noload")


# ---------------------------------------------------------------------------
# Abonnement / Paiement
# ---------------------------------------------------------------------------
class PlanAbonnement(Base):
    __tablename__ = "plans_abonnement"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nom: Mapped[str] = mapped_column(String(150), nullable=False)
    type: Mapped[TypeAbonnement] = mapped_column(_enum(TypeAbonnement), nullable=False)
    prix: Mapped[float] = mapped_column(Float, nullable=False)
    actif: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Abonnement(TimestampMixin, Base):
    __tablename__ = "abonnements"

    __table_args__ = (
        Index("ix_abonnements_statut_date_fin", "statut", "date_fin"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prestataire_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prestataires.id", ondelete="CASCADE"), nullable=False, index=True
    )
    plan_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("plans_abonnement.id"), nullable=True
    )
    type: Mapped[TypeAbonnement] = mapped_column(_enum(TypeAbonnement), nullable=False)
    date_debut: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    date_fin: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    tarif: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    statut: Mapped[StatutAbonnement] = mapped_column(
        _enum(StatutAbonnement), default=StatutAbonnement.EN_ATTENTE, nullable=False
    )

    prestataire: Mapped["Prestataire"] = relationship(
        "Prestataire", back_populates="abonnements", lazy="noload"
    )
    plan: Mapped[Optional["PlanAbonnement"]] = relationship("PlanAbonnement", lazy="noload")
    paiements: Mapped[List["Paiement"]] = relationship(
        "Paiement", back_populates="abonnement", lazy="noload"
    )


class Paiement(TimestampMixin, Base):
    __tablename__ = "paiements"

    __table_args__ = (
        Index("ix_paiements_statut_methode", "statut", "methode"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    abonnement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("abonnements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prestataire_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("prestataires.id", ondelete="CASCADE"), nullable=False, index=True
    )
    methode: Mapped[MethodePaiement] = mapped_column(_enum(MethodePaiement), nullable=False)
    montant: Mapped[float] = mapped_column(Float, nullable=False)
    statut: Mapped[StatutPaiement] = mapped_column(
        _enum(StatutPaiement), default=StatutPaiement.EN_ATTENTE, nullable=False
    )
    reference_externe: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True
    )
    justificatif_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    date_validation: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    abonnement: Mapped["Abonnement"] = relationship(
        "Abonnement", back_populates="paiements", lazy="noload"
    )
    prestataire: Mapped["Prestataire"] = relationship("Prestataire", lazy="noload")


# ---------------------------------------------------------------------------
# AdminAction — append-only trail of moderation decisions
# ---------------------------------------------------------------------------
class AdminAction(Base):
    __tablename__ = "admin_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    admin_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    cible_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_now, nullable=False, index=True
    )
