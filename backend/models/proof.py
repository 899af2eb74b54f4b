"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Modèle Épreuve (BAT)                                         ║
║                                                                              ║
║  LIFECYCLE STRICT:                                                           ║
║  En préparation → Envoyée au client → Approuvée / Modification demandée      ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  - Une version n'est jamais modifiée: un nouveau fichier = version N+1       ║
║  - Seule la dernière version d'une commande peut recevoir une décision       ║
║  - approval_token / validation_token uniques et opaques                      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional, List, Dict, Any, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, validator
from enum import Enum


class ProofStatus(str, Enum):
    """Statuts d'une version d'épreuve (valeurs stockées en base)"""
    PREPARING = "En préparation"                 # Créée au téléversement
    SENT_TO_CLIENT = "Envoyée au client"         # Lien envoyé, décision attendue
    APPROVED = "Approuvée"                       # TERMINAL
    MODIFICATION_REQUESTED = "Modification demandée"  # TERMINAL


TERMINAL_PROOF_STATUSES = [ProofStatus.APPROVED.value, ProofStatus.MODIFICATION_REQUESTED.value]
VALID_PROOF_STATUSES = [s.value for s in ProofStatus]


class OrderStatus(str, Enum):
    """Statuts de commande (collaborateur gestion des commandes)"""
    WAITING_PROOF = "En attente de l'épreuve"
    IN_PRODUCTION = "En production"
    COMPLETED = "Complétée"


class HistoryAction(str, Enum):
    """Types d'entrées de l'historique de commande"""
    PROOF_UPLOADED = "proof_uploaded"
    PROOF_SENT = "proof_sent"
    PROOF_RESENT = "proof_resent"
    PROOF_APPROVED = "proof_approved"
    PROOF_MODIFICATION_REQUESTED = "proof_modification_requested"
    ORDER_STATUS_CHANGED = "order_status_changed"


class Proof(BaseModel):
    """
    Version d'épreuve pour une commande

    Créée au téléversement (status=En préparation), jamais supprimée,
    seulement remplacée par une version plus récente.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    order_id: str
    version: int
    status: str = ProofStatus.PREPARING.value

    # Fichier
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: int = 0

    # Accès public
    approval_token: Optional[str] = None
    validation_token: Optional[str] = None

    # Décision client
    client_comments: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[str] = None

    # Envoi
    sent_at: Optional[str] = None
    send_count: int = 0

    created_by: Optional[str] = None
    created_at: str = ""
    updated_at: Optional[str] = None


# ==================== DÉCISION CLIENT ====================

class ApproveDecision(BaseModel):
    """Approbation: le nom saisi vaut signature"""
    kind: Literal["approve"] = "approve"
    client_name: str
    confirmation: Optional[str] = None


class ModificationDecision(BaseModel):
    """Demande de modification: commentaires obligatoires"""
    kind: Literal["request_modification"] = "request_modification"
    comments: str
    client_name: Optional[str] = None


Decision = Union[ApproveDecision, ModificationDecision]


DECISION_ALIASES = {
    "approved": "approved",
    "approve": "approved",
    "rejected": "rejected",
    "reject": "rejected",
    "request_modification": "rejected",
}


class DecisionSubmit(BaseModel):
    """
    Contrat public unique de décision

    Exemple:
    {
        "token": "...",
        "decision": "approved",
        "clientName": "Jean Dupont"
    }
    Les anciens vocabulaires (approve / request_modification) sont normalisés.
    """
    model_config = ConfigDict(populate_by_name=True)

    token: str
    decision: str
    client_name: Optional[str] = Field(default=None, alias="clientName")
    comments: Optional[str] = None
    confirmation: Optional[str] = None

    @validator("decision", pre=True)
    def normalize_decision(cls, v):
        key = str(v or "").strip().lower()
        if key not in DECISION_ALIASES:
            raise ValueError('Décision invalide. Utilisez "approved" ou "rejected".')
        return DECISION_ALIASES[key]

    def to_decision(self) -> Decision:
        if self.decision == "approved":
            return ApproveDecision(
                client_name=(self.client_name or "").strip(),
                confirmation=self.confirmation,
            )
        return ModificationDecision(
            comments=(self.comments or "").strip(),
            client_name=(self.client_name or "").strip() or None,
        )


class RejectionReason(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_PAYLOAD = "invalid_payload"
    SUPERSEDED = "superseded"
    ALREADY_DECIDED = "already_decided"


class DecisionApplied(BaseModel):
    """La transition a été appliquée par cet appel"""
    outcome: Literal["applied"] = "applied"
    proof_id: str
    order_id: str
    version: int
    new_status: str
    partial_failure: bool = False
    follow_up: List[str] = []


class DecisionRejected(BaseModel):
    """Aucune mutation: raison + statut courant connu"""
    outcome: Literal["rejected"] = "rejected"
    reason: RejectionReason
    current_status: Optional[str] = None
    message: str = ""


DecisionResult = Union[DecisionApplied, DecisionRejected]


class DecisionResponse(BaseModel):
    """Réponse publique {success, newStatus?, error?}"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    new_status: Optional[str] = Field(default=None, alias="newStatus")
    current_status: Optional[str] = Field(default=None, alias="currentStatus")
    already_decided: bool = Field(default=False, alias="alreadyDecided")
    production_follow_up: bool = Field(default=False, alias="productionFollowUp")
    message: str = ""
    error: Optional[str] = None


# ==================== CONTEXTE PUBLIC ====================

class PublicProof(BaseModel):
    """Champs d'une épreuve visibles par le client (aucun token)"""
    model_config = ConfigDict(extra="ignore")

    id: str
    version: int
    status: str
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    client_comments: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[str] = None
    created_at: str = ""


class ProofContext(BaseModel):
    """Contexte complet d'une page de décision publique"""
    proof: PublicProof
    order: Dict[str, Any]
    client: Dict[str, Any]
    line_items: List[Dict[str, Any]] = []
    is_latest: bool = True
    latest_version: int = 1
    can_decide: bool = False
    proof_history: List[Dict[str, Any]] = []
    order_history: List[Dict[str, Any]] = []


# ==================== CONSOLE INTERNE ====================

class ProofUploadResponse(BaseModel):
    id: str
    order_id: str
    version: int
    status: str
    approval_token: str
    validation_token: str
    public_url: str


class SendProofResponse(BaseModel):
    proof_id: str
    status: str
    email_sent: bool
    public_url: str
    message: str = ""
