"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Models Package                                               ║
║                                                                              ║
║  Exports tous les modèles pour import facile                                 ║
║  from models import ProofStatus, DecisionSubmit, etc.                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

# Auth
from .auth import UserLogin, UserResponse

# Épreuves
from .proof import (
    ProofStatus,
    OrderStatus,
    HistoryAction,
    TERMINAL_PROOF_STATUSES,
    VALID_PROOF_STATUSES,
    Proof,
    ApproveDecision,
    ModificationDecision,
    Decision,
    DecisionSubmit,
    RejectionReason,
    DecisionApplied,
    DecisionRejected,
    DecisionResult,
    DecisionResponse,
    PublicProof,
    ProofContext,
    ProofUploadResponse,
    SendProofResponse,
)
