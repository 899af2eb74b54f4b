"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Proof State Machine                                          ║
║                                                                              ║
║  RÈGLES STRICTES DE TRANSITION DE STATUT                                     ║
║                                                                              ║
║  SEUL decision_processor peut marquer une épreuve Approuvée / Modification   ║
║  SEUL proof_console peut marquer une épreuve Envoyée au client               ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - status="Envoyée au client" IMPLIQUE approval_token non vide               ║
║  - status="Approuvée" IMPLIQUE approved_by_name non vide                     ║
║  - status="Modification demandée" IMPLIQUE client_comments non vide          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from typing import Optional, Dict, Any

from models.proof import ProofStatus, TERMINAL_PROOF_STATUSES

logger = logging.getLogger("proof_state_machine")


# ════════════════════════════════════════════════════════════════════════════
# VALID STATE TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

VALID_PROOF_TRANSITIONS = {
    ProofStatus.PREPARING.value: [ProofStatus.SENT_TO_CLIENT.value],
    ProofStatus.SENT_TO_CLIENT.value: [
        ProofStatus.APPROVED.value,
        ProofStatus.MODIFICATION_REQUESTED.value,
    ],
    ProofStatus.APPROVED.value: [],  # TERMINAL
    ProofStatus.MODIFICATION_REQUESTED.value: [],  # TERMINAL - nouvelle version requise
}


# ════════════════════════════════════════════════════════════════════════════
# INVARIANT CHECKS
# ════════════════════════════════════════════════════════════════════════════

class ProofInvariantError(Exception):
    """Raised when a proof invariant or transition rule is violated"""
    pass


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_PROOF_STATUSES


def validate_proof_transition(proof_id: str, from_status: str, to_status: str) -> bool:
    """
    Valide qu'une transition de statut épreuve est autorisée.
    """
    valid_next = VALID_PROOF_TRANSITIONS.get(from_status, [])

    if to_status not in valid_next:
        raise ProofInvariantError(
            f"INVALID TRANSITION: proof {proof_id} cannot go from '{from_status}' to '{to_status}'. "
            f"Valid transitions from '{from_status}': {valid_next}"
        )

    return True


def check_sent_invariants(proof: Dict[str, Any]) -> bool:
    """Un envoi exige un token déjà émis à la création"""
    if not proof.get("approval_token"):
        raise ProofInvariantError(
            f"INVARIANT VIOLATION: proof {proof.get('id')} has no approval_token, cannot be sent"
        )
    return True


def check_approved_invariants(client_name: Optional[str]) -> bool:
    if not client_name or not client_name.strip():
        raise ProofInvariantError("INVARIANT VIOLATION: approval requires a non-empty client name")
    return True


def check_modification_invariants(comments: Optional[str]) -> bool:
    if not comments or not comments.strip():
        raise ProofInvariantError("INVARIANT VIOLATION: modification request requires comments")
    return True
