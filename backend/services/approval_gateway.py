"""
Hub Grégoire - Public Approval Gateway

Surface sans authentification:
- resolve(token): contexte complet de la page de décision
- submit_decision(token, payload): délègue au DecisionProcessor

Un token inconnu donne toujours la même erreur générique (pas
d'énumération possible des commandes / clients).
"""

import logging
from typing import Dict, Any

from config import build_proof_file_url
from models.proof import (
    ProofStatus,
    PublicProof,
    ProofContext,
    DecisionSubmit,
    DecisionApplied,
    DecisionResponse,
    RejectionReason,
)
from services.proof_store import ProofStore, ProofNotFound
from services.order_store import OrderStore
from services.history import HistoryLog
from services.decision_processor import DecisionProcessor, NOT_FOUND_MESSAGE

logger = logging.getLogger("approval_gateway")

ORDER_PUBLIC_FIELDS = ("order_number", "status", "total_price")
CLIENT_PUBLIC_FIELDS = ("business_name", "contact_name")
HISTORY_PUBLIC_FIELDS = ("action_type", "description", "client_action", "created_at")

APPLIED_MESSAGES = {
    ProofStatus.APPROVED.value: "Épreuve approuvée avec succès. La commande est prête pour production.",
    ProofStatus.MODIFICATION_REQUESTED.value: (
        "Demande de modification envoyée avec succès. Nous vous enverrons une nouvelle épreuve sous peu."
    ),
}


def _pick(doc: Dict[str, Any], fields) -> Dict[str, Any]:
    return {k: doc.get(k) for k in fields if k in (doc or {})}


class PublicApprovalGateway:

    def __init__(
        self,
        store: ProofStore,
        orders: OrderStore,
        history: HistoryLog,
        processor: DecisionProcessor
    ):
        self.store = store
        self.orders = orders
        self.history = history
        self.processor = processor

    async def resolve(self, token: str) -> ProofContext:
        """
        Lève ProofNotFound (message générique) si le token ne mène
        à aucune épreuve OU à une commande inconnue.
        """
        proof = await self.store.find_by_token(token)
        if not proof:
            raise ProofNotFound(NOT_FOUND_MESSAGE)

        order = await self.orders.get(proof["order_id"])
        if not order:
            logger.warning(f"[PUBLIC] Proof {proof['id']} points to missing order {proof['order_id']}")
            raise ProofNotFound(NOT_FOUND_MESSAGE)

        client = await self.orders.get_client(order)
        line_items = await self.orders.get_line_items(order)
        versions = await self.store.list_versions(order["id"])
        latest_version = versions[0]["version"] if versions else proof["version"]
        is_latest = proof["version"] == latest_version

        proof_history = [
            {
                "version": v["version"],
                "status": v["status"],
                "client_comments": v.get("client_comments"),
                "approved_by_name": v.get("approved_by_name"),
                "approved_at": v.get("approved_at"),
                "created_at": v.get("created_at", ""),
            }
            for v in versions
            if v["version"] != proof["version"] and (v.get("client_comments") or "").strip()
        ]

        order_history = [
            _pick(entry, HISTORY_PUBLIC_FIELDS)
            for entry in await self.history.list_for_order(order["id"])
        ]

        return ProofContext(
            proof=PublicProof(**{**proof, "file_url": build_proof_file_url(token) if proof.get("file_url") else None}),
            order=_pick(order, ORDER_PUBLIC_FIELDS),
            client=_pick(client, CLIENT_PUBLIC_FIELDS),
            line_items=line_items,
            is_latest=is_latest,
            latest_version=latest_version,
            can_decide=is_latest and proof["status"] == ProofStatus.SENT_TO_CLIENT.value,
            proof_history=proof_history,
            order_history=order_history
        )

    async def submit_decision(self, payload: DecisionSubmit) -> DecisionResponse:
        result = await self.processor.decide(payload.token, payload.to_decision())

        if isinstance(result, DecisionApplied):
            message = APPLIED_MESSAGES[result.new_status]
            if result.partial_failure:
                message += " Notre équipe finalisera le suivi de production."
            return DecisionResponse(
                success=True,
                new_status=result.new_status,
                current_status=result.new_status,
                production_follow_up=result.partial_failure,
                message=message
            )

        if result.reason == RejectionReason.NOT_FOUND:
            raise ProofNotFound(NOT_FOUND_MESSAGE)

        return DecisionResponse(
            success=False,
            current_status=result.current_status,
            already_decided=result.reason == RejectionReason.ALREADY_DECIDED,
            message=result.message,
            error=result.reason.value
        )


def is_validation_failure(response: DecisionResponse) -> bool:
    return (not response.success) and response.error == RejectionReason.INVALID_PAYLOAD.value
