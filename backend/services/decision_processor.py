"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Decision Processor                                           ║
║                                                                              ║
║  SEUL CE MODULE peut marquer une épreuve Approuvée / Modification demandée   ║
║                                                                              ║
║  decide(token, decision) -> DecisionApplied | DecisionRejected               ║
║  - Ne lève jamais pour un résultat métier attendu (déjà décidée, etc.)       ║
║  - Seules les erreurs d'infrastructure (Mongo indisponible) remontent        ║
║                                                                              ║
║  Étapes hors transaction (best effort):                                      ║
║  proof -> commande (approbation) -> historique -> commentaires -> emails     ║
║  Un échec après la transition de l'épreuve = PartialFailure, loggé et        ║
║  enregistré dans reconciliation_log pour reprise manuelle.                   ║
║  Dernière version vérifiée avant la transition: un upload concurrent         ║
║  après ce contrôle est seulement loggé (review required).                    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import uuid
import logging
from typing import Optional, Dict, Any

import config
from config import now_iso
from email_service import is_valid_email
from models.proof import (
    ProofStatus,
    HistoryAction,
    ApproveDecision,
    ModificationDecision,
    Decision,
    RejectionReason,
    DecisionApplied,
    DecisionRejected,
    DecisionResult,
)
from services.proof_store import ProofStore
from services.order_store import OrderStore, client_display_name
from services.history import HistoryLog, NotificationLog, ReconciliationLog
from services.proof_state_machine import (
    ProofInvariantError,
    is_terminal,
    check_approved_invariants,
    check_modification_invariants,
)

logger = logging.getLogger("decision_processor")


ALREADY_DECIDED_MESSAGES = {
    ProofStatus.APPROVED.value: "Cette épreuve a déjà été approuvée.",
    ProofStatus.MODIFICATION_REQUESTED.value: "Une modification a déjà été demandée pour cette épreuve.",
    ProofStatus.PREPARING.value: "Cette épreuve n'est pas encore ouverte à la validation.",
}
NOT_FOUND_MESSAGE = "Lien invalide ou expiré."


class DecisionProcessor:
    """
    Applique la décision d'un client sur la version d'épreuve désignée par token.

    Tous les collaborateurs sont injectés par l'appelant.
    """

    def __init__(
        self,
        store: ProofStore,
        orders: OrderStore,
        history: HistoryLog,
        notifier=None,
        notifications: NotificationLog = None,
        reconciliation: ReconciliationLog = None,
        post_approval_status: str = None,
        confirmation_word: str = None,
        require_confirmation: bool = None
    ):
        self.store = store
        self.orders = orders
        self.history = history
        self.notifier = notifier
        self.notifications = notifications
        self.reconciliation = reconciliation
        self.post_approval_status = post_approval_status or config.POST_APPROVAL_ORDER_STATUS
        self.confirmation_word = confirmation_word or config.APPROVAL_CONFIRMATION_WORD
        self.require_confirmation = (
            config.REQUIRE_APPROVAL_CONFIRMATION if require_confirmation is None else require_confirmation
        )

    # ════════════════════════════════════════════════════════════════════════
    # ENTRY POINT
    # ════════════════════════════════════════════════════════════════════════

    async def decide(self, token: str, decision: Decision) -> DecisionResult:
        proof = await self.store.find_by_token(token)
        if not proof:
            logger.info("[DECISION] Unknown token submitted")
            return DecisionRejected(reason=RejectionReason.NOT_FOUND, message=NOT_FOUND_MESSAGE)

        rejected = await self._check_decidable(proof)
        if rejected:
            return rejected

        invalid = self._validate_payload(decision)
        if invalid:
            return DecisionRejected(
                reason=RejectionReason.INVALID_PAYLOAD,
                current_status=proof["status"],
                message=invalid
            )

        if isinstance(decision, ApproveDecision):
            return await self._approve(proof, decision)
        return await self._request_modification(proof, decision)

    # ════════════════════════════════════════════════════════════════════════
    # GUARDS
    # ════════════════════════════════════════════════════════════════════════

    def _validate_payload(self, decision: Decision) -> Optional[str]:
        """Revalidation serveur: ne jamais se fier à la validation du navigateur"""
        try:
            if isinstance(decision, ApproveDecision):
                check_approved_invariants(decision.client_name)
            elif isinstance(decision, ModificationDecision):
                check_modification_invariants(decision.comments)
            else:
                return "Décision invalide."
        except ProofInvariantError:
            if isinstance(decision, ApproveDecision):
                return "Veuillez entrer votre nom pour confirmer l'approbation."
            return "Les commentaires sont requis pour demander une modification."

        if isinstance(decision, ApproveDecision):
            word = (decision.confirmation or "").strip()
            if self.require_confirmation or word:
                if word.upper() != self.confirmation_word.upper():
                    return f'Vous devez taper "{self.confirmation_word}" pour confirmer l\'approbation.'
        return None

    async def _check_decidable(self, proof: Dict[str, Any]) -> Optional[DecisionRejected]:
        status = proof["status"]

        if status != ProofStatus.SENT_TO_CLIENT.value:
            if not is_terminal(status):
                logger.info(f"[DECISION] Proof {proof['id']} not open for decision yet ({status})")
            return self._already_decided(status)

        latest = await self.store.latest_version(proof["order_id"])
        if latest and latest["version"] != proof["version"]:
            logger.info(
                f"[DECISION] Proof {proof['id']} v{proof['version']} superseded by v{latest['version']}"
            )
            return DecisionRejected(
                reason=RejectionReason.SUPERSEDED,
                current_status=status,
                message="Une version plus récente de cette épreuve est disponible."
            )
        return None

    @staticmethod
    def _already_decided(status: str) -> DecisionRejected:
        return DecisionRejected(
            reason=RejectionReason.ALREADY_DECIDED,
            current_status=status,
            message=ALREADY_DECIDED_MESSAGES.get(status, "Cette épreuve a déjà fait l'objet d'une décision.")
        )

    async def _warn_if_superseded(self, proof: Dict[str, Any]) -> None:
        """La version la plus récente est relue avant la transition: un upload peut s'intercaler"""
        try:
            latest = await self.store.latest_version(proof["order_id"])
        except Exception as e:
            logger.warning(f"[DECISION] Latest version re-check failed for proof {proof['id']}: {e}")
            return
        if latest and latest["version"] != proof["version"]:
            logger.warning(
                f"[DECISION] Proof {proof['id']} v{proof['version']} decided while v{latest['version']} "
                f"was uploaded for order {proof['order_id']}, review required"
            )

    async def _lost_race(self, proof_id: str) -> DecisionRejected:
        current = await self.store.get(proof_id)
        status = (current or {}).get("status")
        logger.info(f"[DECISION] Proof {proof_id} already decided concurrently ({status})")
        return self._already_decided(status)

    # ════════════════════════════════════════════════════════════════════════
    # APPROBATION
    # ════════════════════════════════════════════════════════════════════════

    async def _approve(self, proof: Dict[str, Any], decision: ApproveDecision) -> DecisionResult:
        proof_id = proof["id"]
        order_id = proof["order_id"]
        version = proof["version"]
        approver = decision.client_name.strip()
        approved_at = now_iso()

        moved = await self.store.transition(
            proof_id,
            ProofStatus.SENT_TO_CLIENT.value,
            ProofStatus.APPROVED.value,
            {"approved_by_name": approver, "approved_at": approved_at}
        )
        if not moved:
            return await self._lost_race(proof_id)
        await self._warn_if_superseded(proof)

        follow_up = []
        order = await self._safe_get_order(order_id)
        order_number = (order or {}).get("order_number", "")

        # 1. Commande -> En production
        previous_status = None
        order_updated = False
        try:
            previous_status = await self.orders.update_status(order_id, self.post_approval_status)
            order_updated = True
        except Exception as e:
            await self._partial_failure(proof_id, order_id, "order_status", self.post_approval_status, e)
            follow_up.append(
                f"Le statut de la commande doit être passé manuellement à « {self.post_approval_status} »."
            )

        # 2. Historique
        try:
            await self.history.append(
                order_id=order_id,
                proof_id=proof_id,
                action_type=HistoryAction.PROOF_APPROVED.value,
                description=f"Épreuve v{version} approuvée par {approver}",
                client_action=True,
                metadata={"version": version, "approved_by": approver, "approved_at": approved_at},
                created_by="client"
            )
            if order_updated:
                await self.history.append(
                    order_id=order_id,
                    proof_id=proof_id,
                    action_type=HistoryAction.ORDER_STATUS_CHANGED.value,
                    description=(
                        f"La commande {order_number} est passée « {self.post_approval_status} » "
                        f"suite à l'approbation de l'épreuve."
                    ),
                    client_action=True,
                    metadata={"previous_status": previous_status, "new_status": self.post_approval_status},
                    created_by="client"
                )
        except Exception as e:
            await self._partial_failure(proof_id, order_id, "history", ProofStatus.APPROVED.value, e)
            follow_up.append("L'entrée d'historique de l'approbation n'a pas pu être enregistrée.")

        # 3. Emails (client + équipe)
        client = await self._safe_get_client(order)
        await self._notify_approval(proof, order_number, client, approver)

        logger.info(f"[DECISION] Proof {proof_id} (order {order_id} v{version}) approved by {approver}")

        return DecisionApplied(
            proof_id=proof_id,
            order_id=order_id,
            version=version,
            new_status=ProofStatus.APPROVED.value,
            partial_failure=bool(follow_up),
            follow_up=follow_up
        )

    # ════════════════════════════════════════════════════════════════════════
    # DEMANDE DE MODIFICATION
    # ════════════════════════════════════════════════════════════════════════

    async def _request_modification(self, proof: Dict[str, Any], decision: ModificationDecision) -> DecisionResult:
        proof_id = proof["id"]
        order_id = proof["order_id"]
        version = proof["version"]
        comments = decision.comments.strip()

        moved = await self.store.transition(
            proof_id,
            ProofStatus.SENT_TO_CLIENT.value,
            ProofStatus.MODIFICATION_REQUESTED.value,
            {"client_comments": comments}
        )
        if not moved:
            return await self._lost_race(proof_id)
        await self._warn_if_superseded(proof)

        follow_up = []
        order = await self._safe_get_order(order_id)
        client = await self._safe_get_client(order)
        client_name = decision.client_name or client_display_name(client)

        try:
            await self.history.append(
                order_id=order_id,
                proof_id=proof_id,
                action_type=HistoryAction.PROOF_MODIFICATION_REQUESTED.value,
                description=f"Modifications demandées par {client_name} (v{version})",
                client_action=True,
                metadata={"version": version, "client_name": client_name, "comments": comments},
                created_by="client"
            )
        except Exception as e:
            await self._partial_failure(proof_id, order_id, "history", ProofStatus.MODIFICATION_REQUESTED.value, e)
            follow_up.append("L'entrée d'historique de la demande de modification n'a pas pu être enregistrée.")

        try:
            await self.store.db.proof_comments.insert_one({
                "id": str(uuid.uuid4()),
                "proof_id": proof_id,
                "order_id": order_id,
                "comment_text": comments,
                "client_name": client_name,
                "created_by_client": True,
                "is_modification_request": True,
                "created_at": now_iso()
            })
        except Exception as e:
            logger.warning(f"[DECISION] Comment insert failed for proof {proof_id}: {e}")

        await self._notify_internal(
            proof, (order or {}).get("order_number", ""), client, client_name, approved=False, comments=comments
        )

        logger.info(f"[DECISION] Proof {proof_id} (order {order_id} v{version}) modification requested")

        return DecisionApplied(
            proof_id=proof_id,
            order_id=order_id,
            version=version,
            new_status=ProofStatus.MODIFICATION_REQUESTED.value,
            partial_failure=bool(follow_up),
            follow_up=follow_up
        )

    # ════════════════════════════════════════════════════════════════════════
    # SIDE EFFECTS
    # ════════════════════════════════════════════════════════════════════════

    async def _partial_failure(self, proof_id: str, order_id: str, step: str, attempted_status: str, error: Exception):
        logger.error(
            f"[PARTIAL_FAILURE] proof={proof_id} order={order_id} step={step} "
            f"attempted_status='{attempted_status}' error={error}, manual reconciliation required"
        )
        if self.reconciliation:
            try:
                await self.reconciliation.record(proof_id, order_id, step, attempted_status, str(error))
            except Exception as e:
                logger.error(f"[PARTIAL_FAILURE] Could not write reconciliation_log for proof {proof_id}: {e}")

    async def _safe_get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.orders.get(order_id)
        except Exception as e:
            logger.warning(f"[DECISION] Order {order_id} lookup failed: {e}")
            return None

    async def _safe_get_client(self, order: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not order:
            return {}
        try:
            return await self.orders.get_client(order)
        except Exception as e:
            logger.warning(f"[DECISION] Client lookup failed for order {order.get('id')}: {e}")
            return {}

    async def _record_notification(self, kind: str, recipient: str, sent: bool, proof: Dict[str, Any]):
        if not sent:
            logger.warning(
                f"[DELIVERY_FAILURE] {kind} to {recipient} failed for proof {proof['id']} (order {proof['order_id']})"
            )
        if self.notifications:
            try:
                await self.notifications.record(
                    kind=kind,
                    recipient=recipient,
                    sent=sent,
                    proof_id=proof["id"],
                    order_id=proof["order_id"],
                    error=None if sent else "send failed"
                )
            except Exception as e:
                logger.error(f"[DELIVERY_FAILURE] Could not write notification_log for proof {proof['id']}: {e}")

    async def _notify_approval(self, proof: Dict[str, Any], order_number: str, client: Dict[str, Any], approver: str):
        if not self.notifier:
            return
        email = (client.get("email") or "").strip().lower()
        if is_valid_email(email):
            sent = self.notifier.send_approval_confirmation(
                to_email=email,
                contact_name=client_display_name(client),
                order_number=order_number,
                version=proof["version"],
                approver_name=approver
            )
            await self._record_notification("approval_confirmation", email, sent, proof)
        await self._notify_internal(proof, order_number, client, approver, approved=True)

    async def _notify_internal(
        self,
        proof: Dict[str, Any],
        order_number: str,
        client: Dict[str, Any],
        client_name: str,
        approved: bool,
        comments: str = None
    ):
        if not self.notifier:
            return
        sent = self.notifier.send_internal_decision_notice(
            approved=approved,
            business_name=client.get("business_name", ""),
            order_number=order_number,
            version=proof["version"],
            client_name=client_name,
            comments=comments
        )
        await self._record_notification(
            "internal_approval" if approved else "internal_modification",
            getattr(self.notifier, "internal_recipient", "internal"),
            sent,
            proof
        )
