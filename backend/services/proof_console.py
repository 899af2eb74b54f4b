"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Console interne des épreuves                                 ║
║                                                                              ║
║  - Téléverser une nouvelle version (fichier puis ligne proofs)               ║
║  - Envoyer / renvoyer le lien au client                                      ║
║  - Consulter versions, lien partageable, historique, notifications           ║
║                                                                              ║
║  SEUL CE MODULE peut marquer une épreuve "Envoyée au client"                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from pathlib import Path
from typing import Optional, Dict, Any, List

import config
from config import build_public_proof_url, build_proof_file_url
from email_service import is_valid_email
from models.proof import ProofStatus, HistoryAction, ProofUploadResponse, SendProofResponse
from services.proof_store import ProofStore
from services.order_store import OrderStore, OrderNotFound, client_display_name
from services.history import HistoryLog, NotificationLog
from services.file_storage import ProofFileStorage
from services.proof_state_machine import ProofInvariantError, check_sent_invariants

logger = logging.getLogger("proof_console")

ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png"}
ALLOWED_CONTENT_TYPES = {"application/pdf", "image/jpeg", "image/jpg", "image/png"}


class UploadRejected(Exception):
    """Fichier refusé (type ou taille)"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SendRejected(Exception):
    """Envoi impossible dans l'état actuel de l'épreuve"""

    def __init__(self, message: str, status_code: int = 409):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _user_label(user: Optional[Dict[str, Any]]) -> str:
    return (user or {}).get("email") or "system"


class ProofConsole:

    def __init__(
        self,
        store: ProofStore,
        orders: OrderStore,
        history: HistoryLog,
        storage: ProofFileStorage,
        notifier=None,
        notifications: NotificationLog = None,
        max_size: int = None
    ):
        self.store = store
        self.orders = orders
        self.history = history
        self.storage = storage
        self.notifier = notifier
        self.notifications = notifications
        self.max_size = max_size or config.MAX_PROOF_SIZE

    # ==================== TÉLÉVERSEMENT ====================

    def check_upload(self, filename: str, content_type: Optional[str], size: int) -> None:
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise UploadRejected(
                f"Type de fichier non autorisé. Formats acceptés: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
        if content_type and content_type.lower() not in ALLOWED_CONTENT_TYPES:
            raise UploadRejected(f"Type MIME non autorisé: {content_type}")
        if size <= 0:
            raise UploadRejected("Le fichier est vide.")
        if size > self.max_size:
            raise UploadRejected(
                f"Fichier trop volumineux. Maximum: {self.max_size // 1024 // 1024} MB",
                status_code=413
            )

    async def upload_version(
        self,
        order_id: str,
        filename: str,
        content_type: Optional[str],
        content: bytes,
        user: Optional[Dict[str, Any]] = None
    ) -> ProofUploadResponse:
        """
        Crée la version N+1 d'une commande.

        Ordre: validation -> fichier sur disque -> ligne proofs.
        Si la ligne ne peut pas être écrite, le fichier est supprimé.
        """
        self.check_upload(filename, content_type, len(content))

        order = await self.orders.get(order_id)
        if not order:
            raise OrderNotFound(f"Commande {order_id} non trouvée")

        key = self.storage.save(order_id, filename, content)
        try:
            proof = await self.store.create_version(
                order_id=order_id,
                file_url=key,
                file_name=filename,
                file_type=content_type,
                file_size=len(content),
                created_by=_user_label(user)
            )
        except Exception:
            self.storage.delete(key)
            raise

        await self.history.append(
            order_id=order_id,
            proof_id=proof["id"],
            action_type=HistoryAction.PROOF_UPLOADED.value,
            description=f"Épreuve v{proof['version']} téléversée ({filename})",
            metadata={"version": proof["version"], "file_name": filename, "file_size": len(content)},
            created_by=_user_label(user)
        )

        logger.info(
            f"[CONSOLE] {_user_label(user)} uploaded v{proof['version']} for order {order_id}"
        )

        return ProofUploadResponse(
            id=proof["id"],
            order_id=order_id,
            version=proof["version"],
            status=proof["status"],
            approval_token=proof["approval_token"],
            validation_token=proof["validation_token"],
            public_url=build_public_proof_url(proof["approval_token"])
        )

    # ==================== ENVOI AU CLIENT ====================

    async def _require_latest(self, proof: Dict[str, Any]) -> None:
        latest = await self.store.latest_version(proof["order_id"])
        if latest and latest["version"] != proof["version"]:
            raise SendRejected(
                f"La version v{proof['version']} a été remplacée par la v{latest['version']}."
            )

    async def _recipient(self, proof: Dict[str, Any]):
        order = await self.orders.get(proof["order_id"])
        if not order:
            raise OrderNotFound(f"Commande {proof['order_id']} non trouvée")
        client = await self.orders.get_client(order)
        email = (client.get("email") or "").strip().lower()
        if not is_valid_email(email):
            raise SendRejected("Le client n'a pas d'adresse email valide.", status_code=400)
        return order, client, email

    def _email_link(self, proof: Dict[str, Any], order: Dict[str, Any], client: Dict[str, Any], email: str) -> bool:
        if not self.notifier:
            return False
        token = proof["approval_token"]
        return self.notifier.send_proof_to_client(
            to_email=email,
            client_name=client_display_name(client),
            order_number=order.get("order_number", ""),
            version=proof["version"],
            approve_url=build_public_proof_url(token),
            download_url=build_proof_file_url(token) if proof.get("file_url") else None
        )

    async def _after_email(self, proof: Dict[str, Any], email: str, sent: bool) -> None:
        if sent:
            await self.store.record_send(proof["id"])
        else:
            logger.warning(
                f"[DELIVERY_FAILURE] proof_link to {email} failed for proof {proof['id']} "
                f"(order {proof['order_id']})"
            )
        if self.notifications:
            await self.notifications.record(
                kind="proof_link",
                recipient=email,
                sent=sent,
                proof_id=proof["id"],
                order_id=proof["order_id"],
                error=None if sent else "send failed"
            )

    async def _append_send_history(
        self,
        proof: Dict[str, Any],
        action_type: str,
        description: str,
        email: str,
        sent: bool,
        user: Optional[Dict[str, Any]]
    ) -> None:
        # L'épreuve est déjà envoyée: un échec ici ne doit pas faire échouer l'appel
        try:
            await self.history.append(
                order_id=proof["order_id"],
                proof_id=proof["id"],
                action_type=action_type,
                description=description,
                metadata={"version": proof["version"], "recipient": email, "email_sent": sent},
                created_by=_user_label(user)
            )
        except Exception as e:
            logger.error(
                f"[PARTIAL_FAILURE] proof={proof['id']} order={proof['order_id']} step=history "
                f"action={action_type} error={e}, manual reconciliation required"
            )

    async def send_to_client(self, proof_id: str, user: Optional[Dict[str, Any]] = None) -> SendProofResponse:
        """
        En préparation -> Envoyée au client, puis email du lien.
        Un échec d'email n'annule pas la transition: il est journalisé
        et signalé (email_sent=False) pour un renvoi manuel.
        """
        proof = await self.store.get_or_raise(proof_id)
        await self._require_latest(proof)

        if proof["status"] != ProofStatus.PREPARING.value:
            raise SendRejected(f"Épreuve déjà envoyée (statut: {proof['status']}).")

        try:
            check_sent_invariants(proof)
        except ProofInvariantError as e:
            logger.error(f"[CONSOLE] {e}")
            raise SendRejected("Épreuve sans lien d'accès, impossible de l'envoyer.")

        order, client, email = await self._recipient(proof)

        moved = await self.store.transition(
            proof_id,
            ProofStatus.PREPARING.value,
            ProofStatus.SENT_TO_CLIENT.value
        )
        if not moved:
            raise SendRejected("L'épreuve a été envoyée entre-temps.")

        sent = self._email_link(proof, order, client, email)
        await self._after_email(proof, email, sent)

        await self._append_send_history(
            proof,
            HistoryAction.PROOF_SENT.value,
            f"Épreuve v{proof['version']} envoyée à {email}",
            email,
            sent,
            user
        )

        return SendProofResponse(
            proof_id=proof_id,
            status=ProofStatus.SENT_TO_CLIENT.value,
            email_sent=sent,
            public_url=build_public_proof_url(proof["approval_token"]),
            message="Épreuve envoyée au client." if sent
            else "Épreuve marquée envoyée, mais l'email n'a pas pu être livré. Renvoyez le lien."
        )

    async def resend(self, proof_id: str, user: Optional[Dict[str, Any]] = None) -> SendProofResponse:
        """Renvoie le même lien tant que le client n'a pas décidé"""
        proof = await self.store.get_or_raise(proof_id)
        await self._require_latest(proof)

        if proof["status"] != ProofStatus.SENT_TO_CLIENT.value:
            raise SendRejected(
                f"Seule une épreuve « {ProofStatus.SENT_TO_CLIENT.value} » peut être renvoyée "
                f"(statut: {proof['status']})."
            )

        order, client, email = await self._recipient(proof)
        sent = self._email_link(proof, order, client, email)
        await self._after_email(proof, email, sent)

        await self._append_send_history(
            proof,
            HistoryAction.PROOF_RESENT.value,
            f"Lien de l'épreuve v{proof['version']} renvoyé à {email}",
            email,
            sent,
            user
        )

        return SendProofResponse(
            proof_id=proof_id,
            status=proof["status"],
            email_sent=sent,
            public_url=build_public_proof_url(proof["approval_token"]),
            message="Lien renvoyé au client." if sent else "L'email n'a pas pu être livré."
        )

    # ==================== CONSULTATION ====================

    async def list_versions(self, order_id: str) -> List[Dict[str, Any]]:
        versions = await self.store.list_versions(order_id)
        for i, v in enumerate(versions):
            v["is_latest"] = i == 0
            v["public_url"] = build_public_proof_url(v["approval_token"])
        return versions

    async def share_link(self, proof_id: str) -> Dict[str, Any]:
        proof = await self.store.get_or_raise(proof_id)
        return {
            "proof_id": proof_id,
            "version": proof["version"],
            "status": proof["status"],
            "public_url": build_public_proof_url(proof["approval_token"]),
            "validation_url": build_public_proof_url(proof["validation_token"])
        }

    async def list_proofs(self, status: str = None, order_id: str = None, limit: int = 100, skip: int = 0):
        return await self.store.list_proofs(status=status, order_id=order_id, limit=limit, skip=skip)

    async def stats(self) -> Dict[str, int]:
        return await self.store.count_by_status()

    async def notifications_for(self, proof_id: str) -> List[Dict[str, Any]]:
        await self.store.get_or_raise(proof_id)
        if not self.notifications:
            return []
        return await self.notifications.list_for_proof(proof_id)
