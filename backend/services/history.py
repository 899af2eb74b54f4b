"""
Hub Grégoire - Historique des commandes et journal des notifications

order_history: une ligne par action qui change un état (envoi, approbation,
demande de modification). Append-only: jamais mis à jour ni supprimé.

notification_log: une ligne par tentative d'email, succès ou échec,
pour permettre le renvoi manuel.
"""

import uuid
from typing import Optional, List, Dict, Any

from config import now_iso


class HistoryLog:

    def __init__(self, db):
        self.db = db

    async def append(
        self,
        order_id: str,
        action_type: str,
        description: str,
        proof_id: str = None,
        client_action: bool = False,
        metadata: dict = None,
        created_by: str = "system"
    ) -> Dict[str, Any]:
        """
        Write a single entry to the order_history collection.

        Args:
            order_id: commande concernée
            action_type: proof_sent | proof_approved | proof_modification_requested | ...
            description: texte lisible affiché dans la chronologie
            proof_id: version d'épreuve concernée (optionnel)
            client_action: True si l'action vient du client (lien public)
            metadata: free-form dict (version, comments, previous_status, ...)
            created_by: email du membre de l'équipe ou "client"
        """
        entry = {
            "id": str(uuid.uuid4()),
            "order_id": order_id,
            "proof_id": proof_id,
            "action_type": action_type,
            "description": description,
            "client_action": client_action,
            "metadata": metadata or {},
            "created_by": created_by,
            "created_at": now_iso()
        }
        await self.db.order_history.insert_one(entry)
        entry.pop("_id", None)
        return entry

    async def list_for_order(self, order_id: str, limit: int = 200) -> List[Dict[str, Any]]:
        return await self.db.order_history.find(
            {"order_id": order_id},
            {"_id": 0},
            sort=[("created_at", -1)]
        ).to_list(limit)

    async def count(self, order_id: str, action_type: Optional[str] = None) -> int:
        query = {"order_id": order_id}
        if action_type:
            query["action_type"] = action_type
        return await self.db.order_history.count_documents(query)


class NotificationLog:

    def __init__(self, db):
        self.db = db

    async def record(
        self,
        kind: str,
        recipient: str,
        sent: bool,
        proof_id: str = None,
        order_id: str = None,
        error: str = None
    ) -> Dict[str, Any]:
        entry = {
            "id": str(uuid.uuid4()),
            "kind": kind,
            "recipient": recipient,
            "status": "sent" if sent else "failed",
            "error": error,
            "proof_id": proof_id,
            "order_id": order_id,
            "created_at": now_iso()
        }
        await self.db.notification_log.insert_one(entry)
        entry.pop("_id", None)
        return entry

    async def list_for_proof(self, proof_id: str, limit: int = 100) -> List[Dict[str, Any]]:
        return await self.db.notification_log.find(
            {"proof_id": proof_id},
            {"_id": 0},
            sort=[("created_at", -1)]
        ).to_list(limit)


class ReconciliationLog:
    """PartialFailure: décision enregistrée, effet secondaire à rattraper à la main"""

    def __init__(self, db):
        self.db = db

    async def record(self, proof_id: str, order_id: str, step: str, attempted_status: str = None, error: str = None):
        await self.db.reconciliation_log.insert_one({
            "id": str(uuid.uuid4()),
            "proof_id": proof_id,
            "order_id": order_id,
            "step": step,
            "attempted_status": attempted_status,
            "error": error,
            "resolved": False,
            "created_at": now_iso()
        })
