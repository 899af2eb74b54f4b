"""
Hub Grégoire - Accès commandes / clients / lignes

Les commandes appartiennent au module de gestion des commandes.
Ce service n'expose que le contrat utilisé par le workflow d'épreuve:
lire une commande, son client, ses lignes, et changer son statut.
"""

import logging
from typing import Optional, List, Dict, Any

from config import now_iso

logger = logging.getLogger("order_store")


class OrderNotFound(Exception):
    """Aucune commande pour cet identifiant"""
    pass


class OrderUpdateError(Exception):
    """La mise à jour du statut de commande n'a touché aucune ligne"""
    pass


class OrderStore:

    def __init__(self, db):
        self.db = db

    async def get(self, order_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.orders.find_one({"id": order_id}, {"_id": 0})

    async def get_client(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Client de la commande (directement ou via la soumission)"""
        client_id = order.get("client_id")
        if not client_id and order.get("submission_id"):
            submission = await self.db.submissions.find_one(
                {"id": order["submission_id"]}, {"_id": 0, "client_id": 1}
            )
            client_id = (submission or {}).get("client_id")
        if not client_id:
            return {}
        return await self.db.clients.find_one({"id": client_id}, {"_id": 0}) or {}

    async def get_line_items(self, order: Dict[str, Any]) -> List[Dict[str, Any]]:
        items = await self.db.order_items.find({"order_id": order["id"]}, {"_id": 0}).to_list(500)
        if not items and order.get("submission_id"):
            items = await self.db.submission_items.find(
                {"submission_id": order["submission_id"]}, {"_id": 0}
            ).to_list(500)
        return items

    async def update_status(self, order_id: str, status: str) -> Optional[str]:
        """
        Écrit le nouveau statut. Retourne le statut précédent.
        Lève OrderUpdateError si la commande n'existe pas.
        """
        order = await self.get(order_id)
        if not order:
            raise OrderUpdateError(f"Order {order_id} not found")

        result = await self.db.orders.update_one(
            {"id": order_id},
            {"$set": {"status": status, "updated_at": now_iso()}}
        )
        if result.matched_count != 1:
            raise OrderUpdateError(f"Order {order_id} status update matched no row")

        logger.info(f"[ORDER] Order {order_id}: '{order.get('status')}' -> '{status}'")
        return order.get("status")


def client_display_name(client: Dict[str, Any]) -> str:
    """contact_name > business_name > "Client" """
    for key in ("contact_name", "business_name"):
        value = (client or {}).get(key)
        if value and value.strip():
            return value.strip()
    return "Client"
