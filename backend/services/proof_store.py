"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Proof Version Store                                          ║
║                                                                              ║
║  Collection: proofs                                                          ║
║  - Une ligne par (order_id, version), version = max + 1                      ║
║  - Index unique (order_id, version) + retry sur conflit                      ║
║  - Index unique approval_token / validation_token                            ║
║  - Fichier, version, commande et tokens JAMAIS modifiés après insertion      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import uuid
import logging
from typing import Optional, List, Dict, Any

from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from config import now_iso
from models.proof import ProofStatus, VALID_PROOF_STATUSES
from services.token_issuer import TokenIssuer
from services.proof_state_machine import validate_proof_transition

logger = logging.getLogger("proof_store")

MAX_VERSION_ATTEMPTS = 5

# Champs jamais renvoyés par les lectures
NO_MONGO_ID = {"_id": 0}


class ProofNotFound(Exception):
    """Aucune épreuve pour cet identifiant / token"""
    pass


class VersionAllocationError(Exception):
    """Impossible d'allouer un numéro de version après plusieurs tentatives"""
    pass


async def ensure_indexes(db):
    """Index requis par les invariants de version et de token"""
    await db.proofs.create_index([("order_id", ASCENDING), ("version", ASCENDING)], unique=True)
    await db.proofs.create_index("approval_token", unique=True)
    await db.proofs.create_index("validation_token", unique=True)
    await db.proofs.create_index("id", unique=True)
    await db.proofs.create_index("status")
    await db.order_history.create_index("order_id")
    await db.order_history.create_index("created_at")
    await db.notification_log.create_index("proof_id")
    await db.proof_comments.create_index("proof_id")


class ProofStore:
    """Accès persistant aux versions d'épreuves"""

    def __init__(self, db, issuer: TokenIssuer = None):
        self.db = db
        self.issuer = issuer or TokenIssuer()

    # ---- Lecture ----

    async def get(self, proof_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.proofs.find_one({"id": proof_id}, NO_MONGO_ID)

    async def get_or_raise(self, proof_id: str) -> Dict[str, Any]:
        proof = await self.get(proof_id)
        if not proof:
            raise ProofNotFound(f"Proof {proof_id} not found")
        return proof

    async def find_by_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Résout un token approval OU validation (deux entrées historiques)"""
        if not token or not isinstance(token, str):
            return None
        return await self.db.proofs.find_one(
            {"$or": [{"approval_token": token}, {"validation_token": token}]},
            NO_MONGO_ID
        )

    async def latest_version(self, order_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.proofs.find_one(
            {"order_id": order_id},
            NO_MONGO_ID,
            sort=[("version", DESCENDING)]
        )

    async def list_versions(self, order_id: str) -> List[Dict[str, Any]]:
        """Toutes les versions d'une commande, la plus récente en premier"""
        return await self.db.proofs.find(
            {"order_id": order_id},
            NO_MONGO_ID,
            sort=[("version", DESCENDING)]
        ).to_list(1000)

    async def list_proofs(
        self,
        status: Optional[str] = None,
        order_id: Optional[str] = None,
        limit: int = 100,
        skip: int = 0
    ) -> Dict[str, Any]:
        query = {}
        if status:
            query["status"] = status
        if order_id:
            query["order_id"] = order_id

        proofs = await self.db.proofs.find(
            query,
            NO_MONGO_ID,
            sort=[("created_at", DESCENDING)],
            skip=skip,
            limit=limit
        ).to_list(limit)
        total = await self.db.proofs.count_documents(query)
        return {"proofs": proofs, "count": len(proofs), "total": total}

    async def count_by_status(self) -> Dict[str, int]:
        stats = {}
        for status in VALID_PROOF_STATUSES:
            stats[status] = await self.db.proofs.count_documents({"status": status})
        stats["total"] = sum(stats.values())
        return stats

    # ---- Création de version ----

    async def _next_version(self, order_id: str) -> int:
        latest = await self.latest_version(order_id)
        return (latest["version"] + 1) if latest else 1

    async def create_version(
        self,
        order_id: str,
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
        file_size: int = 0,
        created_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Insère la version N+1 d'une commande en status "En préparation".

        Le numéro est relu à chaque tentative: une insertion concurrente
        sur la même (order_id, version) lève DuplicateKeyError et on retente
        avec une version et des tokens frais.
        """
        last_error = None

        for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
            version = await self._next_version(order_id)
            approval_token, validation_token = self.issuer.issue_pair()
            now = now_iso()

            doc = {
                "id": str(uuid.uuid4()),
                "order_id": order_id,
                "version": version,
                "status": ProofStatus.PREPARING.value,
                "file_url": file_url,
                "file_name": file_name,
                "file_type": file_type,
                "file_size": file_size,
                "approval_token": approval_token,
                "validation_token": validation_token,
                "client_comments": None,
                "approved_by_name": None,
                "approved_at": None,
                "sent_at": None,
                "send_count": 0,
                "created_by": created_by,
                "created_at": now,
                "updated_at": now
            }

            try:
                await self.db.proofs.insert_one(doc)
            except DuplicateKeyError as e:
                last_error = e
                logger.warning(
                    f"[PROOF_STORE] Conflict creating v{version} for order {order_id} "
                    f"(attempt {attempt}/{MAX_VERSION_ATTEMPTS}), retrying"
                )
                continue

            doc.pop("_id", None)
            logger.info(f"[PROOF_STORE] Proof {doc['id']} created: order {order_id} v{version}")
            return doc

        raise VersionAllocationError(
            f"Could not allocate a proof version for order {order_id} "
            f"after {MAX_VERSION_ATTEMPTS} attempts: {last_error}"
        )

    # ---- Transitions ----

    async def transition(
        self,
        proof_id: str,
        from_status: str,
        to_status: str,
        fields: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Compare-and-set du statut.

        Returns True seulement si CET appel a fait passer la ligne de
        from_status à to_status. False = un autre appel a déjà modifié
        le statut (double clic, deux onglets).
        """
        validate_proof_transition(proof_id, from_status, to_status)

        update = dict(fields or {})
        for frozen in ("id", "order_id", "version", "file_url", "approval_token", "validation_token"):
            update.pop(frozen, None)
        update["status"] = to_status
        update["updated_at"] = now_iso()

        result = await self.db.proofs.update_one(
            {"id": proof_id, "status": from_status},
            {"$set": update}
        )

        moved = result.modified_count == 1
        if moved:
            logger.info(f"[STATE_MACHINE] Proof {proof_id}: '{from_status}' -> '{to_status}'")
        else:
            logger.info(
                f"[STATE_MACHINE] Proof {proof_id}: transition '{from_status}' -> '{to_status}' "
                f"not applied (status changed concurrently)"
            )
        return moved

    async def record_send(self, proof_id: str) -> None:
        """Trace d'un envoi email (premier envoi ou renvoi)"""
        now = now_iso()
        await self.db.proofs.update_one(
            {"id": proof_id},
            {"$set": {"sent_at": now, "updated_at": now}, "$inc": {"send_count": 1}}
        )
