"""
Fixtures partagées: base Mongo en mémoire, commande de démo, notifier
enregistreur, client HTTP branché directement sur l'app ASGI.
"""

import uuid

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from config import get_db, hash_password, now_iso
from dependencies import get_email_service, get_file_storage
from models.proof import OrderStatus
from services.proof_store import ProofStore, ensure_indexes
from services.order_store import OrderStore
from services.history import HistoryLog, NotificationLog, ReconciliationLog
from services.file_storage import ProofFileStorage
from services.decision_processor import DecisionProcessor
from services.approval_gateway import PublicApprovalGateway
from services.proof_console import ProofConsole
from services.permissions import get_preset_permissions

TEST_PASSWORD = "secret-test"


class RecordingNotifier:
    """Remplace EmailService: garde chaque envoi, peut simuler une panne"""

    internal_recipient = "atelier@test.local"

    def __init__(self):
        self.sent = []
        self.fail = False

    def _record(self, kind, **kwargs):
        self.sent.append({"kind": kind, **kwargs})
        return not self.fail

    def send_proof_to_client(self, **kwargs):
        return self._record("proof_link", **kwargs)

    def send_approval_confirmation(self, **kwargs):
        return self._record("approval_confirmation", **kwargs)

    def send_internal_decision_notice(self, **kwargs):
        return self._record("internal_notice", **kwargs)

    def kinds(self):
        return [s["kind"] for s in self.sent]


@pytest.fixture
async def db():
    database = AsyncMongoMockClient()[f"gregoire_hub_test_{uuid.uuid4().hex[:12]}"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def storage(tmp_path):
    return ProofFileStorage(tmp_path / "proofs")


@pytest.fixture
async def order(db):
    """Commande "En attente de l'épreuve" avec un client joignable et une ligne"""
    client_id = str(uuid.uuid4())
    order_id = str(uuid.uuid4())
    await db.clients.insert_one({
        "id": client_id,
        "business_name": "Boulangerie Test",
        "contact_name": "Marie Tremblay",
        "email": "marie@client.test",
    })
    doc = {
        "id": order_id,
        "order_number": "CMD-1001",
        "client_id": client_id,
        "status": OrderStatus.WAITING_PROOF.value,
        "total_price": 450.0,
        "created_at": now_iso(),
    }
    await db.orders.insert_one(dict(doc))
    await db.order_items.insert_one({
        "id": str(uuid.uuid4()),
        "order_id": order_id,
        "product_name": "Cartes d'affaires",
        "quantity": 500,
    })
    return doc


@pytest.fixture
def store(db):
    return ProofStore(db)


@pytest.fixture
def orders(db):
    return OrderStore(db)


@pytest.fixture
def history(db):
    return HistoryLog(db)


@pytest.fixture
def processor(db, store, orders, history, notifier):
    return DecisionProcessor(
        store=store,
        orders=orders,
        history=history,
        notifier=notifier,
        notifications=NotificationLog(db),
        reconciliation=ReconciliationLog(db),
        post_approval_status=OrderStatus.IN_PRODUCTION.value,
        confirmation_word="ACCEPTER",
        require_confirmation=False
    )


@pytest.fixture
def gateway(store, orders, history, processor):
    return PublicApprovalGateway(store=store, orders=orders, history=history, processor=processor)


@pytest.fixture
def console(db, store, orders, history, storage, notifier):
    return ProofConsole(
        store=store,
        orders=orders,
        history=history,
        storage=storage,
        notifier=notifier,
        notifications=NotificationLog(db),
        max_size=1024 * 1024
    )


@pytest.fixture
def sent_proof(store):
    """Fabrique: crée la version suivante et la passe "Envoyée au client" """

    async def _make(order_id):
        proof = await store.create_version(order_id, file_url=f"{order_id}/v.pdf", file_name="v.pdf")
        await store.transition(proof["id"], "En préparation", "Envoyée au client")
        return await store.get(proof["id"])

    return _make


# ==================== HTTP ====================

@pytest.fixture
async def api(db, notifier, storage):
    from server import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_email_service] = lambda: notifier
    app.dependency_overrides[get_file_storage] = lambda: storage

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def staff_headers(db):
    """Fabrique: crée un utilisateur du rôle demandé et retourne un header Bearer"""

    async def _make(role="admin"):
        user_id = str(uuid.uuid4())
        token = f"session-{user_id}"
        await db.users.insert_one({
            "id": user_id,
            "email": f"{role}-{user_id[:8]}@test.local",
            "password": hash_password(TEST_PASSWORD),
            "nom": role.title(),
            "role": role,
            "permissions": get_preset_permissions(role),
            "is_active": True,
        })
        await db.sessions.insert_one({
            "token": token,
            "user_id": user_id,
            "created_at": now_iso(),
            "expires_at": "2999-01-01T00:00:00+00:00",
        })
        return {"Authorization": f"Bearer {token}"}

    return _make
