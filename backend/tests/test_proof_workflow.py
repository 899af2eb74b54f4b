"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  Hub Grégoire - Workflow complet d'une épreuve                               ║
║                                                                              ║
║  ORD-100: téléversement -> envoi -> page publique -> approbation (x2)        ║
║  ORD-101: envoi -> modification demandée -> version 2                        ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import uuid

import pytest

from models.proof import ProofStatus, OrderStatus, HistoryAction, DecisionSubmit

PDF = b"%PDF-1.4 workflow"


async def _make_order(db, order_number):
    client_id = str(uuid.uuid4())
    order_id = str(uuid.uuid4())
    await db.clients.insert_one({
        "id": client_id,
        "business_name": f"Client {order_number}",
        "contact_name": "Jean Dupont",
        "email": "jean@client.test",
    })
    await db.orders.insert_one({
        "id": order_id,
        "order_number": order_number,
        "client_id": client_id,
        "status": OrderStatus.WAITING_PROOF.value,
    })
    return order_id


@pytest.mark.asyncio
async def test_approval_round_trip(db, console, gateway, store, history):
    order_id = await _make_order(db, "ORD-100")

    # 1. Téléversement
    uploaded = await console.upload_version(order_id, "bat.pdf", "application/pdf", PDF)
    assert uploaded.version == 1
    assert uploaded.status == ProofStatus.PREPARING.value
    assert uploaded.approval_token

    # 2. Envoi
    sent = await console.send_to_client(uploaded.id)
    assert sent.status == ProofStatus.SENT_TO_CLIENT.value
    assert await history.count(order_id, HistoryAction.PROOF_SENT.value) == 1

    # 3. Page publique
    context = await gateway.resolve(uploaded.approval_token)
    assert context.order["order_number"] == "ORD-100"
    assert context.proof.version == 1

    # 4. Approbation
    payload = DecisionSubmit(token=uploaded.approval_token, decision="approve", clientName="Jean Dupont")
    response = await gateway.submit_decision(payload)
    assert response.success is True
    assert (await store.get(uploaded.id))["status"] == ProofStatus.APPROVED.value
    assert (await db.orders.find_one({"id": order_id}))["status"] == OrderStatus.IN_PRODUCTION.value
    approved = [
        e for e in await history.list_for_order(order_id)
        if e["action_type"] == HistoryAction.PROOF_APPROVED.value
    ]
    assert len(approved) == 1
    assert approved[0]["client_action"] is True

    # 5. Double soumission
    entries = await history.count(order_id)
    again = await gateway.submit_decision(payload)
    assert again.already_decided is True
    assert again.current_status == ProofStatus.APPROVED.value
    assert await history.count(order_id) == entries


@pytest.mark.asyncio
async def test_modification_then_new_version(db, console, gateway, store):
    order_id = await _make_order(db, "ORD-101")

    v1 = await console.upload_version(order_id, "bat.pdf", "application/pdf", PDF)
    await console.send_to_client(v1.id)

    response = await gateway.submit_decision(DecisionSubmit(
        token=v1.approval_token, decision="request_modification", comments="Corriger le logo"
    ))
    assert response.success is True
    assert response.new_status == ProofStatus.MODIFICATION_REQUESTED.value
    assert (await db.orders.find_one({"id": order_id}))["status"] == OrderStatus.WAITING_PROOF.value

    v2 = await console.upload_version(order_id, "bat-v2.pdf", "application/pdf", PDF)
    assert v2.version == 2
    assert v2.status == ProofStatus.PREPARING.value
    assert v2.approval_token != v1.approval_token

    # v1 garde sa décision, intacte
    kept = await store.get(v1.id)
    assert kept["status"] == ProofStatus.MODIFICATION_REQUESTED.value
    assert kept["client_comments"] == "Corriger le logo"
