"""
Public Approval Gateway: contexte de page et réponses publiques
"""

import pytest

from models.proof import ProofStatus, DecisionSubmit
from services.proof_store import ProofNotFound
from services.decision_processor import NOT_FOUND_MESSAGE
from services.approval_gateway import is_validation_failure


@pytest.mark.asyncio
async def test_resolve_builds_full_context(gateway, order, sent_proof):
    proof = await sent_proof(order["id"])

    context = await gateway.resolve(proof["approval_token"])

    assert context.proof.id == proof["id"]
    assert context.proof.version == 1
    assert context.order["order_number"] == "CMD-1001"
    assert context.client == {"business_name": "Boulangerie Test", "contact_name": "Marie Tremblay"}
    assert context.line_items[0]["product_name"] == "Cartes d'affaires"
    assert context.is_latest is True
    assert context.can_decide is True
    assert context.proof.file_url.endswith(f"/api/public/proofs/{proof['approval_token']}/file")


@pytest.mark.asyncio
async def test_resolve_never_leaks_tokens(gateway, order, sent_proof):
    proof = await sent_proof(order["id"])

    dumped = (await gateway.resolve(proof["validation_token"])).model_dump()

    assert "approval_token" not in dumped["proof"]
    assert "validation_token" not in dumped["proof"]
    assert "email" not in dumped["client"]


@pytest.mark.asyncio
async def test_resolve_unknown_token_is_generic(gateway, db, store, order):
    with pytest.raises(ProofNotFound) as exc_info:
        await gateway.resolve("nope")
    assert str(exc_info.value) == NOT_FOUND_MESSAGE

    orphan = await store.create_version("order-that-does-not-exist")
    with pytest.raises(ProofNotFound) as exc_info:
        await gateway.resolve(orphan["approval_token"])
    assert str(exc_info.value) == NOT_FOUND_MESSAGE


@pytest.mark.asyncio
async def test_resolve_shows_earlier_comments_and_flags_old_versions(gateway, processor, store, order, sent_proof):
    v1 = await sent_proof(order["id"])
    await processor.decide(v1["approval_token"], DecisionSubmit(
        token=v1["approval_token"], decision="rejected", comments="Logo trop petit"
    ).to_decision())
    v2 = await sent_proof(order["id"])

    latest = await gateway.resolve(v2["approval_token"])
    assert latest.latest_version == 2
    assert [h["client_comments"] for h in latest.proof_history] == ["Logo trop petit"]
    assert latest.order_history[0]["action_type"] == "proof_modification_requested"

    old = await gateway.resolve(v1["approval_token"])
    assert old.is_latest is False
    assert old.can_decide is False


@pytest.mark.asyncio
async def test_submit_decision_applied(gateway, order, sent_proof):
    proof = await sent_proof(order["id"])

    response = await gateway.submit_decision(DecisionSubmit(
        token=proof["approval_token"], decision="approved", clientName="Jean Dupont"
    ))

    assert response.success is True
    assert response.new_status == ProofStatus.APPROVED.value
    assert response.model_dump(by_alias=True)["newStatus"] == ProofStatus.APPROVED.value


@pytest.mark.asyncio
async def test_submit_decision_already_decided(gateway, order, sent_proof):
    proof = await sent_proof(order["id"])
    payload = DecisionSubmit(token=proof["approval_token"], decision="approve", clientName="Jean")

    await gateway.submit_decision(payload)
    again = await gateway.submit_decision(payload)

    assert again.success is False
    assert again.already_decided is True
    assert again.current_status == ProofStatus.APPROVED.value
    assert "déjà été approuvée" in again.message
    assert not is_validation_failure(again)


@pytest.mark.asyncio
async def test_submit_decision_validation_failure(gateway, order, sent_proof):
    proof = await sent_proof(order["id"])

    response = await gateway.submit_decision(DecisionSubmit(token=proof["approval_token"], decision="rejected"))

    assert response.success is False
    assert is_validation_failure(response)


@pytest.mark.asyncio
async def test_submit_decision_unknown_token(gateway):
    with pytest.raises(ProofNotFound):
        await gateway.submit_decision(DecisionSubmit(token="nope", decision="approved", clientName="Jean"))


def test_legacy_decision_vocabulary_is_normalised():
    assert DecisionSubmit(token="t", decision="approve").decision == "approved"
    assert DecisionSubmit(token="t", decision="Request_Modification").decision == "rejected"
    assert DecisionSubmit(token="t", decision="reject").decision == "rejected"
    with pytest.raises(ValueError):
        DecisionSubmit(token="t", decision="maybe")
