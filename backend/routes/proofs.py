"""
Routes pour la console interne des épreuves (BAT)
- Téléversement d'une nouvelle version
- Envoi / renvoi du lien au client
- Liste, statistiques, historique de commande, notifications
"""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from typing import Optional

from models.proof import Proof, VALID_PROOF_STATUSES
from services.permissions import require_permission
from services.proof_console import ProofConsole, UploadRejected, SendRejected
from services.proof_store import ProofNotFound, VersionAllocationError
from services.order_store import OrderNotFound
from dependencies import get_proof_console

router = APIRouter(prefix="/proofs", tags=["Proofs"])

UPLOAD_CHUNK_SIZE = 1024 * 1024


async def _read_capped(file: UploadFile, max_size: int) -> bytes:
    """Lit l'upload par blocs et s'arrête dès que la limite est dépassée"""
    chunks = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_size:
            raise HTTPException(
                status_code=413,
                detail=f"Fichier trop volumineux. Maximum: {max_size // 1024 // 1024} MB"
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("")
async def list_proofs(
    status: Optional[str] = None,
    order_id: Optional[str] = None,
    limit: int = 100,
    skip: int = 0,
    user: dict = Depends(require_permission("proofs.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    """Liste des épreuves, plus récentes en premier"""
    if status and status not in VALID_PROOF_STATUSES:
        raise HTTPException(status_code=400, detail=f"Statut inconnu: {status}")
    return await console.list_proofs(status=status, order_id=order_id, limit=min(limit, 500), skip=skip)


@router.get("/stats")
async def proof_stats(
    user: dict = Depends(require_permission("proofs.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    return await console.stats()


@router.get("/orders/{order_id}")
async def list_order_versions(
    order_id: str,
    user: dict = Depends(require_permission("proofs.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    """Toutes les versions d'une commande, la plus récente en premier"""
    versions = await console.list_versions(order_id)
    return {"order_id": order_id, "versions": versions, "count": len(versions)}


@router.get("/orders/{order_id}/history")
async def order_history(
    order_id: str,
    user: dict = Depends(require_permission("history.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    entries = await console.history.list_for_order(order_id)
    return {"order_id": order_id, "history": entries, "count": len(entries)}


@router.post("/upload")
async def upload_proof(
    file: UploadFile = File(...),
    order_id: str = Form(...),
    user: dict = Depends(require_permission("proofs.upload")),
    console: ProofConsole = Depends(get_proof_console)
):
    """Téléverse une nouvelle version (PDF / JPG / PNG)"""
    content = await _read_capped(file, console.max_size)

    try:
        result = await console.upload_version(
            order_id=order_id,
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            user=user
        )
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Commande non trouvée")
    except VersionAllocationError:
        raise HTTPException(
            status_code=409,
            detail="Conflit de version, veuillez réessayer le téléversement."
        )

    return {"success": True, "proof": result.model_dump()}


@router.get("/{proof_id}")
async def get_proof(
    proof_id: str,
    user: dict = Depends(require_permission("proofs.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    proof = await console.store.get(proof_id)
    if not proof:
        raise HTTPException(status_code=404, detail="Épreuve non trouvée")
    return Proof(**proof).model_dump()


@router.get("/{proof_id}/link")
async def get_share_link(
    proof_id: str,
    user: dict = Depends(require_permission("proofs.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    """Lien partageable à copier manuellement"""
    try:
        return await console.share_link(proof_id)
    except ProofNotFound:
        raise HTTPException(status_code=404, detail="Épreuve non trouvée")


@router.post("/{proof_id}/send")
async def send_proof(
    proof_id: str,
    user: dict = Depends(require_permission("proofs.send")),
    console: ProofConsole = Depends(get_proof_console)
):
    try:
        result = await console.send_to_client(proof_id, user)
    except ProofNotFound:
        raise HTTPException(status_code=404, detail="Épreuve non trouvée")
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Commande non trouvée")
    except SendRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return result.model_dump()


@router.post("/{proof_id}/resend")
async def resend_proof(
    proof_id: str,
    user: dict = Depends(require_permission("proofs.send")),
    console: ProofConsole = Depends(get_proof_console)
):
    try:
        result = await console.resend(proof_id, user)
    except ProofNotFound:
        raise HTTPException(status_code=404, detail="Épreuve non trouvée")
    except OrderNotFound:
        raise HTTPException(status_code=404, detail="Commande non trouvée")
    except SendRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return result.model_dump()


@router.get("/{proof_id}/notifications")
async def proof_notifications(
    proof_id: str,
    user: dict = Depends(require_permission("history.view")),
    console: ProofConsole = Depends(get_proof_console)
):
    try:
        entries = await console.notifications_for(proof_id)
    except ProofNotFound:
        raise HTTPException(status_code=404, detail="Épreuve non trouvée")
    return {"proof_id": proof_id, "notifications": entries, "count": len(entries)}
