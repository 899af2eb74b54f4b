"""
Routes Publiques - Validation d'épreuve par le client
Endpoints SANS authentification: le token du lien est la seule clé.
- Contexte de la page de décision
- Soumission de la décision (approuvée / modification demandée)
- Téléchargement du fichier d'épreuve
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, FileResponse
import logging

from models.proof import DecisionSubmit
from services.approval_gateway import PublicApprovalGateway, is_validation_failure
from services.proof_store import ProofNotFound
from services.file_storage import ProofFileStorage, mime_type_for
from services.decision_processor import NOT_FOUND_MESSAGE
from dependencies import get_approval_gateway, get_file_storage

logger = logging.getLogger("public")

router = APIRouter(prefix="/public", tags=["Public"])


@router.post("/proofs/decision")
async def submit_decision(
    data: DecisionSubmit,
    gateway: PublicApprovalGateway = Depends(get_approval_gateway)
):
    """
    Décision du client sur une épreuve.

    200: décision appliquée OU déjà prise (success=false, alreadyDecided=true)
    400: champs requis manquants (nom, commentaires, mot de confirmation)
    404: lien inconnu
    """
    try:
        response = await gateway.submit_decision(data)
    except ProofNotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)

    payload = response.model_dump(by_alias=True)
    if is_validation_failure(response):
        return JSONResponse(status_code=400, content=payload)
    return payload


@router.get("/proofs/{token}")
async def get_proof_context(
    token: str,
    gateway: PublicApprovalGateway = Depends(get_approval_gateway)
):
    """Tout ce qu'il faut pour afficher la page de décision"""
    try:
        context = await gateway.resolve(token)
    except ProofNotFound:
        logger.info("[PUBLIC] Proof page requested with unknown token")
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    return context.model_dump()


@router.get("/proofs/{token}/file")
async def download_proof_file(
    token: str,
    gateway: PublicApprovalGateway = Depends(get_approval_gateway),
    storage: ProofFileStorage = Depends(get_file_storage)
):
    """Fichier de la version désignée par le lien"""
    proof = await gateway.store.find_by_token(token)
    if not proof:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)

    path = storage.path_for(proof.get("file_url"))
    if not path:
        raise HTTPException(status_code=404, detail="Fichier non trouvé")

    return FileResponse(
        path,
        media_type=mime_type_for(proof["file_url"]),
        filename=proof.get("file_name") or path.name
    )
