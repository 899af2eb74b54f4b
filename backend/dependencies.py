"""
Dépendances FastAPI: construction des services du workflow d'épreuve
Chaque service reçoit la base via get_db (surchargée dans les tests).
"""

from fastapi import Depends

from config import get_db
from email_service import EmailService
from services.proof_store import ProofStore
from services.order_store import OrderStore
from services.history import HistoryLog, NotificationLog, ReconciliationLog
from services.file_storage import ProofFileStorage
from services.decision_processor import DecisionProcessor
from services.approval_gateway import PublicApprovalGateway
from services.proof_console import ProofConsole


def get_email_service() -> EmailService:
    return EmailService()


def get_file_storage() -> ProofFileStorage:
    return ProofFileStorage()


def get_decision_processor(
    db=Depends(get_db),
    notifier: EmailService = Depends(get_email_service)
) -> DecisionProcessor:
    return DecisionProcessor(
        store=ProofStore(db),
        orders=OrderStore(db),
        history=HistoryLog(db),
        notifier=notifier,
        notifications=NotificationLog(db),
        reconciliation=ReconciliationLog(db)
    )


def get_approval_gateway(
    processor: DecisionProcessor = Depends(get_decision_processor)
) -> PublicApprovalGateway:
    return PublicApprovalGateway(
        store=processor.store,
        orders=processor.orders,
        history=processor.history,
        processor=processor
    )


def get_proof_console(
    db=Depends(get_db),
    notifier: EmailService = Depends(get_email_service),
    storage: ProofFileStorage = Depends(get_file_storage)
) -> ProofConsole:
    return ProofConsole(
        store=ProofStore(db),
        orders=OrderStore(db),
        history=HistoryLog(db),
        storage=storage,
        notifier=notifier,
        notifications=NotificationLog(db)
    )
