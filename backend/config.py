"""
Configuration et utilitaires partagés
"""

import os
import hashlib
import secrets
import logging
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger("config")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'gregoire_hub')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

logger.info(f"[CONFIG] Using database: {DB_NAME}")


def get_db():
    """Dépendance FastAPI: base Mongo partagée (surchargée dans les tests)"""
    return db


# Portail client (liens publics envoyés par email)
PUBLIC_PORTAL_BASE_URL = os.environ.get(
    'PUBLIC_PORTAL_BASE_URL', 'https://client.promotiongregoire.com'
).rstrip('/')
PROOF_PUBLIC_PATH = '/' + os.environ.get('PROOF_PUBLIC_PATH', '/epreuve').strip('/')

# Fichiers d'épreuves
PROOF_STORAGE_DIR = Path(os.environ.get('PROOF_STORAGE_DIR', str(ROOT_DIR / 'static' / 'proofs')))
MAX_PROOF_SIZE_MB = int(os.environ.get('MAX_PROOF_SIZE_MB', '50'))
MAX_PROOF_SIZE = MAX_PROOF_SIZE_MB * 1024 * 1024

# Workflow épreuve
POST_APPROVAL_ORDER_STATUS = os.environ.get('POST_APPROVAL_ORDER_STATUS', 'En production')
APPROVAL_CONFIRMATION_WORD = os.environ.get('APPROVAL_CONFIRMATION_WORD', 'ACCEPTER')
REQUIRE_APPROVAL_CONFIRMATION = _env_bool('REQUIRE_APPROVAL_CONFIRMATION', False)

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_session_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def build_public_proof_url(token: str, base_url: str = None) -> str:
    """Lien public <origin>/<chemin>/<token> envoyé au client"""
    origin = (base_url or PUBLIC_PORTAL_BASE_URL).rstrip('/')
    return f"{origin}{PROOF_PUBLIC_PATH}/{token}"

def build_proof_file_url(token: str, base_url: str = None) -> str:
    """Lien de téléchargement direct du fichier d'épreuve"""
    origin = (base_url or PUBLIC_PORTAL_BASE_URL).rstrip('/')
    return f"{origin}/api/public/proofs/{token}/file"
