"""
Stockage local des fichiers d'épreuves
- Un dossier par commande, un nom unique par fichier
- Les fichiers ne sont jamais réécrits (une nouvelle version = nouveau fichier)
"""

import uuid
import logging
from pathlib import Path
from typing import Optional

import config

logger = logging.getLogger("file_storage")

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


class ProofFileStorage:

    def __init__(self, root: Path = None):
        self.root = Path(root) if root else config.PROOF_STORAGE_DIR

    def save(self, order_id: str, original_name: str, content: bytes) -> str:
        """Écrit le fichier et retourne sa clé relative ({order_id}/{uuid}{ext})"""
        ext = Path(original_name or "").suffix.lower()
        folder = self.root / order_id
        folder.mkdir(parents=True, exist_ok=True)

        key = f"{order_id}/{uuid.uuid4()}{ext}"
        with open(self.root / key, "wb") as f:
            f.write(content)

        logger.info(f"[STORAGE] Saved {original_name} ({len(content)} bytes) as {key}")
        return key

    def path_for(self, key: str) -> Optional[Path]:
        """Chemin absolu d'une clé, None si absent ou hors du dossier de stockage"""
        if not key:
            return None
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents or not path.exists():
            return None
        return path

    def delete(self, key: str) -> None:
        path = self.path_for(key)
        if path:
            path.unlink()
            logger.info(f"[STORAGE] Removed {key}")


def mime_type_for(key: str) -> str:
    return MIME_TYPES.get(Path(key or "").suffix.lower(), "application/octet-stream")
