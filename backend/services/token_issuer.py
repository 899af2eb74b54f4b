"""
Hub Grégoire - Émission des tokens d'accès public aux épreuves

Un token est opaque (aucun lien avec commande, version ou date),
sûr dans un segment d'URL et stable pour toute la vie de la version.
L'unicité est garantie en base par index unique (voir proof_store).
"""

import secrets
from typing import Tuple

# 32 octets = 256 bits d'entropie
TOKEN_BYTES = 32


class TokenIssuer:
    """Génère les tokens approval / validation d'une version d'épreuve"""

    def __init__(self, nbytes: int = TOKEN_BYTES):
        self.nbytes = nbytes

    def issue(self) -> str:
        return secrets.token_urlsafe(self.nbytes)

    def issue_pair(self) -> Tuple[str, str]:
        """(approval_token, validation_token): deux valeurs distinctes"""
        approval = self.issue()
        validation = self.issue()
        while validation == approval:
            validation = self.issue()
        return approval, validation
