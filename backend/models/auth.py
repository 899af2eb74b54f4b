"""
Hub Grégoire - Modeles Auth & Utilisateurs
Role + Permission hybrid model.
"""

from pydantic import BaseModel
from typing import Optional, Dict


class UserLogin(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    nom: str = ""
    role: str = "viewer"
    permissions: Optional[Dict[str, bool]] = None
    is_active: bool = True
