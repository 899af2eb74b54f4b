"""
Hub Grégoire - API Backend
Workflow d'approbation des épreuves (BAT)

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import client, get_db, CORS_ORIGINS
from services.proof_store import ensure_indexes

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("gregoire_hub")

# Créer l'app
app = FastAPI(
    title="Hub Grégoire",
    description="Envoi et approbation des épreuves d'impression",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import auth, proofs, public

# Routes avec préfixe /api
app.include_router(auth.router, prefix="/api")
app.include_router(proofs.router, prefix="/api")
app.include_router(public.router, prefix="/api")

# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "Hub Grégoire API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    db = get_db()
    await ensure_indexes(db)
    await db.users.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    logger.info("Hub Grégoire démarré, index MongoDB créés")


@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
