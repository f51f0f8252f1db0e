import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import (
    alerts,
    communities,
    events,
    guides,
    health,
    invitations,
    members,
    sops,
    wizard,
)
from app.services.scheduler import lifespan

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Civil Defence",
    description="Community emergency preparedness and response",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(wizard.router, prefix="/api/wizard", tags=["wizard"])

# Community-scoped
app.include_router(communities.router, prefix="/api/communities", tags=["communities"])
app.include_router(members.router, prefix="/api/communities", tags=["members"])
app.include_router(events.router, prefix="/api/communities", tags=["events"])
app.include_router(alerts.router, prefix="/api/communities", tags=["alerts"])
app.include_router(guides.router, prefix="/api/communities", tags=["guides"])
app.include_router(sops.router, prefix="/api/communities", tags=["sops"])
app.include_router(invitations.router, prefix="/api", tags=["invitations"])

# Realtime
app.include_router(sops.live_router, prefix="/api/sops", tags=["sops"])
