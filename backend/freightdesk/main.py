from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from freightdesk.config import settings
from freightdesk.middleware.exceptions import register_exception_handlers
from freightdesk.routers import (
    health,
    labour_assignments,
    labour_persons,
    labour_reminders,
    labour_settlements,
)

app = FastAPI(
    title="FreightDesk",
    description="Freight forwarding back office: labour delivery, collection and settlement",
    version="0.1.0",
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
app.include_router(labour_persons.router, prefix="/api/labour-persons", tags=["labour-persons"])
app.include_router(labour_assignments.router, prefix="/api/labour-assignments", tags=["labour-assignments"])
app.include_router(labour_settlements.router, prefix="/api/labour-settlements", tags=["labour-settlements"])
app.include_router(labour_reminders.router, prefix="/api/labour-reminders", tags=["labour-reminders"])
