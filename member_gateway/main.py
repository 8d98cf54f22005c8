"""FastAPI application entrypoint for member-gateway."""

from fastapi import FastAPI

from member_gateway.api.auth import router as auth_router
from member_gateway.api.members import router as members_router
from member_gateway.core.errors import register_error_handlers

app = FastAPI(title="member-gateway")
register_error_handlers(app)
app.include_router(auth_router)
app.include_router(members_router)


@app.get("/health")
def health() -> dict[str, str]:
    """Health check stub endpoint for service readiness."""
    return {"status": "ok"}
