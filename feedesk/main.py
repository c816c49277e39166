from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedesk.api.v1.invalidation.router import router as invalidation_router
from feedesk.api.v1.payments.router import router as payments_router
from feedesk.core.config import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Fee Desk")

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(payments_router)
    app.include_router(invalidation_router)

    return app


app = create_app()
