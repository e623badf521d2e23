import logging.config

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus_fees.api.v1.fee_assignments.router import router as fee_assignments_router
from campus_fees.api.v1.fee_structures.router import router as fee_structures_router
from campus_fees.api.v1.student_payments.router import router as student_payments_router
from campus_fees.core.config import settings


def configure_logging(level: str) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {"handlers": ["console"], "level": level.upper()},
        }
    )


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Campus Fees")

    # CORS: allow the student portal and admin frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(fee_structures_router)
    app.include_router(fee_assignments_router)
    app.include_router(student_payments_router)

    return app


app = create_app()
