"""Application entry point: FastAPI app factory and command-line jobs."""

import argparse
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

from dotenv import load_dotenv
from fastapi import FastAPI

from pgmanager.api import jobs, leaving_requests, payments
from pgmanager.api.errors import register_error_handlers
from pgmanager.config import settings
from pgmanager.models import Base
from pgmanager.services import SessionLocal, engine
from pgmanager.services.cleanup_service import MemberCleanupService
from pgmanager.services.dues_service import DuesService
from pgmanager.services.logging import setup_server_logging
from pgmanager.services.overdue_service import OverdueReconciler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    # Startup: Initialize database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.api_title,
        description="Payment lifecycle and dues reconciliation for PG accommodations",
        version=settings.api_version,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    # Include routers
    app.include_router(payments.router)
    app.include_router(leaving_requests.router)
    app.include_router(jobs.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def _run_job(name: str) -> dict:
    """Run one batch job in its own session and return its summary."""
    db = SessionLocal()
    try:
        if name == "reconcile-overdue":
            result = OverdueReconciler(db).reconcile()
        elif name == "refresh-dues":
            result = DuesService(db).refresh_open_requests()
        elif name == "cleanup-members":
            result = MemberCleanupService(db).run()
        else:
            raise ValueError(f"Unknown job: {name}")
        return asdict(result)
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="PG Manager payment engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind to")

    for job in ("reconcile-overdue", "refresh-dues", "cleanup-members"):
        subparsers.add_parser(job, help=f"Run the {job} batch job once and exit")

    args = parser.parse_args(argv)

    # Configure logging (with file logging)
    setup_server_logging(settings.log_file, settings.log_level)

    if args.command == "serve":
        import uvicorn

        logger.info(f"Starting Uvicorn server on {args.host}:{args.port}...")
        uvicorn.run(create_app(), host=args.host, port=args.port, log_level="info")
        return 0

    summary = _run_job(args.command)
    print(json.dumps(summary, default=str, indent=2))
    return 1 if summary.get("failures") else 0


if __name__ == "__main__":
    raise SystemExit(main())
