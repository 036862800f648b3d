import logging
from typing import Optional

from databases import Database
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from analysis_service import AnalysisClient
from auth import AuthClient
from controller import AnalyzerController
from db import connect, create_database, disconnect
from log import UsageLogger
from pdf_export import PdfExporter
from routes import router
from state import SessionRegistry
from validation import UploadPolicy

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_UNSET = object()


def create_app(
    database=_UNSET,
    analysis_client: Optional[AnalysisClient] = None,
    auth_client: Optional[AuthClient] = None,
    pdf_exporter: Optional[PdfExporter] = None,
    usage_logger: Optional[UsageLogger] = None,
    policy: Optional[UploadPolicy] = None,
    progress_interval: float = config.PROGRESS_INTERVAL_SECONDS,
    usage_table: str = config.USAGE_LOG_TABLE,
    session_ttl: float = config.SESSION_TTL_SECONDS,
) -> FastAPI:
    """
    Build the application. Collaborators default to ones configured from
    the environment; tests pass their own.
    """
    app = FastAPI(title="Panorex Analyzer")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup():
        db: Optional[Database] = create_database(config.DATABASE_URL) if database is _UNSET else database
        await connect(db, usage_table)

        client = analysis_client or AnalysisClient(
            functions_url=config.FUNCTIONS_URL,
            api_key=config.SUPABASE_PUBLISHABLE_KEY,
            function_name=config.ANALYSIS_FUNCTION,
            timeout=config.ANALYSIS_TIMEOUT_SECONDS,
        )
        events = usage_logger or UsageLogger(db, usage_table)
        exporter = pdf_exporter or PdfExporter(font_path=config.PDF_FONT_PATH)
        upload_policy = policy or UploadPolicy(max_bytes=config.MAX_UPLOAD_BYTES)

        def controller_factory(session_id: str) -> AnalyzerController:
            return AnalyzerController(
                session_id,
                analysis_client=client,
                usage_logger=events,
                pdf_exporter=exporter,
                policy=upload_policy,
                progress_interval=progress_interval,
            )

        app.state.database = db
        app.state.usage_table = usage_table
        app.state.analysis_client = client
        app.state.auth_client = auth_client or AuthClient(config.AUTH_URL, config.SUPABASE_PUBLISHABLE_KEY)
        app.state.usage_logger = events
        app.state.registry = SessionRegistry(controller_factory, ttl_seconds=session_ttl)
        logger.info("Panorex analyzer started")

    @app.on_event("shutdown")
    async def shutdown():
        app.state.registry.close_all()
        await app.state.usage_logger.drain()
        await app.state.analysis_client.aclose()
        await app.state.auth_client.aclose()
        await disconnect(app.state.database)

    app.include_router(router)
    return app


app = create_app()
