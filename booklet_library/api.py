"""
Booklet Library API — Main Application
FastAPI application over the offline-first booklet library.
Serves booklets, users, assignments and submissions from the local store and
keeps it in step with the remote backend in the background.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from booklet_library import __version__
from booklet_library.config import LOCAL_DB_URL
from booklet_library.database.store import LocalStore
from booklet_library.routers import assignments, booklets, data, submissions, sync, users
from booklet_library.services.library import LibraryService
from booklet_library.sync.engine import RemoteSyncEngine
from booklet_library.sync.orchestrator import SyncOrchestrator
from booklet_library.sync.outbox import OutboxWorker, SyncOutbox
from booklet_library.sync.remote import RemoteClient

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")
log = logging.getLogger(__name__)


def create_app(
    db_url: str = LOCAL_DB_URL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    background: bool = True,
    remote: Optional[RemoteClient] = None,
) -> FastAPI:
    """
    Build the application.

    background=False skips the periodic sync timer and the outbox consumer;
    sync then only runs through POST /sync.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: open the store, seed, wire sync. Shutdown: stop and close."""
        store = LocalStore(db_url)
        if not store.open():
            log.error("Local store unavailable at %s; reads will be empty", db_url)

        outbox = SyncOutbox(store)
        library = LibraryService(store, outbox)
        if store.available and library.check_and_seed():
            log.info("✓ Seed library imported")

        client = remote or RemoteClient(transport=transport)
        engine = RemoteSyncEngine(store, client)
        worker = OutboxWorker(outbox, engine)
        orchestrator = SyncOrchestrator(store, engine, outbox)

        app.state.store = store
        app.state.outbox = outbox
        app.state.library = library
        app.state.orchestrator = orchestrator
        app.state.worker = worker

        if background and client.configured:
            # first sweep runs in the background so startup never waits on the network
            orchestrator.start(run_now=True)
            worker.start()
        elif not client.configured:
            log.info("Remote backend not configured; running local-only")

        yield

        orchestrator.stop()
        worker.stop()
        await client.aclose()
        store.close()

    app = FastAPI(
        title="Booklet Library API",
        description="Offline-first question booklet library with remote sync",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Routers ───────────────────────────────────────────────────────────────

    app.include_router(booklets.router)       # /booklets/*
    app.include_router(users.router)          # /users/*
    app.include_router(assignments.router)    # /assignments/*
    app.include_router(submissions.router)    # /submissions/*
    app.include_router(data.router)           # /data/import, /data/export
    app.include_router(sync.router)           # /sync, /sync/status

    @app.get("/")
    def root():
        return {
            "name": "Booklet Library API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "booklets": "/booklets",
                "users": "/users",
                "assignments": "/assignments",
                "submissions": "/submissions",
                "data": "/data",
                "sync": "/sync",
            },
        }

    @app.get("/health")
    def health_check():
        store: LocalStore = app.state.store
        return {
            "status": "healthy" if store.available else "degraded",
            "service": "booklet-library-api",
            "store": "open" if store.available else "unavailable",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
