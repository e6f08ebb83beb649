from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nft_tracker import __version__
from nft_tracker.data.data_locker import DataLocker
from nft_tracker.routes.nft_api import router as nft_router


def create_app(locker: DataLocker) -> FastAPI:
    """Read-only API over the ownership store held by ``locker``."""
    app = FastAPI(title="NFT Tracker API", version=__version__)
    app.state.locker = locker

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(nft_router)

    @app.get("/api/status")
    async def status():
        return {"status": "NFT tracker API online", "db_path": locker.db_path}

    return app


__all__ = ["create_app"]
