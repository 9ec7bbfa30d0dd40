"""FastAPI application exposing the pool query surface.

Server settings come from POOLVIEW_HOST, POOLVIEW_PORT, POOLVIEW_DEBUG and
POOLVIEW_LOG_JSON. Aggregator settings are read separately by the service
(see AggregatorConfig.from_env).
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

import uvicorn
from fastapi import FastAPI

from poolview.api.endpoints import router
from poolview.logs import configure_logging

_TRUTHY = frozenset({"true", "1", "yes"})


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "ServerSettings":
        return cls(
            host=environ.get("POOLVIEW_HOST", cls.host),
            port=int(environ.get("POOLVIEW_PORT", cls.port)),
            debug=environ.get("POOLVIEW_DEBUG", "").lower() in _TRUTHY,
            log_json=environ.get("POOLVIEW_LOG_JSON", "").lower() in _TRUTHY,
        )


settings = ServerSettings.from_env()
configure_logging("debug" if settings.debug else "info", json_output=settings.log_json)

app = FastAPI(
    title="poolview",
    description="Read-side aggregator for liquidity pool state, feeds and quotes",
    version="0.1.0",
)
app.include_router(router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


def run() -> None:
    """Serve the app with uvicorn; debug mode also enables auto-reload."""
    uvicorn.run(
        "poolview.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
