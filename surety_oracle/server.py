# surety_oracle/server.py
"""
Flight Surety Oracle Server

Bootstraps the oracle node on startup (register oracles, then listen for
OracleRequest events) and exposes a read-only introspection API.

Endpoints:
  GET /api                  — Liveness message for the dapp
  GET /health               — Node phase and oracle count
  GET /oracles              — Registered oracles with indexes and status codes
  GET /oracles/{address}    — Single oracle
  GET /flights              — Demo flight schedule
  GET /dispatcher/stats     — Request/submission counters

Usage:
  python -m surety_oracle.server [port]
"""

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from surety_oracle import __version__
from surety_oracle.config import configure_logging, load_config
from surety_oracle.errors import ConfigError
from surety_oracle.flights import seed_flights
from surety_oracle.node import OracleNode

log = logging.getLogger("surety.server")


def create_app(node=None) -> FastAPI:
    """Build the API. Without `node`, one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        current = node
        if current is None:
            # Started as `uvicorn surety_oracle.server:app`
            config = load_config()
            configure_logging(config.log_level)
            current = OracleNode(config)
        app.state.node = current
        # A BootstrapError propagates and uvicorn refuses to serve
        await current.start()
        try:
            yield
        finally:
            await current.stop()

    app = FastAPI(title="Flight Surety Oracle", version=__version__, lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])
    app.state.flights = seed_flights()

    @app.get("/api")
    def api_root():
        return {"message": "An API for use with your Dapp!"}

    @app.get("/health")
    def health():
        info = app.state.node.info()
        return {
            "status": "ok" if info["phase"] == "serving" else info["phase"],
            "version": __version__,
            **info,
        }

    @app.get("/oracles")
    def list_oracles():
        registry = app.state.node.registry
        if registry is None:
            raise HTTPException(status_code=503, detail="Oracles not registered yet")
        body = registry.to_dict()
        body["index_coverage"] = registry.index_coverage()
        body["registration"] = app.state.node.coordinator.report.to_dict()
        return body

    @app.get("/oracles/{address}")
    def get_oracle(address: str):
        registry = app.state.node.registry
        if registry is None:
            raise HTTPException(status_code=503, detail="Oracles not registered yet")
        actor = registry.get(address)
        if actor is None:
            raise HTTPException(status_code=404, detail=f"Oracle not found: {address}")
        return actor.to_dict()

    @app.get("/flights")
    def flights():
        return {"result": app.state.flights}

    @app.get("/dispatcher/stats")
    def dispatcher_stats():
        dispatcher = app.state.node.dispatcher
        if dispatcher is None:
            raise HTTPException(status_code=503, detail="Dispatcher not running")
        return {"running": dispatcher.running, **dispatcher.stats.to_dict()}

    return app


app = create_app()


if __name__ == "__main__":
    try:
        config = load_config()
    except ConfigError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    configure_logging(config.log_level)
    port = int(sys.argv[1]) if len(sys.argv) > 1 else config.port
    log.info(f"Flight Surety Oracle v{__version__} starting on :{port}")
    log.info(f"  Network: {config.network} ({config.rpc_url})")
    log.info(f"  Contract: {config.app_address}")
    uvicorn.run(create_app(OracleNode(config)), host="0.0.0.0", port=port, lifespan="on")
