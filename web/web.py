import asyncio
import json
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError as PydanticValidationError

from middleware.error_handler import setup_error_handlers
from models.address import Address
from models.validation import AccountRequest, RefreshRequest, WebSocketSubscription
from monitoring.health import HealthMonitor, HealthStatus
from session.session import Session
from web.websocket_handlers import StoreWebSocketBridge, session_stores, to_jsonable

logger = logging.getLogger(__name__)


def _ignore(_value):
    pass


def create_app(session: Session, configure=None, options=None) -> FastAPI:
    """HTTP and WebSocket surface over one session.

    The session is started on application startup. The app keeps the
    transaction ledger, head height, consensus and peer count observed so
    every component stays live while the server runs.
    """
    app = FastAPI(title="Ledger Stores API", version="1.0.0")

    setup_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"]
    )

    app.state.session = session
    app.state.health_monitor = HealthMonitor(session)
    app.state.keepalive = []

    @app.on_event("startup")
    async def startup_event():
        session.start(configure, options)
        app.state.keepalive = [
            session.transactions.subscribe(_ignore),
            session.head.height.subscribe(_ignore),
            session.consensus.established.subscribe(_ignore),
            session.network.peer_count.subscribe(_ignore),
        ]
        logger.info("Session stores observed by the API")

    @app.on_event("shutdown")
    async def shutdown_event():
        for unsubscribe in app.state.keepalive:
            unsubscribe()
        app.state.keepalive = []
        await session.close()

    async def _run_refresh(task: Optional[asyncio.Task]) -> bool:
        """Await a refresh when consensus allows it to finish; report whether it ran"""
        if task is None:
            return True
        if not session.consensus.established.value:
            return False
        await task
        return True

    @app.get("/health")
    async def health_check():
        monitor = app.state.health_monitor
        await monitor.run_health_checks()
        summary = monitor.get_health_summary()
        status_code = 503 if monitor.get_overall_health() == HealthStatus.UNHEALTHY else 200
        return JSONResponse(content=summary, status_code=status_code)

    @app.get("/metrics")
    async def metrics():
        content, content_type = app.state.health_monitor.generate_metrics()
        return Response(content=content, media_type=content_type)

    @app.get("/consensus")
    async def get_consensus():
        return {
            "ready": session.ready.value,
            "consensus": to_jsonable(session.consensus.state.value),
            "established": session.consensus.established.value,
            "headHash": session.head.hash.value,
            "height": session.head.height.value,
        }

    @app.get("/network")
    async def get_network():
        return {
            "statistics": to_jsonable(session.network.statistics.value),
            "peerCount": session.network.peer_count.value,
        }

    @app.get("/accounts")
    async def get_accounts():
        return {
            "accounts": to_jsonable(session.accounts.value),
            "refreshing": session.accounts.refreshing.value,
        }

    @app.post("/accounts")
    async def add_account(account: AccountRequest):
        session.accounts.add(account.model_dump(exclude_none=True))
        return {"account": to_jsonable(session.accounts.account(account.address))}

    @app.delete("/accounts/{address}")
    async def remove_account(address: str):
        address = Address.from_any(address)
        if session.accounts.account(address) is None:
            raise HTTPException(status_code=404, detail=f"Account {address} is not tracked")
        session.accounts.remove(address)
        return {"removed": address.to_user_friendly()}

    @app.post("/accounts/refresh")
    async def refresh_accounts(body: Optional[RefreshRequest] = None):
        addresses = body.addresses if body else None
        completed = await _run_refresh(session.accounts.refresh(addresses or None))
        return JSONResponse(
            content={"completed": completed, "accounts": to_jsonable(session.accounts.value)},
            status_code=200 if completed else 202,
        )

    @app.get("/transactions")
    async def get_transactions(address: Optional[str] = None):
        if address:
            transactions = session.transactions.transactions_for_address(address)
        else:
            transactions = session.transactions.value
        return {
            "transactions": to_jsonable(transactions),
            "refreshing": session.transactions.refreshing.value,
        }

    @app.post("/transactions/refresh")
    async def refresh_transactions(body: Optional[RefreshRequest] = None):
        addresses = body.addresses if body else None
        completed = await _run_refresh(session.transactions.refresh(addresses or None))
        return JSONResponse(
            content={"completed": completed, "transactions": to_jsonable(session.transactions.value)},
            status_code=200 if completed else 202,
        )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        bridge = StoreWebSocketBridge(websocket, session_stores(session))
        pump = asyncio.create_task(bridge.pump())
        logger.info(f"WebSocket connected: {websocket.client}")
        try:
            while True:
                try:
                    data = await websocket.receive_json()
                except json.JSONDecodeError as e:
                    bridge.send({"type": "error", "error": "invalid_json", "message": str(e)})
                    continue

                if not isinstance(data, dict):
                    bridge.send({"type": "error", "error": "validation_error", "message": "Expected a JSON object"})
                    continue

                if data.get("type") == "ping":
                    bridge.send({"type": "pong"})
                    continue

                try:
                    request = WebSocketSubscription(**data)
                except PydanticValidationError as e:
                    bridge.send({
                        "type": "error",
                        "error": "validation_error",
                        "message": f"Invalid subscription request: {e.errors()[0]['msg']}"
                    })
                    continue

                if request.type == "subscribe":
                    bridge.send({"type": "subscribed", "store": request.store})
                    bridge.subscribe(request.store)
                else:
                    bridge.unsubscribe(request.store)
                    bridge.send({"type": "unsubscribed", "store": request.store})
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected: {websocket.client}")
        finally:
            bridge.close()
            pump.cancel()

    return app
