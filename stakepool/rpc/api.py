from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from typing import Optional
from protocol.types.common import (
    ProtocolError,
    StakingError,
    InvalidSignature,
    Unauthorized,
    VaultUnfunded,
    VaultEmptied,
    VaultInsufficientFunds,
)
from protocol.types.request import RequestType, SignedRequest
from ..core.service import StakingService
from ..snapshot import SnapshotManager

app = FastAPI(title="StakePool Node RPC")

# Enable CORS for dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
service: Optional[StakingService] = None
snapshot_manager: Optional[SnapshotManager] = None

MAX_HISTORY_LIMIT = 1000


def _require_service() -> StakingService:
    if not service:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return service


def _require_type(req: SignedRequest, expected: RequestType):
    # The signature covers request_type, so a request signed for one
    # endpoint cannot be replayed against another.
    if req.request_type != expected:
        raise HTTPException(status_code=400,
                            detail=f"Expected a {expected.value} request, got {req.request_type.value}")


def _status_code(error: ProtocolError) -> int:
    if isinstance(error, InvalidSignature):
        return 401
    if isinstance(error, Unauthorized):
        return 403
    if isinstance(error, (VaultUnfunded, VaultEmptied, VaultInsufficientFunds)):
        return 409
    return 400


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request, exc: ProtocolError):
    if isinstance(exc, StakingError):
        body = exc.to_dict()
    else:
        body = {"code": getattr(exc, "code", "protocol_error"), "detail": str(exc)}
    return JSONResponse(status_code=_status_code(exc), content=body)


@app.get("/")
async def root():
    return {"message": "StakePool Node RPC", "version": "1.0"}


@app.get("/status")
async def get_status():
    svc = _require_service()
    view = svc.pool_status()
    return {
        "network": svc.network.network_id,
        "pool_address": svc.pool_address,
        "denom": svc.network.denom,
        "decimals": svc.network.decimals,
        "operator": view.operator,
        "restrict_rate_updates": view.restrict_rate_updates,
        "total_staked": str(view.total_staked),
        "reward_rate_per_second": str(view.reward_rate_per_second),
        "reward_index": str(view.reward_index),
        "last_settlement_time": view.last_settlement_time,
        "as_of": view.as_of,
        "staker_count": view.staker_count,
        "vault_balance": str(view.vault_balance),
        "state_root": svc.state.compute_state_root(),
    }


@app.get("/staked")
async def get_staked():
    svc = _require_service()
    return {"total_staked": str(svc.get_current_staked_value())}


@app.get("/balance/{address}")
async def get_balance(address: str):
    svc = _require_service()
    return {
        "address": address,
        "staked": str(svc.balance_of(address)),
        "wallet": str(svc.assets.balance_of(address)),
        "nonce": svc.nonce_of(address),
    }


@app.get("/history")
async def get_history(account: Optional[str] = None, limit: int = Query(100, ge=1, le=MAX_HISTORY_LIMIT)):
    svc = _require_service()
    return {"operations": svc.get_history(account, limit)}


# Mutating endpoints take a SignedRequest. Amounts may be sent as JSON
# integers or decimal strings; responses always use strings.

@app.post("/deposit")
def post_deposit(req: SignedRequest):
    svc = _require_service()
    _require_type(req, RequestType.DEPOSIT)
    acc = svc.submit(req)
    return {"account": acc.address, "balance": str(acc.balance), "status": "deposited"}


@app.post("/withdraw")
def post_withdraw(req: SignedRequest):
    svc = _require_service()
    _require_type(req, RequestType.WITHDRAW)
    acc = svc.submit(req)
    return {"account": acc.address, "balance": str(acc.balance), "status": "withdrawn"}


@app.post("/reward-rate")
def post_reward_rate(req: SignedRequest):
    svc = _require_service()
    _require_type(req, RequestType.UPDATE_REWARD_RATE)
    old_rate = svc.submit(req)
    return {"old_rate": str(old_rate), "new_rate": str(req.amount), "status": "updated"}


# ═══════════════════════════════════════════════════════════════════
# TOKEN ENDPOINTS (reference asset ledger)
# ═══════════════════════════════════════════════════════════════════

@app.post("/token/approve")
def post_token_approve(req: SignedRequest):
    svc = _require_service()
    _require_type(req, RequestType.TOKEN_APPROVE)
    if not hasattr(svc.assets, "approve"):
        raise HTTPException(status_code=501, detail="Asset ledger does not support approvals")
    svc.submit(req)
    return {"owner": req.from_address, "spender": req.to_address, "allowance": str(req.amount)}


@app.post("/token/transfer")
def post_token_transfer(req: SignedRequest):
    svc = _require_service()
    _require_type(req, RequestType.TOKEN_TRANSFER)
    if not hasattr(svc.assets, "send"):
        raise HTTPException(status_code=501, detail="Asset ledger does not support transfers")
    svc.submit(req)
    return {"sender": req.from_address, "recipient": req.to_address, "amount": str(req.amount)}


@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability.metrics import metrics_registry, update_metrics

    svc = _require_service()
    update_metrics(svc)

    return Response(
        content=generate_latest(metrics_registry),
        media_type=CONTENT_TYPE_LATEST
    )


# ═══════════════════════════════════════════════════════════════════
# SNAPSHOT ENDPOINTS
# ═══════════════════════════════════════════════════════════════════

@app.get("/snapshots")
async def list_snapshots():
    _require_service()
    if not snapshot_manager:
        raise HTTPException(status_code=503, detail="Snapshots not enabled on this node")
    return [snap.model_dump() for snap in snapshot_manager.list_snapshots()]


@app.post("/snapshots")
def create_snapshot():
    svc = _require_service()
    if not snapshot_manager:
        raise HTTPException(status_code=503, detail="Snapshots not enabled on this node")
    with svc._lock:
        meta = snapshot_manager.create_snapshot(svc.state, network_id=svc.network.network_id)
    return meta.model_dump()


def start_rpc_server(service_instance: StakingService, snapshots: Optional[SnapshotManager] = None,
                     host: str = "0.0.0.0", port: int = 8000):
    global service, snapshot_manager
    service = service_instance
    snapshot_manager = snapshots
    import uvicorn
    uvicorn.run(app, host=host, port=port)
