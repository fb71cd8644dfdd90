from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from typing import Optional
from ...protocol.types.common import (
    ProtocolError,
    StakeNotFound,
    StateError,
    TransferFailure,
    UnauthorizedError,
    ValidationError,
)
from ..core.staking_pool import StakingPool
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="ShipStake Pool RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
pool: Optional[StakingPool] = None


class OpenStakeRequest(BaseModel):
    caller: str
    amount: int
    lock_weeks: int

class ReduceStakeRequest(BaseModel):
    caller: str
    amount: int = 0

class CallerRequest(BaseModel):
    caller: str

class RecordEmissionRequest(BaseModel):
    caller: str
    amount: int

class DepositRevenueRequest(BaseModel):
    caller: str
    asset: str
    amount: int

class RegisterAssetRequest(BaseModel):
    caller: str
    asset: str

class EmergencyExitToggleRequest(BaseModel):
    caller: str
    enabled: bool

class SweepRequest(BaseModel):
    caller: str
    dest: str
    amount: int = 0


@app.exception_handler(ProtocolError)
async def protocol_error_handler(request: Request, exc: ProtocolError):
    # Most specific first: StakeNotFound and UnauthorizedError are ValidationErrors
    if isinstance(exc, StakeNotFound):
        status = 404
    elif isinstance(exc, UnauthorizedError):
        status = 403
    elif isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, StateError):
        status = 409
    elif isinstance(exc, TransferFailure):
        status = 502
    else:
        status = 500
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


def _pool() -> StakingPool:
    if not pool:
        raise HTTPException(status_code=503, detail="Pool not initialized")
    return pool


@app.get("/")
async def root():
    return {"message": "ShipStake Pool RPC", "version": "1.0"}

@app.get("/status")
async def get_status():
    p = _pool()
    totals = p.pool_totals()
    return {
        "network": p.network.network_id,
        "staking_asset": p.staking_asset,
        "epoch": p.epoch_info()["epoch"],
        "paused": p.is_paused(),
        "total_principal": str(totals.total_principal),
        "total_weighted": str(totals.total_weighted),
        "open_stakes": totals.stake_count,
    }

@app.get("/totals")
async def get_totals():
    return _pool().pool_totals()

@app.get("/epoch")
async def get_epoch():
    """Current epoch, its boundaries and which streams already recorded it."""
    return _pool().epoch_info()

@app.get("/snapshot/{asset}/{epoch}")
async def get_snapshot(asset: str, epoch: int):
    snap = _pool().snapshot(asset, epoch)
    if not snap:
        raise HTTPException(status_code=404, detail="Snapshot not found")
    return snap

@app.get("/assets")
async def get_revenue_assets():
    return {"revenue_assets": _pool().supported_revenue_assets()}

@app.get("/stake/{stake_id}")
async def get_stake(stake_id: int):
    return _pool().get_stake(stake_id)

@app.get("/stake/{stake_id}/locked")
async def get_lock_status(stake_id: int):
    locked, unlock_time = _pool().is_locked(stake_id)
    return {"stake_id": stake_id, "locked": locked, "unlock_time": unlock_time}

@app.get("/stake/{stake_id}/pending")
async def get_pending(stake_id: int, asset: Optional[str] = None):
    p = _pool()
    if asset:
        return {"stake_id": stake_id, "pending": {asset: str(p.pending(stake_id, asset))}}
    return {
        "stake_id": stake_id,
        "pending": {a: str(amount) for a, amount in p.pending_all(stake_id).items()},
    }

@app.get("/user/{owner}")
async def get_user_summary(owner: str):
    return _pool().user_summary(owner)

@app.get("/user/{owner}/claimable")
async def get_claimable(owner: str):
    return {"owner": owner, "rewards": _pool().claimable_rewards(owner)}

@app.post("/stake")
async def open_stake(req: OpenStakeRequest):
    return _pool().open_stake(req.caller, req.amount, req.lock_weeks)

@app.post("/stake/{stake_id}/reduce")
async def reduce_stake(stake_id: int, req: ReduceStakeRequest):
    return _pool().reduce_stake(req.caller, stake_id, req.amount)

@app.post("/stake/{stake_id}/emergency-exit")
async def emergency_exit(stake_id: int, req: CallerRequest):
    return _pool().emergency_exit(req.caller, stake_id)

@app.post("/stake/{stake_id}/claim")
async def claim_emission(stake_id: int, req: CallerRequest):
    return {"stake_id": stake_id, "claimed": str(_pool().claim_emission(req.caller, stake_id))}

@app.post("/claim")
async def claim_all_emissions(req: CallerRequest):
    return {"owner": req.caller, "claimed": str(_pool().claim_all_emissions(req.caller))}

@app.post("/claim/{asset}")
async def claim_revenue(asset: str, req: CallerRequest):
    return {"owner": req.caller, "asset": asset, "claimed": str(_pool().claim_revenue(req.caller, asset))}

@app.post("/emission")
async def record_epoch_emission(req: RecordEmissionRequest):
    return _pool().record_epoch_emission(req.caller, req.amount)

@app.post("/revenue")
async def deposit_revenue(req: DepositRevenueRequest):
    return _pool().deposit_revenue(req.caller, req.asset, req.amount)

@app.post("/admin/assets")
async def register_revenue_asset(req: RegisterAssetRequest):
    return {"revenue_assets": _pool().register_revenue_asset(req.caller, req.asset)}

@app.post("/admin/pause")
async def pause(req: CallerRequest):
    _pool().pause(req.caller)
    return {"paused": True}

@app.post("/admin/unpause")
async def unpause(req: CallerRequest):
    _pool().unpause(req.caller)
    return {"paused": False}

@app.post("/admin/emergency-exit")
async def set_emergency_exit(req: EmergencyExitToggleRequest):
    config = _pool().set_emergency_exit(req.caller, req.enabled)
    return {"emergency_exit_enabled": config.emergency_exit_enabled}

@app.post("/admin/sweep")
async def sweep_retained(req: SweepRequest):
    swept = _pool().sweep_retained(req.caller, req.dest, req.amount)
    return {"swept": swept, "penalties_retained": _pool().pool_totals().penalties_retained}

@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from ..observability.metrics import metrics_registry, update_metrics

    update_metrics(_pool())
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)

def start_rpc_server(pool_instance: StakingPool, host: str = None, port: int = None):
    global pool
    pool = pool_instance

    import uvicorn
    logger.info(f"RPC listening on {host or pool.network.rpc_host}:{port or pool.network.rpc_port}")
    uvicorn.run(app, host=host or pool.network.rpc_host, port=port or pool.network.rpc_port)
