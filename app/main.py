"""HTTP surface exposing the match intents of a room to UI clients."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from island_fleet import config
from island_fleet.models import STEP_CANNONS, STEP_LAND, STEP_SHIPS
from island_fleet.session import VIEW_LOBBY, GameSession, IntentResult
from island_fleet.storage import StorageError
from island_fleet.sync import serialize_state

from .schemas import AttackRequest, MemberRequest, SetupRequest

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = "supabase" if config.USE_SUPABASE else config.DATA_FILE_PATH
    logger.info("Island fleet API starting, store: %s", backend)
    yield
    logger.info("Island fleet API shutting down")


app = FastAPI(title="Island Fleet API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Store failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": str(exc), "code": "storage"})


def _load_session(room_id: str, user_id: str) -> GameSession:
    session = GameSession(room_id, user_id)
    session.load()
    if session.room is None:
        raise HTTPException(status_code=404, detail={"error": "Room not found", "code": "no_room"})
    return session


def _require_game(session: GameSession) -> None:
    if session.view == VIEW_LOBBY:
        raise HTTPException(
            status_code=404, detail={"error": "No game is running in this room", "code": "no_room"}
        )


def _response(session: GameSession, result: IntentResult | None = None) -> Dict[str, Any]:
    if result is not None and not result.ok:
        raise HTTPException(status_code=409, detail={"error": result.error, "code": result.code})
    body: Dict[str, Any] = {
        "view": session.view,
        "playerId": session.player_id,
        "isMyTurn": session.is_my_turn,
        "state": serialize_state(session.state) if session.state is not None else None,
    }
    if result is not None and result.outcome is not None:
        outcome = result.outcome
        body["outcome"] = {
            "message": outcome.message,
            "type": outcome.type,
            "bonusShots": outcome.bonus_shots,
            "alreadyHit": outcome.already_hit,
            "position": outcome.position,
            "targetId": outcome.target_id,
        }
    return body


@app.api_route("/", methods=["GET", "HEAD"])
async def root() -> dict[str, str]:
    return {"status": "running"}


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/rooms/{room_id}/state")
def room_state(room_id: str, user_id: str) -> Dict[str, Any]:
    session = _load_session(room_id, user_id)
    _require_game(session)
    return _response(session)


@app.post("/rooms/{room_id}/start")
def start_game(room_id: str, request: MemberRequest) -> Dict[str, Any]:
    session = _load_session(room_id, request.userId)
    return _response(session, session.start_game())


@app.post("/rooms/{room_id}/setup")
def submit_setup(room_id: str, request: SetupRequest) -> Dict[str, Any]:
    """Validate and publish a full layout through the regular setup steps."""
    session = _load_session(room_id, request.userId)
    _require_game(session)
    steps = [(STEP_SHIPS, ship) for ship in request.ships]
    steps.append((STEP_LAND, request.land))
    steps.append((STEP_CANNONS, request.cannons))

    for step, positions in steps:
        if session.me is not None and session.me.setup_step != step:
            result = session.advance_setup()
            if not result.ok:
                return _response(session, result)
        result = session.submit_placement(step, positions)
        if not result.ok:
            return _response(session, result)
    result = session.advance_setup()
    if not result.ok:
        return _response(session, result)
    return _response(session, session.complete_setup())


@app.post("/rooms/{room_id}/attack")
def attack(room_id: str, request: AttackRequest) -> Dict[str, Any]:
    session = _load_session(room_id, request.userId)
    _require_game(session)
    return _response(session, session.submit_attack(request.targetId, request.position))


@app.post("/rooms/{room_id}/end-turn")
def finish_turn(room_id: str, request: MemberRequest) -> Dict[str, Any]:
    session = _load_session(room_id, request.userId)
    _require_game(session)
    return _response(session, session.end_turn())
