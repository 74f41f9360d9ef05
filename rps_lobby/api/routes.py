from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status

from rps_lobby.api.deps import get_lobby
from rps_lobby.api.models import (
    AcceptResponse,
    ActingUserRequest,
    ChallengeCreateRequest,
    ChallengeCreateResponse,
    ChallengeListResponse,
    ChoiceRequest,
    ChoiceResponse,
    CleanupResponse,
    LeaderboardResponse,
    PlayerCreateRequest,
    PlayerListResponse,
    PresenceRequest,
    StateResponse,
    WaitingQueueResponse,
)
from rps_lobby.errors import CoordinationError, ErrorKind
from rps_lobby.lobby import Lobby
from rps_lobby.models import Challenge, GameSession, Player
from rps_lobby.websocket_hub import hub

router = APIRouter()

_STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.authorization: status.HTTP_403_FORBIDDEN,
    ErrorKind.state_conflict: status.HTTP_409_CONFLICT,
    ErrorKind.expiry: status.HTTP_410_GONE,
}


def _http_error(e: CoordinationError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_FOR_KIND[e.kind],
        detail={"error": type(e).__name__, "kind": e.kind.value, "message": str(e)},
    )


async def _announce(lobby: Lobby) -> None:
    await hub.announce_state_changed(instance_id=lobby.instance_id, last_updated=lobby.get_state().last_updated)


@router.websocket("/ws/lobby")
async def lobby_updates_ws(websocket: WebSocket) -> None:
    await hub.connect(websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ---- players ----


@router.post("/players", response_model=Player, status_code=status.HTTP_201_CREATED)
async def add_player_route(payload: PlayerCreateRequest, lobby: Lobby = Depends(get_lobby)) -> Player:
    try:
        player = lobby.add_player(payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return player


@router.delete("/players/{username}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_player_route(username: str, lobby: Lobby = Depends(get_lobby)) -> Response:
    lobby.remove_player(username)
    await _announce(lobby)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/players", response_model=PlayerListResponse)
async def list_players_route(online: bool = True, lobby: Lobby = Depends(get_lobby)) -> PlayerListResponse:
    if online:
        return PlayerListResponse(players=lobby.get_online_players())
    return PlayerListResponse(players=list(lobby.get_state().players.values()))


@router.put("/players/{username}/presence", response_model=Player)
async def presence_route(username: str, payload: PresenceRequest, lobby: Lobby = Depends(get_lobby)) -> Player:
    try:
        player = lobby.set_online(username, payload.is_online)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return player


@router.get("/players/{username}/challenges", response_model=ChallengeListResponse)
async def pending_challenges_route(
    username: str,
    direction: str = "received",
    lobby: Lobby = Depends(get_lobby),
) -> ChallengeListResponse:
    if direction == "received":
        return ChallengeListResponse(challenges=lobby.get_pending_challenges_for(username))
    if direction == "sent":
        return ChallengeListResponse(challenges=lobby.get_sent_challenges_for(username))
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="direction must be received or sent")


@router.get("/players/{username}/session", response_model=GameSession)
async def active_session_route(username: str, lobby: Lobby = Depends(get_lobby)) -> GameSession:
    session = lobby.get_active_session_for(username)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active game session")
    return session


# ---- challenges ----


@router.post("/challenges", response_model=ChallengeCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_challenge_route(
    payload: ChallengeCreateRequest,
    response: Response,
    lobby: Lobby = Depends(get_lobby),
) -> ChallengeCreateResponse:
    try:
        outcome = lobby.create_challenge(payload.challenger, payload.challenged)
    except CoordinationError as e:
        raise _http_error(e) from e

    if outcome.target_busy:
        response.status_code = status.HTTP_202_ACCEPTED

    await _announce(lobby)
    return ChallengeCreateResponse(status=outcome.kind, challenge=outcome.challenge, queue_entry=outcome.queue_entry)


@router.get("/challenges/{challenge_id}", response_model=Challenge)
async def get_challenge_route(challenge_id: str, lobby: Lobby = Depends(get_lobby)) -> Challenge:
    challenge = lobby.get_challenge(challenge_id)
    if challenge is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found")
    return challenge


@router.post("/challenges/{challenge_id}/accept", response_model=AcceptResponse)
async def accept_challenge_route(
    challenge_id: str,
    payload: ActingUserRequest,
    lobby: Lobby = Depends(get_lobby),
) -> AcceptResponse:
    try:
        accepted = lobby.accept_challenge(challenge_id, payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return AcceptResponse(challenge=accepted.challenge, game_session_id=accepted.game_session_id)


@router.post("/challenges/{challenge_id}/reject", response_model=Challenge)
async def reject_challenge_route(
    challenge_id: str,
    payload: ActingUserRequest,
    lobby: Lobby = Depends(get_lobby),
) -> Challenge:
    try:
        challenge = lobby.reject_challenge(challenge_id, payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return challenge


# ---- sessions ----


@router.get("/sessions/{session_id}", response_model=GameSession)
async def get_session_route(session_id: str, lobby: Lobby = Depends(get_lobby)) -> GameSession:
    session = lobby.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game session not found")
    return session


@router.post("/sessions/{session_id}/choices", response_model=ChoiceResponse)
async def make_choice_route(session_id: str, payload: ChoiceRequest, lobby: Lobby = Depends(get_lobby)) -> ChoiceResponse:
    try:
        outcome = lobby.make_choice(session_id, payload.username, payload.choice)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return ChoiceResponse(session=outcome.session, resolved=outcome.resolved, delivered=outcome.delivered)


@router.post("/sessions/{session_id}/replay", response_model=ChallengeCreateResponse, status_code=status.HTTP_201_CREATED)
async def request_replay_route(
    session_id: str,
    payload: ActingUserRequest,
    response: Response,
    lobby: Lobby = Depends(get_lobby),
) -> ChallengeCreateResponse:
    try:
        outcome = lobby.request_replay(session_id, payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    if outcome.target_busy:
        response.status_code = status.HTTP_202_ACCEPTED

    await _announce(lobby)
    return ChallengeCreateResponse(status=outcome.kind, challenge=outcome.challenge, queue_entry=outcome.queue_entry)


@router.post("/sessions/{session_id}/replay/accept", response_model=AcceptResponse)
async def accept_replay_route(
    session_id: str,
    payload: ActingUserRequest,
    lobby: Lobby = Depends(get_lobby),
) -> AcceptResponse:
    try:
        accepted = lobby.accept_replay(session_id, payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return AcceptResponse(challenge=accepted.challenge, game_session_id=accepted.game_session_id)


@router.post("/sessions/{session_id}/replay/decline", status_code=status.HTTP_204_NO_CONTENT)
async def decline_replay_route(
    session_id: str,
    payload: ActingUserRequest,
    lobby: Lobby = Depends(get_lobby),
) -> Response:
    try:
        lobby.decline_replay(session_id, payload.username)
    except CoordinationError as e:
        raise _http_error(e) from e

    await _announce(lobby)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---- derived views & hygiene ----


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard_route(lobby: Lobby = Depends(get_lobby)) -> LeaderboardResponse:
    return LeaderboardResponse(leaderboard=lobby.get_leaderboard())


@router.get("/queue", response_model=WaitingQueueResponse)
async def waiting_queue_route(lobby: Lobby = Depends(get_lobby)) -> WaitingQueueResponse:
    return WaitingQueueResponse(waiting_queue=lobby.get_waiting_queue())


@router.get("/state", response_model=StateResponse)
async def state_route(lobby: Lobby = Depends(get_lobby)) -> StateResponse:
    """Debug endpoint: the raw shared document."""

    return StateResponse(state=lobby.get_state())


@router.post("/maintenance/cleanup", response_model=CleanupResponse)
async def cleanup_route(lobby: Lobby = Depends(get_lobby)) -> CleanupResponse:
    expired = lobby.cleanup_expired_challenges()
    purged = lobby.cleanup_completed_sessions()
    if expired or purged:
        await _announce(lobby)
    return CleanupResponse(expired_challenges=expired, purged_sessions=purged)
