from fastapi import APIRouter, Depends, HTTPException, status, Query, Response, WebSocket
from typing import List, Optional, Tuple
import logging

from google.cloud.firestore import Client as FirestoreClient, DELETE_FIELD
from google.cloud.firestore_v1.field_path import FieldPath
from google.cloud.firestore_v1.document import DocumentReference

from models import Lobby, LobbyCreate, LobbyStatus, User, UserProfile
from routes.auth_routes import accept_websocket, get_current_user, load_profile
from utils.firebase import get_db
from utils.turn_clock import TurnClock, get_turn_clock
from utils import live, lobby_logic, turns

logger = logging.getLogger(__name__)
router = APIRouter()


def load_lobby(db: FirestoreClient, lobby_id: str) -> Tuple[DocumentReference, Lobby]:
    ref = db.collection("lobbies").document(lobby_id)
    snap = ref.get()
    if not snap.exists:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Lobby not found")
    return ref, Lobby.model_validate(snap.to_dict())

def player_field(user_id: str) -> str:
    # id пользователя может содержать "-", поэтому путь собираем через FieldPath
    return FieldPath("players", user_id).to_api_repr()

def matches(lobby: Lobby, q: str) -> bool:
    low = q.lower()
    return low in lobby.title.lower() or low in lobby.description.lower()

def open_lobbies(docs, q: Optional[str] = None) -> List[Lobby]:
    result: List[Lobby] = []
    for doc in docs:
        lobby = Lobby.model_validate(doc.to_dict())
        if lobby.status == LobbyStatus.completed:
            continue
        if q and not matches(lobby, q):
            continue
        result.append(lobby)
    return sorted(result, key=lambda l: l.title)


# Создать лобби, создатель сразу становится хостом и первым игроком
@router.post("/", response_model=Lobby, status_code=status.HTTP_201_CREATED)
async def create_lobby(
    payload: LobbyCreate,
    current: User            = Depends(get_current_user),
    db:      FirestoreClient = Depends(get_db),
):
    ref = db.collection("lobbies").document()
    lobby = lobby_logic.create(
        user_id  = current.user_id,
        profile  = load_profile(db, current.user_id),
        payload  = payload,
        lobby_id = ref.id,
    )
    ref.set(lobby.model_dump())
    return lobby

# Список активных (не завершённых) лобби, отсортированный по названию
@router.get("/", response_model=List[Lobby], summary="List lobbies that are not completed")
async def list_lobbies(
    q:  Optional[str]   = Query(None, description="Search in title and description"),
    db: FirestoreClient = Depends(get_db),
):
    return open_lobbies(db.collection("lobbies").stream(), q)

def render_open_lobbies(docs) -> dict:
    return {"lobbies": [l.model_dump(mode="json") for l in open_lobbies(docs)]}

# Живой список лобби для экрана выбора игры
@router.websocket("/watch")
async def watch_lobbies(
    websocket: WebSocket,
    token:     str             = Query(...),
    db:        FirestoreClient = Depends(get_db),
):
    if await accept_websocket(websocket, token, db) is None:
        return
    await live.relay(websocket, db.collection("lobbies"), render_open_lobbies)

@router.get("/{lobby_id}", response_model=Lobby)
async def get_lobby(
    lobby_id: str,
    db:       FirestoreClient = Depends(get_db),
):
    _, lobby = load_lobby(db, lobby_id)
    return lobby

@router.post("/{lobby_id}/join", response_model=Lobby)
async def join_lobby(
    lobby_id: str,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
):
    ref, lobby = load_lobby(db, lobby_id)
    player = lobby_logic.join(lobby, current.user_id, load_profile(db, current.user_id))
    if player is None:
        return lobby

    ref.update({player_field(current.user_id): player.model_dump()})
    lobby.players[current.user_id] = player
    logger.info("user %s joined lobby %s (%d/%d)",
                current.user_id, lobby_id, len(lobby.players), lobby.max_players)
    return lobby

# Хост уходит — лобби удаляется целиком, остальные просто выходят
@router.post("/{lobby_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_lobby(
    lobby_id: str,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
    clock:    TurnClock       = Depends(get_turn_clock),
):
    ref, lobby = load_lobby(db, lobby_id)
    if lobby_logic.leave(lobby, current.user_id):
        clock.stop(lobby_id)
        ref.delete()
        logger.info("host %s left, lobby %s deleted", current.user_id, lobby_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    updates = {player_field(current.user_id): DELETE_FIELD}
    story = turns.skip_departed(lobby, current.user_id)
    if story is not None:
        updates.update(turns.story_updates(story))
    ref.update(updates)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.get("/{lobby_id}/players", response_model=List[UserProfile],
            summary="Players of the lobby in turn order")
async def list_players(
    lobby_id: str,
    db:       FirestoreClient = Depends(get_db),
):
    _, lobby = load_lobby(db, lobby_id)
    out: List[UserProfile] = []
    for uid in turns.turn_order(lobby.players):
        p = lobby.players[uid]
        out.append(UserProfile(
            user_id    = uid,
            email      = p.email,
            username   = p.username,
            first_name = p.first_name,
            last_name  = p.last_name,
            avatar     = p.avatar,
            image_data = p.image_data,
        ))
    return out

def render_lobby(docs) -> dict:
    for doc in docs:
        if doc.exists:
            return {"lobby": Lobby.model_validate(doc.to_dict()).model_dump(mode="json")}
    return {"deleted": True}

@router.websocket("/{lobby_id}/watch")
async def watch_lobby(
    websocket: WebSocket,
    lobby_id:  str,
    token:     str             = Query(...),
    db:        FirestoreClient = Depends(get_db),
):
    if await accept_websocket(websocket, token, db) is None:
        return
    await live.relay(websocket, db.collection("lobbies").document(lobby_id), render_lobby)
