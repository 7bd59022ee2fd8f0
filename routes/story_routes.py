from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket
from typing import List, Optional
from datetime import datetime, timezone
import logging

from google.cloud.firestore import Client as FirestoreClient, FieldFilter

from models import Comment, CommentCreate, Lobby, LobbyStatus, StoryDetail, User
from routes.auth_routes import accept_websocket, get_current_user, load_profile
from routes.lobby_routes import load_lobby
from utils.errors import NoUserProfile
from utils.firebase import get_db
from utils import live, turns

logger = logging.getLogger(__name__)
router = APIRouter()

EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def last_updated(lobby: Lobby) -> datetime:
    return lobby.story.last_updated if lobby.story else EPOCH

def matches(lobby: Lobby, q: str) -> bool:
    low = q.lower()
    if low in lobby.title.lower():
        return True
    if lobby.story and low in lobby.story.content.lower():
        return True
    return any(
        low in p.username.lower() or low in p.email.lower()
        for p in lobby.players.values()
    )

def completed_query(db: FirestoreClient):
    return db.collection("lobbies").where(
        filter=FieldFilter("status", "==", LobbyStatus.completed.value)
    )

def newest_first(docs) -> List[Lobby]:
    stories = [Lobby.model_validate(doc.to_dict()) for doc in docs]
    return sorted(stories, key=last_updated, reverse=True)

def completed_stories(db: FirestoreClient) -> List[Lobby]:
    return newest_first(completed_query(db).stream())

def comments_ref(db: FirestoreClient, lobby_id: str):
    return db.collection("story_comments").document(lobby_id).collection("comments")


# Завершённые истории, новые сверху
@router.get("/", response_model=List[Lobby], summary="Completed stories, most recently updated first")
async def list_stories(
    q:  Optional[str]   = Query(None, description="Search in title, text and player names"),
    db: FirestoreClient = Depends(get_db),
):
    stories = completed_stories(db)
    if q:
        stories = [s for s in stories if matches(s, q)]
    return stories

def render_stories(docs) -> dict:
    return {"stories": [s.model_dump(mode="json") for s in newest_first(docs)]}

@router.websocket("/watch")
async def watch_stories(
    websocket: WebSocket,
    token:     str             = Query(...),
    db:        FirestoreClient = Depends(get_db),
):
    if await accept_websocket(websocket, token, db) is None:
        return
    await live.relay(websocket, completed_query(db), render_stories)

@router.get("/{lobby_id}", response_model=StoryDetail)
async def get_story(
    lobby_id: str,
    db:       FirestoreClient = Depends(get_db),
):
    _, lobby = load_lobby(db, lobby_id)
    if lobby.status != LobbyStatus.completed:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Story not found")
    return StoryDetail(lobby=lobby, contributions=turns.contributions(lobby))

@router.get("/{lobby_id}/comments", response_model=List[Comment])
async def list_comments(
    lobby_id: str,
    db:       FirestoreClient = Depends(get_db),
):
    snaps = comments_ref(db, lobby_id).stream()
    comments = [Comment.model_validate(doc.to_dict()) for doc in snaps]
    return sorted(comments, key=lambda c: c.timestamp, reverse=True)

@router.post("/{lobby_id}/comments", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def add_comment(
    lobby_id: str,
    payload:  CommentCreate,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
):
    load_lobby(db, lobby_id)

    text = payload.content.strip()
    if not text:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Comment is empty")
    profile = load_profile(db, current.user_id)
    if profile is None:
        raise NoUserProfile()

    ref = comments_ref(db, lobby_id).document()
    comment = Comment(
        comment_id  = ref.id,
        lobby_id    = lobby_id,
        user_id     = current.user_id,
        username    = profile.username,
        user_avatar = profile.avatar,
        image_data  = profile.image_data,
        content     = text,
    )
    ref.set(comment.model_dump())
    return comment

def render_comments(docs) -> dict:
    comments = [Comment.model_validate(doc.to_dict()) for doc in docs]
    comments.sort(key=lambda c: c.timestamp, reverse=True)
    return {"comments": [c.model_dump(mode="json") for c in comments]}

@router.websocket("/{lobby_id}/comments/watch")
async def watch_comments(
    websocket: WebSocket,
    lobby_id:  str,
    token:     str             = Query(...),
    db:        FirestoreClient = Depends(get_db),
):
    if await accept_websocket(websocket, token, db) is None:
        return
    await live.relay(websocket, comments_ref(db, lobby_id), render_comments)
