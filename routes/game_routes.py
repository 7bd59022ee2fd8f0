from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from google.cloud.firestore import Client as FirestoreClient

from models import Contribution, DraftUpdate, Lobby, LobbyStatus, Story, TurnSubmit, User
from routes.auth_routes import get_current_user
from routes.lobby_routes import load_lobby
from utils.firebase import get_db
from utils.turn_clock import TurnClock, get_turn_clock
from utils import lobby_logic, turns

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{lobby_id}/start", response_model=Lobby, summary="Start the game (host only)")
async def start_game(
    lobby_id: str,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
    clock:    TurnClock       = Depends(get_turn_clock),
):
    ref, lobby = load_lobby(db, lobby_id)
    story = lobby_logic.start(lobby, current.user_id)

    ref.update({
        "status": LobbyStatus.in_progress.value,
        "story":  story.model_dump(),
    })
    clock.start(lobby_id)

    lobby.status = LobbyStatus.in_progress
    lobby.story  = story
    logger.info("lobby %s started with %d players", lobby_id, len(lobby.players))
    return lobby

# Игрок отправляет свой фрагмент, ход переходит следующему по времени входа
@router.post("/{lobby_id}/turns", response_model=Story, summary="Submit a segment and pass the turn")
async def submit_turn(
    lobby_id: str,
    payload:  TurnSubmit,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
):
    ref, lobby = load_lobby(db, lobby_id)
    story = turns.submit(lobby, current.user_id, payload.content)
    ref.update(turns.story_updates(story))
    return story

@router.put("/{lobby_id}/draft", status_code=status.HTTP_204_NO_CONTENT,
            summary="Save the text typed so far; it is submitted when the turn times out")
async def save_draft(
    lobby_id: str,
    payload:  DraftUpdate,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
):
    ref, lobby = load_lobby(db, lobby_id)
    if lobby.status != LobbyStatus.in_progress or lobby.story is None:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="No active lobby")
    if lobby.story.current_turn != current.user_id:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="It is not your turn")
    ref.update({"story.draft": payload.content})

@router.post("/{lobby_id}/end", response_model=Lobby, summary="Mark the story as completed")
async def end_game(
    lobby_id: str,
    current:  User            = Depends(get_current_user),
    db:       FirestoreClient = Depends(get_db),
    clock:    TurnClock       = Depends(get_turn_clock),
):
    ref, lobby = load_lobby(db, lobby_id)
    lobby_logic.end(lobby)
    if lobby.status == LobbyStatus.completed:
        return lobby

    story = lobby.story
    # хост дописывает свой черновик перед завершением
    if (current.user_id == lobby.host_id
            and story.current_turn == current.user_id
            and story.draft.strip()):
        story = turns.submit(lobby, current.user_id, story.draft)
        ref.update(turns.story_updates(story))

    ref.update({"status": LobbyStatus.completed.value})
    clock.stop(lobby_id)

    lobby.status = LobbyStatus.completed
    lobby.story  = story
    logger.info("lobby %s completed by %s", lobby_id, current.user_id)
    return lobby

@router.get("/{lobby_id}/contributions", response_model=List[Contribution])
async def list_contributions(
    lobby_id: str,
    db:       FirestoreClient = Depends(get_db),
):
    _, lobby = load_lobby(db, lobby_id)
    return turns.contributions(lobby)
