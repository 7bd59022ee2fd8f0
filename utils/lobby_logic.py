"""
Lobby lifecycle: waiting -> inProgress -> completed, never backwards.
"""
import logging
from typing import Optional

from models import (
    Lobby, LobbyCreate, LobbyStatus, Player, UserProfile, Story,
    MAX_PLAYERS, MIN_PLAYERS_TO_START,
)
from utils import turns
from utils.errors import (
    InsufficientPlayers, LobbyFull, LobbyIdGenerationFailed, NoActiveLobby,
    NoUserProfile, NotHost, PlayerNotFound, UserNotAuthenticated,
)

logger = logging.getLogger(__name__)


def create(
    user_id:  Optional[str],
    profile:  Optional[UserProfile],
    payload:  LobbyCreate,
    lobby_id: Optional[str],
) -> Lobby:
    if not user_id:
        raise UserNotAuthenticated()
    if profile is None:
        raise NoUserProfile()

    if not lobby_id:
        raise LobbyIdGenerationFailed()

    lobby = Lobby(
        lobby_id       = lobby_id,
        host_id        = user_id,
        title          = payload.title,
        description    = payload.description,
        max_players    = MAX_PLAYERS,
        status         = LobbyStatus.waiting,
        game_mode      = payload.game_mode,
        timer_duration = payload.timer_duration,
        players        = {user_id: Player.from_profile(profile)},
    )
    logger.info("lobby %s created by %s (%s)", lobby.lobby_id, user_id, lobby.game_mode.value)
    return lobby


def join(lobby: Lobby, user_id: str, profile: Optional[UserProfile]) -> Optional[Player]:
    """
    New Player entry for the caller, or None if they are already in.
    """
    if profile is None:
        raise NoUserProfile()
    if user_id in lobby.players:
        return None
    if len(lobby.players) >= lobby.max_players:
        raise LobbyFull()
    if lobby.status != LobbyStatus.waiting:
        raise NoActiveLobby("Game has already started")
    return Player.from_profile(profile)


def leave(lobby: Lobby, user_id: str) -> bool:
    """
    True when the whole lobby must be deleted (the host is leaving).
    """
    if lobby.host_id == user_id:
        return True
    if user_id not in lobby.players:
        raise PlayerNotFound()
    return False


def start(lobby: Lobby, user_id: str) -> Story:
    if lobby.host_id != user_id:
        raise NotHost()
    if len(lobby.players) < MIN_PLAYERS_TO_START:
        raise InsufficientPlayers()
    if lobby.status != LobbyStatus.waiting:
        raise NoActiveLobby("Game has already started")
    return turns.new_story(lobby)


def end(lobby: Lobby) -> None:
    # проверки хоста здесь нет
    if lobby.status == LobbyStatus.waiting:
        # у лобби в ожидании нет истории, завершать нечего
        raise NoActiveLobby()
