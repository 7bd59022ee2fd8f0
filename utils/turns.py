"""
Turn rotation and narrative bookkeeping for a running game.

Everything here works on pydantic models only; routes and the turn clock
load the lobby from Firestore, call into this module and write back the
fields returned by `story_updates`.
"""
from typing import Dict, List, Optional

from models import (
    Contribution, GameMode, Lobby, LobbyStatus, Player, Segment, Story,
    SEGMENT_SEPARATOR, now_utc,
)
from utils.errors import CurrentPlayerNotFound, NoActiveLobby


def turn_order(players: Dict[str, Player]) -> List[str]:
    """
    Player ids ordered by join time. `sorted` is stable, so ties keep
    the key order of the map.
    """
    ordered = sorted(sorted(players.items()), key=lambda kv: kv[1].joined_at)
    return [uid for uid, _ in ordered]


def next_turn(players: Dict[str, Player], user_id: str) -> str:
    order = turn_order(players)
    if user_id not in order:
        raise CurrentPlayerNotFound()
    return order[(order.index(user_id) + 1) % len(order)]


def append_segment(content: str, text: str) -> str:
    if not content:
        return text
    return f"{content}{SEGMENT_SEPARATOR}{text}"


def new_story(lobby: Lobby) -> Story:
    now = now_utc()
    return Story(
        content         = "",
        current_turn    = lobby.host_id,
        last_updated    = now,
        time_remaining  = lobby.turn_seconds,
        total_game_time = 0,
    )


def _require_running(lobby: Lobby) -> Story:
    if lobby.status != LobbyStatus.in_progress or lobby.story is None:
        raise NoActiveLobby()
    return lobby.story


def submit(lobby: Lobby, user_id: str, text: str) -> Story:
    """
    Append `text` as the caller's segment and hand the turn to the next
    player. Blank text passes the turn without adding a segment.
    """
    story = _require_running(lobby)
    following = next_turn(lobby.players, user_id)

    updated = story.model_copy(deep=True)
    if text.strip():
        updated.content = append_segment(story.content, text)
        updated.segments.append(Segment(author_id=user_id, content=text))
    updated.current_turn   = following
    updated.last_updated   = now_utc()
    updated.time_remaining = lobby.turn_seconds
    updated.draft          = ""
    return updated


def skip_departed(lobby: Lobby, leaving_id: str) -> Optional[Story]:
    """
    Story after `leaving_id` drops out of a running game, or None when
    nothing about the turn changes.
    """
    story = lobby.story
    if lobby.status != LobbyStatus.in_progress or story is None:
        return None
    if story.current_turn != leaving_id or len(lobby.players) < 2:
        return None
    updated = story.model_copy(deep=True)
    updated.current_turn   = next_turn(lobby.players, leaving_id)
    updated.last_updated   = now_utc()
    updated.time_remaining = lobby.turn_seconds
    updated.draft          = ""
    return updated


def story_updates(story: Story) -> Dict[str, object]:
    # одно update() на несколько полей, без транзакции
    data = story.model_dump()
    return {
        "story.content":        data["content"],
        "story.current_turn":   data["current_turn"],
        "story.last_updated":   data["last_updated"],
        "story.time_remaining": data["time_remaining"],
        "story.segments":       data["segments"],
        "story.draft":          data["draft"],
    }


def reconstruct(content: str, players: Dict[str, Player]) -> List[Contribution]:
    """
    Split `content` into segments and attribute segment i to the i-th
    player (mod player count) in join order. Only correct when nobody
    joined or left after the game started.
    """
    order = turn_order(players)
    if not order:
        return []
    pieces = [p for p in content.split(SEGMENT_SEPARATOR) if p]
    out: List[Contribution] = []
    for i, piece in enumerate(pieces):
        uid = order[i % len(order)]
        player = players[uid]
        out.append(Contribution(
            author_id = uid,
            username  = player.username,
            avatar    = player.avatar,
            content   = piece,
        ))
    return out


def contributions(lobby: Lobby) -> List[Contribution]:
    story = lobby.story
    if story is None:
        return []
    if not story.segments:
        return reconstruct(story.content, lobby.players)

    out: List[Contribution] = []
    for seg in story.segments:
        player = lobby.players.get(seg.author_id)
        out.append(Contribution(
            author_id = seg.author_id,
            username  = player.username if player else None,
            avatar    = player.avatar if player else None,
            content   = seg.content,
        ))
    return out


def tick(lobby: Lobby) -> Optional[Story]:
    """
    Advance the clocks of a running game by one second. Returns the new
    story or None if the game is no longer running. When a timed turn
    runs out, the holder's draft is submitted (or the turn passed).
    """
    if lobby.status != LobbyStatus.in_progress or lobby.story is None:
        return None
    story = lobby.story

    if lobby.game_mode == GameMode.timed and story.time_remaining <= 1:
        holder = story.current_turn
        if holder not in lobby.players:
            # держатель хода пропал из лобби — ход переходит первому по порядку
            order = turn_order(lobby.players)
            if not order:
                return None
            holder = order[-1]
            draft = ""
        else:
            draft = story.draft
        updated = submit(lobby, holder, draft)
        updated.total_game_time = story.total_game_time + 1
        return updated

    updated = story.model_copy(deep=True)
    updated.total_game_time += 1
    if lobby.game_mode == GameMode.timed:
        updated.time_remaining -= 1
    return updated
