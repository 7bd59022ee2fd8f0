from pydantic import BaseModel, Field, EmailStr
from typing import List, Optional, Dict
from datetime import datetime, timezone
import uuid
from enum import Enum

MAX_PLAYERS          = 4
MIN_PLAYERS_TO_START = 2
DEFAULT_TURN_SECONDS = 60
SEGMENT_SEPARATOR    = "\n\n"
DEFAULT_AVATAR       = "Boy1"

def gen_uuid() -> str:
    return str(uuid.uuid4())

def now_utc() -> datetime:
    """Возвращает текущий момент в UTC с tzinfo."""
    return datetime.now(timezone.utc)

class LobbyStatus(str, Enum):
    waiting     = "waiting"
    in_progress = "inProgress"
    completed   = "completed"

class GameMode(str, Enum):
    timed    = "timed"
    freeform = "freeform"

# Профиль пользователя, пароль хранится только в виде bcrypt-хэша
class User(BaseModel):
    user_id:    str = Field(default_factory=gen_uuid)
    email:      EmailStr
    password:   str
    username:   str
    first_name: str = ""
    last_name:  str = ""
    avatar:     str = DEFAULT_AVATAR
    image_data: Optional[str] = None          # base64, без data:-префикса
    created_at: datetime = Field(default_factory=now_utc)
    last_login: datetime = Field(default_factory=now_utc)

# То, что видят другие пользователи (без пароля)
class UserProfile(BaseModel):
    user_id:    str
    email:      EmailStr
    username:   str
    first_name: str = ""
    last_name:  str = ""
    avatar:     str = DEFAULT_AVATAR
    image_data: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

class Player(BaseModel):
    email:      str
    username:   str
    first_name: str = ""
    last_name:  str = ""
    avatar:     str = DEFAULT_AVATAR
    joined_at:  datetime = Field(default_factory=now_utc)   # задаётся один раз при входе
    image_data: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "Player":
        return cls(
            email      = profile.email,
            username   = profile.username,
            first_name = profile.first_name,
            last_name  = profile.last_name,
            avatar     = profile.avatar,
            joined_at  = now_utc(),
            image_data = profile.image_data,
        )

class Segment(BaseModel):
    author_id:  str
    content:    str
    created_at: datetime = Field(default_factory=now_utc)

class Story(BaseModel):
    content:         str = ""
    current_turn:    str
    last_updated:    datetime = Field(default_factory=now_utc)
    time_remaining:  int = 0            # имеет смысл только для timed
    total_game_time: int = 0
    segments:        List[Segment] = Field(default_factory=list)
    draft:           str = ""           # несохранённый текст текущего игрока

class Lobby(BaseModel):
    lobby_id:       str = Field(default_factory=gen_uuid)
    host_id:        str
    title:          str
    description:    str = ""
    max_players:    int = MAX_PLAYERS
    status:         LobbyStatus = LobbyStatus.waiting
    game_mode:      GameMode = GameMode.freeform
    timer_duration: Optional[int] = None
    players:        Dict[str, Player] = Field(default_factory=dict)
    story:          Optional[Story] = None
    created_at:     datetime = Field(default_factory=now_utc)

    @property
    def turn_seconds(self) -> int:
        if self.game_mode == GameMode.timed:
            return self.timer_duration or DEFAULT_TURN_SECONDS
        return 0

class LobbyCreate(BaseModel):
    title:          str = Field(..., min_length=1)
    description:    str = ""
    game_mode:      GameMode = GameMode.freeform
    timer_duration: Optional[int] = Field(None, ge=5, le=600)

class TurnSubmit(BaseModel):
    content: str

class DraftUpdate(BaseModel):
    content: str

class Contribution(BaseModel):
    author_id: str
    username:  Optional[str] = None
    avatar:    Optional[str] = None
    content:   str

class Comment(BaseModel):
    comment_id: str = Field(default_factory=gen_uuid)
    lobby_id:   str
    user_id:    str
    username:   str
    user_avatar: str = DEFAULT_AVATAR
    image_data: Optional[str] = None
    content:    str
    timestamp:  datetime = Field(default_factory=now_utc)

class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

class ProfileImageUpdate(BaseModel):
    image_data: str

class StoryDetail(BaseModel):
    lobby:         Lobby
    contributions: List[Contribution]

class ProfileStats(BaseModel):
    stories_count:       int
    contributions_count: int
    recent_stories:      List[Lobby] = Field(default_factory=list)
