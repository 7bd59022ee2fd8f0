from fastapi import APIRouter, Depends, HTTPException, status, Query, WebSocket
from typing import List, Optional
import logging

from google.cloud.firestore import Client as FirestoreClient

from models import ProfileImageUpdate, ProfileStats, User, UserProfile
from routes.auth_routes import accept_websocket, get_current_user, load_profile
from routes.story_routes import completed_stories
from utils.firebase import get_db
from utils import live, profile_sync, turns

logger = logging.getLogger(__name__)
router = APIRouter()


def matches(profile: UserProfile, q: str) -> bool:
    low = q.lower()
    return (
        low in profile.username.lower()
        or low in profile.email.lower()
        or low in profile.full_name.lower()
    )

# Все пользователи кроме текущего, по алфавиту
@router.get("/", response_model=List[UserProfile])
async def list_users(
    q:       Optional[str]   = Query(None, description="Search in username, email and full name"),
    current: User            = Depends(get_current_user),
    db:      FirestoreClient = Depends(get_db),
):
    return other_users(db.collection("users").stream(), current.user_id, q)

def other_users(docs, user_id: str, q: Optional[str] = None) -> List[UserProfile]:
    result: List[UserProfile] = []
    for doc in docs:
        profile = UserProfile.model_validate(doc.to_dict())
        if profile.user_id == user_id:
            continue
        if q and not matches(profile, q):
            continue
        result.append(profile)
    return sorted(result, key=lambda p: p.username)

@router.websocket("/watch")
async def watch_users(
    websocket: WebSocket,
    token:     str             = Query(...),
    db:        FirestoreClient = Depends(get_db),
):
    current = await accept_websocket(websocket, token, db)
    if current is None:
        return

    def render(docs) -> dict:
        return {"users": [p.model_dump(mode="json") for p in other_users(docs, current.user_id)]}

    await live.relay(websocket, db.collection("users"), render)

@router.get("/{user_id}", response_model=UserProfile)
async def get_user(
    user_id: str,
    db:      FirestoreClient = Depends(get_db),
):
    profile = load_profile(db, user_id)
    if profile is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile

@router.get("/{user_id}/stats", response_model=ProfileStats,
            summary="Completed stories the user took part in and their segment count")
async def get_user_stats(
    user_id: str,
    db:      FirestoreClient = Depends(get_db),
):
    stories = [s for s in completed_stories(db) if user_id in s.players]
    contributed = sum(
        1
        for s in stories
        for c in turns.contributions(s)
        if c.author_id == user_id
    )
    return ProfileStats(
        stories_count       = len(stories),
        contributions_count = contributed,
        recent_stories      = stories[:3],
    )

# Новая аватарка копируется во все лобби и комментарии одним batch-запросом
@router.put("/me/image", response_model=UserProfile)
async def update_profile_image(
    payload: ProfileImageUpdate,
    current: User            = Depends(get_current_user),
    db:      FirestoreClient = Depends(get_db),
):
    image = profile_sync.validate_image(payload.image_data)

    work = profile_sync.image_worklist(db, current.user_id)
    if len(work) > profile_sync.MAX_BATCH_WRITES:
        raise HTTPException(
            status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Profile image is referenced by {len(work)} records, "
                   f"at most {profile_sync.MAX_BATCH_WRITES} can be updated at once",
        )
    profile_sync.apply_image(db, work, image)

    current.image_data = image
    return UserProfile(**current.model_dump())
