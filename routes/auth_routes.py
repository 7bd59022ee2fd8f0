import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from passlib.context import CryptContext
from jose import jwt
from jose.exceptions import JWTError

from utils.firebase import get_db
from utils.profile_sync import validate_image
from google.cloud.firestore import Client as FirestoreClient, FieldFilter
from models import User, UserProfile, DEFAULT_AVATAR, gen_uuid, now_utc

logger = logging.getLogger(__name__)

# ─── JWT settings ───────────────────────────────────────────────────────────────
SECRET_KEY       = os.getenv("SECRET_KEY", "changeme")
ALGORITHM        = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_MIN = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

pwd_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")
router  = APIRouter()

bearer_scheme = HTTPBearer()


# ─── Pydantic schemas ────────────────────────────────────────────────────────────
class UserCreate(BaseModel):
    email:      EmailStr
    username:   str = Field(..., min_length=1)
    password:   str = Field(..., min_length=6)
    first_name: str = ""
    last_name:  str = ""
    avatar:     str = DEFAULT_AVATAR
    image_data: Optional[str] = None

class LoginRequest(BaseModel):
    email:    EmailStr
    password: str

class Token(BaseModel):
    access_token: str
    token_type:   str = "bearer"

class Me(UserProfile):
    created_at: datetime
    last_login: datetime


# ─── Utility functions ─────────────────────────────────────────────────────────
def hash_password(pw: str) -> str:
    return pwd_ctx.hash(pw)

def verify_password(plain: str, hashed: str) -> bool:
    return pwd_ctx.verify(plain, hashed)

def create_jwt(user_id: str) -> str:
    expire  = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_MIN)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)

def get_user_by_email(
    db:    FirestoreClient,
    email: Union[str, EmailStr],
) -> Tuple[Optional[str], Optional[dict]]:
    """
    Returns (user_id, user_dict) if a user with that email exists, else (None, None).
    """
    snaps = (
        db.collection("users")
          .where(
             filter=FieldFilter("email", "==", str(email))
          )
          .stream()
    )
    for doc in snaps:
        data = doc.to_dict()
        data["user_id"] = doc.id
        return doc.id, data
    return None, None

def load_profile(db: FirestoreClient, user_id: str) -> Optional[UserProfile]:
    snap = db.collection("users").document(user_id).get()
    if not snap.exists:
        return None
    return UserProfile.model_validate(snap.to_dict())

def user_from_token(token: str, db: FirestoreClient) -> User:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        uid  = payload.get("sub")
        if not uid:
            raise HTTPException(401, "Invalid token")
    except JWTError:
        raise HTTPException(401, "Invalid token")
    doc = db.collection("users").document(uid).get()
    if not doc.exists:
        raise HTTPException(401, "User not found")
    return User.model_validate(doc.to_dict())


# ─── POST /auth/register ───────────────────────────────────────────────────────
@router.post("/register", response_model=Me, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserCreate,
    db:      FirestoreClient = Depends(get_db),
):
    existing_id, _ = get_user_by_email(db, payload.email)
    if existing_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Email already registered")

    image_data = validate_image(payload.image_data) if payload.image_data else None

    now = now_utc()
    user = User(
        user_id    = gen_uuid(),
        email      = payload.email,
        password   = hash_password(payload.password),
        username   = payload.username,
        first_name = payload.first_name,
        last_name  = payload.last_name,
        avatar     = payload.avatar,
        image_data = image_data,
        created_at = now,
        last_login = now,
    )
    db.collection("users").document(user.user_id).set(user.model_dump())
    logger.info("registered user %s", user.user_id)
    return Me(**user.model_dump())


# ─── POST /auth/login ──────────────────────────────────────────────────────────
@router.post("/login", response_model=Token)
async def login(
    payload: LoginRequest,
    db:      FirestoreClient = Depends(get_db),
):
    user_id, data = get_user_by_email(db, payload.email)
    if not data or not verify_password(payload.password, data["password"]):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Incorrect email or password")

    db.collection("users").document(user_id).update({"last_login": now_utc()})
    return Token(access_token=create_jwt(user_id))


# ─── Dependency: get_current_user ───────────────────────────────────────────────
async def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db:    FirestoreClient             = Depends(get_db),
) -> User:
    return user_from_token(creds.credentials, db)

# WebSocket: токен приходит в query-параметре ?token=, при ошибке закрываем с 1008
async def accept_websocket(websocket: WebSocket, token: str, db: FirestoreClient) -> Optional[User]:
    try:
        user = user_from_token(token, db)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    await websocket.accept()
    return user

@router.get("/me", response_model=Me)
async def me(current: User = Depends(get_current_user)):
    return Me(**current.model_dump())
