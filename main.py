import os
import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contextlib import asynccontextmanager

# Загружаем переменные окружения до импорта роутеров: они читают настройки при импорте
load_dotenv()

from utils.errors import LobbyError
from utils.firebase import init_firebase
from utils.turn_clock import clock

from routes.auth_routes import router as auth_router
from routes.lobby_routes import router as lobby_router
from routes.game_routes import router as game_router
from routes.story_routes import router as story_router
from routes.user_routes import router as user_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # это выполняется *один раз* перед первым запросом
    init_firebase()
    # после перезапуска игры в процессе снова получают таймеры
    clock.resume()
    yield
    # останавливаем таймеры ходов
    await clock.shutdown()

app = FastAPI(
  title="StoryTales API",
  lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://127.0.0.1:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(LobbyError)
async def lobby_error_handler(_request: Request, exc: LobbyError):
    logger.info("%s: %s", type(exc).__name__, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

# Регистрация роутеров
app.include_router(auth_router,  prefix="/auth",    tags=["auth"])
app.include_router(lobby_router, prefix="/lobbies", tags=["lobbies"])
app.include_router(game_router,  prefix="/lobbies", tags=["game"])
app.include_router(story_router, prefix="/stories", tags=["stories"])
app.include_router(user_router,  prefix="/users",   tags=["users"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=True,
    )
