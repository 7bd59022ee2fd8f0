"""
Server-side turn timer.

One asyncio task per running lobby ticks every `TURN_TICK_SECONDS`
(default 1s). Each tick bumps `story.total_game_time`, counts down
`story.time_remaining` for timed lobbies and, when the countdown runs
out, submits the turn holder's draft for them.
"""
import asyncio
import logging
import os
from typing import Callable, Dict, List

from google.api_core.exceptions import FailedPrecondition
from google.cloud.firestore import Client as FirestoreClient, FieldFilter

from models import Lobby, LobbyStatus
from utils import turns
from utils.firebase import get_db

logger = logging.getLogger(__name__)

TICK_SECONDS = float(os.getenv("TURN_TICK_SECONDS", "1"))


def advance(db: FirestoreClient, lobby_id: str) -> bool:
    """
    Apply one tick to `lobbies/{lobby_id}`. Returns False once the lobby
    is gone or no longer in progress, which stops the clock.
    """
    ref = db.collection("lobbies").document(lobby_id)
    snap = ref.get()
    if not snap.exists:
        return False
    lobby = Lobby.model_validate(snap.to_dict())

    updated = turns.tick(lobby)
    if updated is None:
        return False

    # submit() всегда обновляет last_updated, значит ход закончился
    if updated.last_updated != lobby.story.last_updated:
        logger.info(
            "turn timed out in lobby %s, %s -> %s",
            lobby_id, lobby.story.current_turn, updated.current_turn,
        )
        data = turns.story_updates(updated)
    else:
        # только счётчики, чтобы не затереть текст, отправленный параллельно
        data = {"story.time_remaining": updated.time_remaining}
    data["story.total_game_time"] = updated.total_game_time
    try:
        # пишем только если документ не менялся после чтения
        ref.update(data, option=db.write_option(last_update_time=snap.update_time))
    except FailedPrecondition:
        logger.debug("lobby %s changed during tick, skipping it", lobby_id)
    return True


class TurnClock:
    def __init__(
        self,
        db_factory: Callable[[], FirestoreClient] = get_db,
        interval:   float = TICK_SECONDS,
    ):
        self._db_factory = db_factory
        self.interval    = interval
        self._tasks: Dict[str, asyncio.Task] = {}

    def is_running(self, lobby_id: str) -> bool:
        return lobby_id in self._tasks

    def start(self, lobby_id: str) -> None:
        if lobby_id in self._tasks:
            return
        task = asyncio.get_running_loop().create_task(self._run(lobby_id))
        self._tasks[lobby_id] = task
        task.add_done_callback(lambda t: self._forget(lobby_id, t))
        logger.debug("turn clock started for lobby %s", lobby_id)

    def _forget(self, lobby_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(lobby_id) is task:
            del self._tasks[lobby_id]

    def stop(self, lobby_id: str) -> None:
        task = self._tasks.pop(lobby_id, None)
        if task is not None:
            task.cancel()
            logger.debug("turn clock stopped for lobby %s", lobby_id)

    def resume(self) -> List[str]:
        """
        Restart clocks for every lobby still in progress, e.g. after the
        process was restarted. Must be called from the running event loop.
        """
        db = self._db_factory()
        snaps = (
            db.collection("lobbies")
              .where(filter=FieldFilter("status", "==", LobbyStatus.in_progress.value))
              .stream()
        )
        lobby_ids = [doc.id for doc in snaps]
        for lobby_id in lobby_ids:
            self.start(lobby_id)
        if lobby_ids:
            logger.info("resumed turn clocks for %d running lobbies", len(lobby_ids))
        return lobby_ids

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, lobby_id: str) -> None:
        db = self._db_factory()
        while True:
            await asyncio.sleep(self.interval)
            try:
                running = await asyncio.to_thread(advance, db, lobby_id)
            except Exception:
                # сбой одного тика не останавливает игру, пробуем на следующем
                logger.exception("turn clock tick failed for lobby %s", lobby_id)
                continue
            if not running:
                return


clock = TurnClock()

def get_turn_clock() -> TurnClock:
    return clock
