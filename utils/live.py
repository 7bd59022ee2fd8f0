"""
Relay Firestore `on_snapshot` events to a WebSocket. Each event carries
the full current state, clients replace their copy instead of merging.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


async def relay(
    websocket: WebSocket,
    target:    Any,
    render:    Callable[[List[Any]], Dict[str, Any]],
) -> None:
    """
    Subscribe to `target` (a document or query reference) and push
    `render(docs)` on every change until the client disconnects or a
    payload with `"deleted": True` has been sent.
    """
    loop  = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # вызывается из потока слушателя Firestore
    def on_snapshot(docs, _changes, _read_time):
        try:
            payload = render(docs)
        except Exception:
            logger.exception("failed to render snapshot for websocket")
            return
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    watch    = target.on_snapshot(on_snapshot)
    receiver = asyncio.ensure_future(websocket.receive_text())
    getter   = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter in done:
                payload = getter.result()
                await websocket.send_json(payload)
                if payload.get("deleted"):
                    await websocket.close()
                    return
            else:
                getter.cancel()
            if receiver in done:
                # входящие сообщения игнорируем, ждём только отключения
                receiver.result()
                receiver = asyncio.ensure_future(websocket.receive_text())
    except WebSocketDisconnect:
        logger.debug("websocket client disconnected")
    finally:
        watch.unsubscribe()
        receiver.cancel()
        if getter is not None:
            getter.cancel()
