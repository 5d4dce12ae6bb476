# SPDX-License-Identifier: Apache-2.0
"""WebSocket fan-out of live queries. Each message is a full snapshot."""
import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic_core import to_jsonable_python
from starlette.concurrency import run_in_threadpool

from recboard.core.exceptions import RecBoardError
from recboard.database import get_store
from recboard.services import paths
from recboard.store import QueryDescriptor, RecordStore, collection

router = APIRouter(prefix="/ws", tags=["realtime"])

_logger = logging.getLogger("recboard.realtime")


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Consume client frames until the socket closes."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


def _error_payload(exc: Exception) -> dict:
    if isinstance(exc, RecBoardError):
        return {"type": "error", **exc.to_dict()}
    return {"type": "error", "error": "subscription_failed", "detail": str(exc)}


async def stream_query(websocket: WebSocket, store: RecordStore, query: QueryDescriptor) -> None:
    """Push the query's snapshot now and on every change until either side closes."""
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_next(rows):
        loop.call_soon_threadsafe(queue.put_nowait, ("snapshot", rows))

    def on_error(exc):
        loop.call_soon_threadsafe(queue.put_nowait, ("error", exc))

    subscription = await run_in_threadpool(store.subscribe, query, on_next, on_error)
    closed = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            next_item = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({next_item, closed}, return_when=asyncio.FIRST_COMPLETED)
            if next_item not in done:
                next_item.cancel()
                break
            kind, payload = next_item.result()
            if kind == "error":
                await websocket.send_json(_error_payload(payload))
                await websocket.close(code=1011)
                break
            await websocket.send_json(
                {
                    "type": "snapshot",
                    "collection": query.collection,
                    "records": to_jsonable_python([data for _, data in payload]),
                }
            )
    finally:
        subscription.unsubscribe()
        closed.cancel()
        _logger.info("Live query on %s closed", query.collection)


@router.websocket("/protocols")
async def ws_protocols(
    websocket: WebSocket,
    status: str | None = None,
    owner_id: str | None = None,
    store: RecordStore = Depends(get_store),
):
    query = collection(paths.PROTOCOLS).ordered("created_at", descending=True)
    if status:
        query = query.where("status", "==", status)
    if owner_id:
        query = query.where("owner_id", "==", owner_id)
    await stream_query(websocket, store, query)


@router.websocket("/protocols/{protocol_id}/documents")
async def ws_documents(websocket: WebSocket, protocol_id: str, store: RecordStore = Depends(get_store)):
    await stream_query(websocket, store, collection(paths.documents(protocol_id)).ordered("created_at"))


@router.websocket("/protocols/{protocol_id}/assignments")
async def ws_assignments(websocket: WebSocket, protocol_id: str, store: RecordStore = Depends(get_store)):
    await stream_query(websocket, store, collection(paths.assignments(protocol_id)).ordered("assigned_at"))
