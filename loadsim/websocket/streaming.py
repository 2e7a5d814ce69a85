"""
Live metrics WebSocket streaming.

Pushes every broadcast metric event to the viewer (through its session) and
serves the viewer's requests: ad-hoc query execution, history lookups and
stats snapshots.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket

from loadsim.api.submissions import run_submission
from loadsim.websocket.helpers import _clean_str, _parse_variant_dict
from loadsim.websocket.session import ViewerSession

if TYPE_CHECKING:
    from loadsim.core.services import Services

logger = logging.getLogger(__name__)


async def _execute_action(
    session: ViewerSession, services: "Services", query: str
) -> None:
    status_code, body = await run_submission(services, query, viewer_id=session.id)
    try:
        await session.send({"event": "query_result", "status": status_code, **body})
    except Exception as e:
        logger.debug("Could not deliver query result to %s: %s", session.id, e)


async def _handle_message(
    session: ViewerSession,
    services: "Services",
    message: dict[str, Any],
    pending: set[asyncio.Task],
) -> None:
    action = _clean_str(message.get("action"))

    if action == "execute":
        query = _clean_str(message.get("query"))
        if query is None:
            await session.send(
                {"event": "error", "error": "Please enter a SQL query"}
            )
            return
        task = asyncio.create_task(_execute_action(session, services, query))
        pending.add(task)
        task.add_done_callback(pending.discard)
        return

    if action == "history":
        await session.send(
            {
                "event": "history",
                "entries": session.history_view(
                    kind=_clean_str(message.get("kind")),
                    search=_clean_str(message.get("search")),
                ),
            }
        )
        return

    if action == "stats":
        await session.send(
            {"event": "stats", "stats": session.window.stats().to_dict()}
        )
        return

    await session.send({"event": "error", "error": f"Unknown action: {action}"})


async def stream_viewer(websocket: WebSocket, services: "Services") -> None:
    """Run one viewer's session until the client disconnects."""
    session = services.open_session(websocket.send_json)
    pending: set[asyncio.Task] = set()
    try:
        await session.send(
            {
                "event": "connected",
                "viewerId": session.id,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )
        while True:
            msg = await websocket.receive()
            if msg.get("type") == "websocket.disconnect":
                break
            message = _parse_variant_dict(msg.get("text") or msg.get("bytes"))
            if message is None:
                await session.send({"event": "error", "error": "Invalid message"})
                continue
            await _handle_message(session, services, message, pending)
    finally:
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await services.close_session(session)
        logger.info("Viewer %s disconnected", session.id)
