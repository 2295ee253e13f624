from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.realtime_hub import RealtimeHub

logger = structlog.get_logger(__name__)

router = APIRouter(tags=['realtime'])

ACKS = {
    'subscribe': 'subscribed',
    'unsubscribe': 'unsubscribed',
    'subscribe_role': 'role_subscribed',
    'unsubscribe_role': 'role_unsubscribed',
}


def _as_report_id(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


async def handle_message(hub: RealtimeHub, ws: WebSocket, message: dict) -> dict:
    action = message.get('action')
    if action in {'subscribe', 'unsubscribe'}:
        report_id = _as_report_id(message.get('report_id'))
        if report_id is None:
            return {'event': 'error', 'data': {'detail': 'report_id must be an integer'}}
        if action == 'subscribe':
            await hub.subscribe_report(ws, report_id)
        else:
            await hub.unsubscribe_report(ws, report_id)
        return {'event': ACKS[action], 'data': {'report_id': report_id}}

    if action in {'subscribe_role', 'unsubscribe_role'}:
        role = message.get('role')
        if not isinstance(role, str) or not role.strip():
            return {'event': 'error', 'data': {'detail': 'role is required'}}
        if action == 'subscribe_role':
            await hub.subscribe_role(ws, role)
        else:
            await hub.unsubscribe_role(ws, role)
        return {'event': ACKS[action], 'data': {'role': role.strip().lower()}}

    return {'event': 'error', 'data': {'detail': f'Unknown action: {action}'}}


@router.websocket('/ws')
async def report_updates(websocket: WebSocket):
    hub: RealtimeHub = websocket.app.state.hub
    await websocket.accept()
    await hub.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text == 'ping':
                await websocket.send_text('pong')
                continue
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                await websocket.send_json({'event': 'error', 'data': {'detail': 'Invalid JSON'}})
                continue
            if not isinstance(message, dict):
                await websocket.send_json({'event': 'error', 'data': {'detail': 'Expected an object'}})
                continue
            await websocket.send_json(await handle_message(hub, websocket, message))
    except WebSocketDisconnect as exc:
        logger.debug('realtime_disconnected', code=exc.code)
    finally:
        await hub.disconnect(websocket)
