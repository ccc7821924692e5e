from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from cartculus import socketio, EXTENSION_KEY
from cartculus.services.game import RoomOrchestrator
from typing import Any, Dict, Optional


def _rooms() -> RoomOrchestrator:
    return current_app.extensions[EXTENSION_KEY]


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _room_id(data: Optional[Dict[str, Any]]) -> Optional[str]:
    room_id = (data or {}).get('room_id')
    if not room_id:
        emit('error', {'message': 'room_id is required'})
        return None
    return str(room_id)


def handle_connect():
    emit('connected', {'message': 'Connected to /ws', 'player_id': _get_sid()})


def handle_disconnect(reason=None):
    # Leaving every room this connection was in is the same path as an explicit leave
    _rooms().disconnect(_get_sid())


def handle_list_rooms(data=None):
    emit('rooms_list', _rooms().list_rooms())


def handle_join_room(data):
    room_id = _room_id(data)
    if not room_id:
        return
    player_name = (data or {}).get('player_name')
    if not player_name:
        emit('error', {'message': 'player_name is required'})
        return
    # Join the Socket.IO room first so the joiner also receives the lobby broadcast
    join_room(room_id)
    player = _rooms().join_room(room_id, _get_sid(), player_name, (data or {}).get('room_name'))
    if player is None:
        leave_room(room_id)
        emit('error', {'message': 'Room is full'})
        return
    emit('joined', {'room': room_id, **player})


def handle_leave_room(data):
    room_id = _room_id(data)
    if not room_id:
        return
    _rooms().leave_room(room_id, _get_sid())
    leave_room(room_id)
    emit('left', {'room': room_id})


def handle_start_round(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().start_round(room_id, _get_sid())


def handle_request_reshuffle(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().request_reshuffle(room_id, _get_sid())


def handle_deal_loaded(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().deal_loaded(room_id, _get_sid())


def handle_declare_finish(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().declare_finish(room_id, _get_sid(), (data or {}).get('solution'))


def handle_declare_no_solution(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().declare_no_solution(room_id, _get_sid())


def handle_skip_vote(data):
    room_id = _room_id(data)
    if room_id:
        _rooms().vote_skip(room_id, _get_sid(), (data or {}).get('origin_player_id'))


def handle_ping(data):
    emit('pong', data or {})


HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'list_rooms': handle_list_rooms,
    'join_room': handle_join_room,
    'leave_room': handle_leave_room,
    'start_round': handle_start_round,
    'request_reshuffle': handle_request_reshuffle,
    'deal_loaded': handle_deal_loaded,
    'declare_finish': handle_declare_finish,
    'declare_no_solution': handle_declare_no_solution,
    'skip_vote': handle_skip_vote,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for event, handler in HANDLERS.items():
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        for event, handler in HANDLERS.items():
            socketio.on_event(event, handler, namespace='/')
