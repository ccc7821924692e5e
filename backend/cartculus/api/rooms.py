from flask import Blueprint, jsonify, current_app
from cartculus import EXTENSION_KEY


rooms = Blueprint('rooms', __name__)


def _orchestrator():
    return current_app.extensions[EXTENSION_KEY]


@rooms.route('', methods=['GET'])
def list_rooms():
    """Room directory for lobby browsing."""
    return jsonify(_orchestrator().list_rooms())


@rooms.route('/<string:room_id>/state', methods=['GET'])
def get_room_state(room_id):
    orchestrator = _orchestrator()
    payload = orchestrator.room_state(room_id)
    if payload is None:
        return jsonify({'error': 'Room not found'}), 404
    # Include window durations so clients can show countdowns
    payload['durations'] = orchestrator.durations()
    return jsonify(payload)
