from cartculus import EXTENSION_KEY, socketio


def _events(received, name):
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]


def _player_id(received):
    connected = _events(received, 'connected')
    return connected[0]['player_id'] if connected else None


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    # Flush any initial events
    sio_client.get_received('/ws')

    sio_client.emit('join_room', {'room_id': 'ABCD', 'player_name': 'Alice'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    joined = _events(received, 'joined')
    assert joined and joined[0]['room'] == 'ABCD'
    lobby = _events(received, 'lobby_update')
    assert lobby[-1]['players'][0]['name'] == 'Alice'
    assert lobby[-1]['host_id'] == joined[0]['player_id']


def test_join_requires_room_and_name(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'player_name': 'Alice'}, namespace='/ws')
    sio_client.emit('join_room', {'room_id': 'ABCD'}, namespace='/ws')
    errors = _events(sio_client.get_received('/ws'), 'error')
    assert [e['message'] for e in errors] == ['room_id is required', 'player_name is required']


def test_host_starts_round_and_gets_hand(sio_client):
    player_id = _player_id(sio_client.get_received('/ws'))
    sio_client.emit('join_room', {'room_id': 'R1', 'player_name': 'Alice'}, namespace='/ws')
    sio_client.get_received('/ws')

    sio_client.emit('start_round', {'room_id': 'R1'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    dealt = _events(received, 'dealt')
    assert len(dealt) == 1
    assert dealt[0]['round_number'] == 1
    assert len(dealt[0]['hand']) == 4
    assert _events(received, 'pending_status')[0] == {'loaded_count': 0, 'total': 1}

    sio_client.emit('deal_loaded', {'room_id': 'R1'}, namespace='/ws')
    revealed = _events(sio_client.get_received('/ws'), 'round_revealed')
    assert revealed and player_id in revealed[0]['hands']


def test_declare_finish_scores_over_socket(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_room', {'room_id': 'R2', 'player_name': 'Alice'}, namespace='/ws')
    sio_client.emit('start_round', {'room_id': 'R2'}, namespace='/ws')
    sio_client.emit('deal_loaded', {'room_id': 'R2'}, namespace='/ws')
    sio_client.get_received('/ws')

    sio_client.emit('declare_finish', {'room_id': 'R2', 'solution': '13-1'}, namespace='/ws')
    scores = _events(sio_client.get_received('/ws'), 'score_update')
    assert scores[0]['points'] == 10
    assert scores[0]['reason'] == 'win'


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    assert _events(sio_client.get_received('/ws'), 'pong') == [{'t': 1}]


def test_disconnect_leaves_rooms(flask_app, sio_client):
    rooms = flask_app.extensions[EXTENSION_KEY]
    guest = socketio.test_client(flask_app, namespace='/ws')
    guest.emit('join_room', {'room_id': 'R3', 'player_name': 'Bob'}, namespace='/ws')
    sio_client.emit('join_room', {'room_id': 'R3', 'player_name': 'Alice'}, namespace='/ws')
    assert rooms.room_state('R3')['host_id'] != _player_id(sio_client.get_received('/ws'))

    guest.disconnect(namespace='/ws')
    state = rooms.room_state('R3')
    assert [p['name'] for p in state['players']] == ['Alice']

    sio_client.emit('leave_room', {'room_id': 'R3'}, namespace='/ws')
    assert _events(sio_client.get_received('/ws'), 'left') == [{'room': 'R3'}]
    assert rooms.room_state('R3') is None


def test_join_full_room_is_refused(flask_app, sio_client):
    rooms = flask_app.extensions[EXTENSION_KEY]
    for i in range(12):
        rooms.join_room('FULL', f'seat{i}', f'Seat {i}')
    sio_client.get_received('/ws')

    sio_client.emit('join_room', {'room_id': 'FULL', 'player_name': 'Alice'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert _events(received, 'joined') == []
    assert [e['message'] for e in _events(received, 'error')] == ['Room is full']
    assert rooms.room_state('FULL')['players'][-1]['name'] == 'Seat 11'
