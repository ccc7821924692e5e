import os
import random
import sys
import pytest

# Ensure the backend root (containing the `cartculus` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cartculus import create_app, socketio
from cartculus.services.game import ManualScheduler, RoomOrchestrator, RoomStore


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    NO_SOLUTION_DURATION_SEC = 30
    REVEAL_DURATION_SEC = 30
    ROUND_ADVANCE_DELAY_SEC = 1.5
    DEAL_LOAD_TIMEOUT_SEC = 8
    ALLOWED_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'DEBUG'


class EmitRecorder:
    """Stands in for the Socket.IO emitter and keeps every outbound event."""

    def __init__(self):
        self.events = []

    def __call__(self, event, payload, to=None):
        self.events.append((event, payload, to))

    def named(self, event, to=None):
        return [p for e, p, t in self.events if e == event and (to is None or t == to)]

    def last(self, event, to=None):
        found = self.named(event, to)
        return found[-1] if found else None

    def clear(self):
        self.events.clear()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def emitter():
    return EmitRecorder()


@pytest.fixture()
def store():
    return RoomStore()


@pytest.fixture()
def orchestrator(store, emitter, scheduler):
    return RoomOrchestrator(store, emitter, scheduler, rng=random.Random(7))


@pytest.fixture()
def table(orchestrator, emitter):
    """Room 'r1' with players a, b, c (a hosts) and a dealt, fully loaded round."""
    for pid in ('a', 'b', 'c'):
        orchestrator.join_room('r1', pid, pid.upper())
    orchestrator.start_round('r1', 'a')
    for pid in ('a', 'b', 'c'):
        orchestrator.deal_loaded('r1', pid)
    emitter.clear()
    return orchestrator.store.get('r1')


@pytest.fixture()
def flask_app(scheduler):
    application = create_app(TestConfig, scheduler=scheduler, rng=random.Random(7))
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
