from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from cartculus.config import Config
from cartculus.services.game import BackgroundScheduler, RoomOrchestrator, RoomStore

socketio = SocketIO(async_mode=None)

EXTENSION_KEY = 'cartculus.rooms'


def _emit(event, payload, to=None):
    # Use socketio.emit since this may be called from a background task
    socketio.emit(event, payload, to=to, namespace='/ws')


def create_app(config_class=Config, scheduler=None, rng=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('ALLOWED_ORIGINS') or '*'
    CORS(flask_app, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One room registry per application; timers default to Socket.IO background tasks
    flask_app.extensions[EXTENSION_KEY] = RoomOrchestrator.from_config(
        flask_app.config,
        RoomStore(),
        emit=_emit,
        scheduler=scheduler or BackgroundScheduler(socketio),
        rng=rng,
    )

    from cartculus.routes import main
    flask_app.register_blueprint(main)

    from cartculus.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    # Register Socket.IO event handlers
    from cartculus.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    return flask_app
