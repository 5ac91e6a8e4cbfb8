# marketplace/extensions.py
from flask_socketio import SocketIO

# Bound to the app in main.py; routes import it to emit events.
socketio = SocketIO()


def store_room(store_id) -> str:
    return f"store:{store_id}"
