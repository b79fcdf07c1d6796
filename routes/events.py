from flask_socketio import join_room

from extensions import socketio


@socketio.on('join')
def on_join(data):
    """Subscribes a client to `merchant_<id>` or `order_<orderNumber>` updates."""
    room = (data or {}).get('room')
    if room and (room.startswith('merchant_') or room.startswith('order_')):
        join_room(room)
