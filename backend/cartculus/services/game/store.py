import logging
import threading
from typing import Dict, List, Optional

from cartculus.models import FinishedStatus, Player, Room


log = logging.getLogger(__name__)


class RoomStore:
    """In-memory registry of rooms keyed by room id.

    The registry lock only guards the dictionary itself. Everything inside a
    room is mutated while holding that room's own lock; callers that hold a
    room lock may take the registry lock, never the other way round.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def ensure(self, room_id: str) -> Room:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(id=room_id)
                self._rooms[room_id] = room
                log.info(f"[room-created] room={room_id}")
            return room

    def add_player(self, room: Room, player_id: str, name: str, room_name: Optional[str] = None) -> Player:
        """Register a player; someone joining mid-deal sits out until the next round."""
        player = room.players.get(player_id)
        if player is not None:
            player.name = name
        else:
            in_progress = room.deal is not None
            player = Player(
                id=player_id,
                name=name,
                finished_status=FinishedStatus.WAITING if in_progress else FinishedStatus.NONE,
                round_finished=in_progress,
            )
            room.players[player_id] = player
        room.scores.setdefault(player_id, 0)
        if room.host_id is None:
            room.host_id = player_id
        if room_name and not room.name:
            room.name = room_name
        return player

    def remove_player(self, room: Room, player_id: str) -> bool:
        """Remove a player, handing host to someone else. Returns True if the room was deleted."""
        player = room.players.pop(player_id, None)
        if player is None:
            return False
        room.departed_solves += player.solved_count
        if room.loaded is not None:
            room.loaded.discard(player_id)
        if room.host_id == player_id:
            room.host_id = next(iter(room.players), None)
        if not room.players:
            self.discard(room)
            return True
        return False

    def discard(self, room: Room) -> None:
        room.cancel_timers()
        with self._lock:
            if self._rooms.get(room.id) is room:
                del self._rooms[room.id]
                log.info(f"[room-deleted] room={room.id}")

    def rooms_for(self, player_id: str) -> List[str]:
        return [room_id for room_id, room in list(self._rooms.items()) if player_id in room.players]

    def list_rooms(self) -> List[dict]:
        return [room.summary() for room in list(self._rooms.values())]
