import logging
import random
from typing import Callable, Optional

from cartculus.models import Deal, FinishedStatus, Player, Room
from .deck import deal_round
from .scheduler import Scheduler
from .scoring import award


log = logging.getLogger(__name__)


def mark_waiting(player: Player) -> None:
    """Player is parked while a challenge they opened is adjudicated."""
    player.finished_status = FinishedStatus.WAITING


def mark_round_finished(player: Player) -> None:
    player.round_finished = True
    player.finished_status = FinishedStatus.WAITING


class RoundLifecycle:
    """Per-round player flags, the all-waiting auto-advance and the single-survivor check."""

    def __init__(self, scheduler: Scheduler, advance_delay: float = 1.5, rng: Optional[random.Random] = None):
        self.scheduler = scheduler
        self.advance_delay = advance_delay
        self.rng = rng

    def deal(self, room: Room) -> Deal:
        deal = deal_round(room, self.rng)
        self.cancel_advance(room)
        return deal

    def declare_finish(self, room: Room, player: Player) -> Optional[int]:
        """Score a player who finished their own hand. No-op once they are round-finished."""
        if player.round_finished or not player.is_active_in_round:
            return None
        points = award(room, player)
        player.finished_status = FinishedStatus.SOLVED
        mark_round_finished(player)
        return points

    def all_waiting(self, room: Room) -> bool:
        if room.deal is None:
            return False
        return all(p.finished_status == FinishedStatus.WAITING for p in room.active_players())

    def single_survivor(self, room: Room) -> Optional[Player]:
        unfinished = [p for p in room.active_players() if not p.round_finished]
        return unfinished[0] if len(unfinished) == 1 else None

    def schedule_advance(self, room: Room, on_advance: Callable[[Room], None]) -> bool:
        """Deal the next round shortly if every active player is waiting.

        At most one advance is pending per room. The condition is checked
        again when the timer fires.
        """
        if room.advance_handle is not None or room.challenge is not None:
            return False
        if not self.all_waiting(room):
            return False
        room.advance_handle = self.scheduler.call_later(
            self.advance_delay, self._fire_advance, room, room.round_number, on_advance
        )
        log.info(f"[timer-set] room={room.id} kind=advance round={room.round_number} duration={self.advance_delay}s")
        return True

    def cancel_advance(self, room: Room) -> None:
        if room.advance_handle is not None:
            room.advance_handle.cancel()
            room.advance_handle = None

    def _fire_advance(self, room: Room, expected_round: int, on_advance: Callable[[Room], None]) -> None:
        with room.lock:
            log.info(
                f"[timer-fire] room={room.id} kind=advance expected_round={expected_round} actual_round={room.round_number}"
            )
            if room.advance_handle is None or room.round_number != expected_round:
                log.info(f"[timer-abort] room={room.id} kind=advance stale round")
                return
            room.advance_handle = None
            if room.challenge is not None or not self.all_waiting(room):
                log.info(f"[timer-abort] room={room.id} kind=advance players no longer all waiting")
                return
            on_advance(room)
