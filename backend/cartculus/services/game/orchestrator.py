import logging
import random
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from cartculus.models import Challenge, ChallengeKind, Deal, FinishedStatus, Player, Room
from .challenges import ChallengeTimer
from .deck import MAX_PLAYERS, InsufficientCardsError
from .lifecycle import RoundLifecycle, mark_round_finished
from .scheduler import Scheduler
from .scoring import award
from .store import RoomStore


log = logging.getLogger(__name__)

# emit(event, payload, to=None); ``to`` is a room id, a player id, or None for everyone
Emit = Callable[..., None]


class RoomOrchestrator:
    """Entry point for every inbound room event.

    Each public method takes the room's lock for its whole duration, mutates
    the room through the lifecycle/challenge services and emits the resulting
    public state. Invalid or late actions return None/False and emit nothing.
    """

    def __init__(
        self,
        store: RoomStore,
        emit: Emit,
        scheduler: Scheduler,
        no_solution_duration: float = 30,
        reveal_duration: float = 30,
        advance_delay: float = 1.5,
        deal_load_timeout: float = 8,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.emit = emit
        self.scheduler = scheduler
        self.deal_load_timeout = deal_load_timeout
        self.lifecycle = RoundLifecycle(scheduler, advance_delay, rng)
        self.challenges = ChallengeTimer(scheduler, no_solution_duration, reveal_duration)

    @classmethod
    def from_config(cls, config, store: RoomStore, emit: Emit, scheduler: Scheduler, rng=None) -> 'RoomOrchestrator':
        return cls(
            store,
            emit,
            scheduler,
            no_solution_duration=config.get('NO_SOLUTION_DURATION_SEC', 30),
            reveal_duration=config.get('REVEAL_DURATION_SEC', 30),
            advance_delay=config.get('ROUND_ADVANCE_DELAY_SEC', 1.5),
            deal_load_timeout=config.get('DEAL_LOAD_TIMEOUT_SEC', 8),
            rng=rng,
        )

    def durations(self) -> Dict[str, float]:
        return {
            'no_solution': self.challenges.durations[ChallengeKind.NO_SOLUTION],
            'reveal': self.challenges.durations[ChallengeKind.REVEAL],
            'round_advance': self.lifecycle.advance_delay,
            'deal_load': self.deal_load_timeout,
        }

    @contextmanager
    def _locked(self, room_id: str) -> Iterator[Optional[Room]]:
        room = self.store.get(room_id)
        if room is None:
            yield None
            return
        with room.lock:
            # the room may have been deleted while we waited for its lock
            yield room if self.store.get(room_id) is room else None

    # ---- directory ----

    def list_rooms(self) -> List[dict]:
        return self.store.list_rooms()

    def room_state(self, room_id: str) -> Optional[dict]:
        with self._locked(room_id) as room:
            return room.to_dict() if room else None

    # ---- membership ----

    def join_room(
        self, room_id: str, player_id: str, player_name: str, room_name: Optional[str] = None
    ) -> Optional[Dict[str, str]]:
        """Add a player to a room, creating it on first join. Returns None when the room is full."""
        while True:
            room = self.store.ensure(room_id)
            with room.lock:
                if self.store.get(room_id) is not room:
                    continue
                if player_id not in room.players and len(room.players) >= MAX_PLAYERS:
                    log.warning(f"[join-rejected] room={room_id} player={player_id} room full ({MAX_PLAYERS})")
                    return None
                player = self.store.add_player(room, player_id, player_name, room_name)
                log.info(f"[join] room={room_id} player={player_id} name={player_name} active={player.is_active_in_round}")
                self._broadcast_lobby(room)
                self._broadcast_rooms()
                self._sync_joiner(room, player)
                return {'player_id': player.id, 'name': player.name}

    def leave_room(self, room_id: str, player_id: str) -> bool:
        with self._locked(room_id) as room:
            if room is None or player_id not in room.players:
                return False
            challenge = room.challenge
            origin_left = challenge is not None and challenge.origin_player_id == player_id
            if origin_left:
                self.challenges.cancel(room)
                self.emit('challenge_update', {**challenge.to_dict(), 'cancelled': True}, to=room.id)

            deleted = self.store.remove_player(room, player_id)
            log.info(f"[leave] room={room_id} player={player_id} room_deleted={deleted}")
            if deleted:
                self._broadcast_rooms()
                return True

            if origin_left and challenge.kind == ChallengeKind.NO_SOLUTION:
                self._restore_hands(room, player_id)
            self._broadcast_lobby(room)
            self._broadcast_rooms()
            if not origin_left and room.challenge is challenge and challenge is not None:
                challenge.votes.discard(player_id)
                if self.challenges.votes_complete(room):
                    self._finish_challenge(room, challenge, expired=False)
            self._check_loaded(room)
            self._reconcile(room)
            return True

    def disconnect(self, player_id: str) -> List[str]:
        """Drop a connection from every room it belongs to."""
        room_ids = self.store.rooms_for(player_id)
        for room_id in room_ids:
            self.leave_room(room_id, player_id)
        return room_ids

    # ---- rounds ----

    def start_round(self, room_id: str, player_id: str) -> Optional[Deal]:
        with self._locked(room_id) as room:
            if room is None or room.host_id != player_id:
                return None
            return self._deal(room)

    def request_reshuffle(self, room_id: str, player_id: str) -> Optional[Deal]:
        with self._locked(room_id) as room:
            if room is None or player_id not in room.players:
                return None
            return self._deal(room)

    def deal_loaded(self, room_id: str, player_id: str) -> bool:
        with self._locked(room_id) as room:
            if room is None or room.loaded is None or player_id not in room.players:
                return False
            room.loaded.add(player_id)
            self._check_loaded(room)
            return True

    def declare_finish(self, room_id: str, player_id: str, evidence: Any = None) -> Optional[int]:
        """A player reports a solution. The evidence is passed through unchecked."""
        with self._locked(room_id) as room:
            if room is None or room.deal is None:
                return None
            player = room.players.get(player_id)
            if player is None:
                return None
            log.debug(f"[finish] room={room.id} player={player_id} evidence={evidence!r}")
            challenge = room.challenge
            if challenge is not None and challenge.origin_player_id != player_id:
                return self._solve_challenge(room, player, challenge)

            points = self.lifecycle.declare_finish(room, player)
            if points is None:
                return None
            if challenge is not None:
                # the origin solved their own hand after all
                self.challenges.cancel(room)
                self.emit('challenge_update', {
                    'kind': challenge.kind.value,
                    'origin_player_id': challenge.origin_player_id,
                    'skipped': False,
                    'resolved_by': player.id,
                }, to=room.id)
                if challenge.kind == ChallengeKind.NO_SOLUTION:
                    self._restore_hands(room, player.id)
            self._broadcast_score(room, player.id, points, 'win')
            self._broadcast_lobby(room)
            self._reconcile(room)
            return points

    # ---- challenges ----

    def declare_no_solution(self, room_id: str, player_id: str) -> Optional[Challenge]:
        with self._locked(room_id) as room:
            if room is None or room.deal is None or room.challenge is not None:
                return None
            player = room.players.get(player_id)
            if (
                player is None
                or not player.is_active_in_round
                or player.round_finished
                or player.finished_status != FinishedStatus.NONE
            ):
                return None
            challenge = self.challenges.start(room, ChallengeKind.NO_SOLUTION, player.id, self._on_challenge_expired)
            if challenge is None:
                return None
            self.emit('challenge_update', challenge.to_dict(), to=room.id)
            self._broadcast_lobby(room)
            return challenge

    def vote_skip(self, room_id: str, player_id: str, origin_player_id: Optional[str] = None) -> bool:
        with self._locked(room_id) as room:
            if room is None or room.challenge is None:
                return False
            challenge = room.challenge
            if origin_player_id is not None and challenge.origin_player_id != origin_player_id:
                return False
            if not self.challenges.vote(room, player_id):
                return False
            self.emit('challenge_update', challenge.to_dict(), to=room.id)
            if self.challenges.votes_complete(room):
                self._finish_challenge(room, challenge, expired=False)
            return True

    def _on_challenge_expired(self, room: Room, challenge: Challenge) -> None:
        with room.lock:
            log.info(f"[timer-fire] room={room.id} kind={challenge.kind.value} origin={challenge.origin_player_id}")
            if self.store.get(room.id) is not room or not self.challenges.is_current(room, challenge):
                log.info(f"[timer-abort] room={room.id} kind={challenge.kind.value} challenge already closed")
                return
            self._finish_challenge(room, challenge, expired=True)

    def _finish_challenge(self, room: Room, challenge: Challenge, expired: bool) -> None:
        result = self.challenges.resolve(room, challenge, expired)
        self.emit('challenge_update', result.payload, to=room.id)
        if challenge.kind == ChallengeKind.NO_SOLUTION:
            if result.awarded_to is not None:
                reason = 'no_solution_timeout' if expired else 'no_solution_skip'
                self._broadcast_score(room, result.awarded_to, result.points, reason)
            self._restore_hands(room, challenge.origin_player_id)
            self._broadcast_lobby(room)
            self._reconcile(room)
        else:
            # nobody solved the exposed hand: no points, straight to the next deal
            self._broadcast_lobby(room)
            self._deal(room)

    def _solve_challenge(self, room: Room, solver: Player, challenge: Challenge) -> Optional[int]:
        """Someone other than the origin solved the exposed hand."""
        if not solver.is_active_in_round:
            return None
        self.challenges.cancel(room)
        origin = room.players.get(challenge.origin_player_id)
        if origin is not None:
            mark_round_finished(origin)
        points = award(room, solver)
        if challenge.kind == ChallengeKind.NO_SOLUTION:
            reason = 'no_solution_challenge'
        else:
            reason = 'reveal_challenge'
        self.emit('challenge_update', {
            'kind': challenge.kind.value,
            'origin_player_id': challenge.origin_player_id,
            'skipped': False,
            'resolved_by': solver.id,
        }, to=room.id)
        self._broadcast_score(room, solver.id, points, reason)
        if challenge.kind == ChallengeKind.NO_SOLUTION:
            self._restore_hands(room, challenge.origin_player_id)
        self._broadcast_lobby(room)
        self._reconcile(room)
        return points

    def _start_reveal(self, room: Room, survivor: Player) -> Optional[Challenge]:
        challenge = self.challenges.start(room, ChallengeKind.REVEAL, survivor.id, self._on_challenge_expired)
        if challenge is not None:
            self.emit('challenge_update', challenge.to_dict(), to=room.id)
            self._broadcast_lobby(room)
        return challenge

    def _reconcile(self, room: Room) -> None:
        """Re-check the round after anything that can finish a player."""
        if self.lifecycle.schedule_advance(room, self._deal):
            return
        if room.challenge is not None:
            return
        # a reveal only follows someone finishing, not the round simply shrinking
        if not any(p.round_finished for p in room.active_players()):
            return
        survivor = self.lifecycle.single_survivor(room)
        if survivor is not None:
            self._start_reveal(room, survivor)

    # ---- dealing ----

    def _deal(self, room: Room) -> Optional[Deal]:
        try:
            deal = self.lifecycle.deal(room)
        except InsufficientCardsError as exc:
            log.warning(f"[deal-rejected] room={room.id} {exc}")
            return None
        stale = self.challenges.cancel(room)
        if stale is not None:
            self.emit('challenge_update', {**stale.to_dict(), 'cancelled': True}, to=room.id)
        self._cancel_loading(room)

        room.loaded = set()
        for player_id in room.players:
            self.emit('dealt', {
                'room_id': room.id,
                'round_number': room.round_number,
                'hand': [c.to_dict() for c in deal.hand_for(player_id)],
                'target': deal.target,
            }, to=player_id)
        self.emit('pending_status', {'loaded_count': 0, 'total': len(room.players)}, to=room.id)
        room.loading_handle = self.scheduler.call_later(
            self.deal_load_timeout, self._on_loading_timeout, room, room.round_number
        )
        self._broadcast_lobby(room)
        return deal

    def _check_loaded(self, room: Room) -> None:
        if room.loaded is None:
            return
        members = set(room.players)
        if members <= room.loaded:
            self._reveal_round(room)
        else:
            self.emit('pending_status', {
                'loaded_count': len(room.loaded & members),
                'total': len(members),
            }, to=room.id)

    def _on_loading_timeout(self, room: Room, expected_round: int) -> None:
        with room.lock:
            if self.store.get(room.id) is not room or room.loaded is None or room.round_number != expected_round:
                log.info(f"[timer-abort] room={room.id} kind=deal_load round={expected_round}")
                return
            room.loading_handle = None
            self._reveal_round(room)

    def _reveal_round(self, room: Room) -> None:
        self._cancel_loading(room)
        self.emit('round_revealed', {
            'room_id': room.id,
            'round_number': room.round_number,
            **room.deal.to_dict(),
        }, to=room.id)
        self._broadcast_lobby(room)

    def _cancel_loading(self, room: Room) -> None:
        if room.loading_handle is not None:
            room.loading_handle.cancel()
            room.loading_handle = None
        room.loaded = None

    # ---- outbound ----

    def _state_for(self, room: Room, player_id: str) -> dict:
        return {
            'room_id': room.id,
            'round_number': room.round_number,
            'cards': [c.to_dict() for c in room.deal.hand_for(player_id)] if room.deal else [],
            'target': room.deal.target if room.deal else None,
            'scores': dict(room.scores),
            'challenge': room.challenge.to_dict() if room.challenge else None,
        }

    def _sync_joiner(self, room: Room, player: Player) -> None:
        if room.deal is None:
            return
        if room.loaded is not None:
            self.emit('dealt', {
                'room_id': room.id,
                'round_number': room.round_number,
                'hand': [c.to_dict() for c in room.deal.hand_for(player.id)],
                'target': room.deal.target,
            }, to=player.id)
        else:
            self.emit('state_sync', self._state_for(room, player.id), to=player.id)

    def _restore_hands(self, room: Room, origin_player_id: str) -> None:
        """Give everyone but the origin their own cards back after a no-solution window."""
        for player in room.players.values():
            if player.id == origin_player_id or not player.is_active_in_round:
                continue
            self.emit('state_sync', self._state_for(room, player.id), to=player.id)

    def _broadcast_score(self, room: Room, awarded_to: str, points: int, reason: str) -> None:
        self.emit('score_update', {
            'scores': dict(room.scores),
            'awarded_to': awarded_to,
            'points': points,
            'reason': reason,
        }, to=room.id)

    def _broadcast_lobby(self, room: Room) -> None:
        self.emit('lobby_update', room.to_dict(), to=room.id)

    def _broadcast_rooms(self) -> None:
        self.emit('rooms_list', self.store.list_rooms())
