"""No-solution and reveal challenge windows.

Both kinds share one shape: an origin player, a deadline, and a set of skip
votes from the other active players. Only one challenge may be live per room;
the room's ``challenge`` slot is the single source of truth and every path
that makes a challenge moot cancels its timer before touching anything else.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from cartculus.models import Challenge, ChallengeKind, FinishedStatus, Room
from .lifecycle import mark_round_finished, mark_waiting
from .scheduler import Scheduler
from .scoring import award


log = logging.getLogger(__name__)


@dataclass
class ChallengeResult:
    challenge: Challenge
    awarded_to: Optional[str] = None
    points: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)


class ChallengeTimer:
    def __init__(self, scheduler: Scheduler, no_solution_duration: float = 30, reveal_duration: float = 30):
        self.scheduler = scheduler
        self.durations = {
            ChallengeKind.NO_SOLUTION: no_solution_duration,
            ChallengeKind.REVEAL: reveal_duration,
        }

    def start(
        self,
        room: Room,
        kind: ChallengeKind,
        origin_player_id: str,
        on_expire: Callable[[Room, Challenge], None],
    ) -> Optional[Challenge]:
        """Open a challenge window for ``origin_player_id``.

        Starting the same kind for the same origin again is a no-op. Any other
        leftover challenge is cancelled first so timers never stack.
        """
        origin = room.players.get(origin_player_id)
        if origin is None or room.deal is None:
            return None
        current = room.challenge
        if current is not None:
            if current.kind == kind and current.origin_player_id == origin_player_id:
                return None
            self.cancel(room)

        duration = self.durations[kind]
        challenge = Challenge(
            kind=kind,
            origin_player_id=origin_player_id,
            expires_at=self.scheduler.now() + duration,
            origin_hand=room.deal.hand_for(origin_player_id),
        )
        if kind == ChallengeKind.NO_SOLUTION:
            mark_waiting(origin)
        room.challenge = challenge
        challenge.handle = self.scheduler.call_later(duration, on_expire, room, challenge)
        log.info(
            f"[timer-set] room={room.id} kind={kind.value} origin={origin_player_id} duration={duration}s deadline={challenge.expires_at}"
        )
        return challenge

    def is_current(self, room: Room, challenge: Challenge) -> bool:
        return room.challenge is challenge and not challenge.handle.cancelled

    def cancel(self, room: Room) -> Optional[Challenge]:
        """Clear the room's challenge slot. Safe to call when nothing is active."""
        challenge = room.challenge
        if challenge is None:
            return None
        if challenge.handle is not None:
            challenge.handle.cancel()
        room.challenge = None
        log.info(f"[challenge-cancel] room={room.id} kind={challenge.kind.value} origin={challenge.origin_player_id}")
        return challenge

    def eligible_voters(self, room: Room, challenge: Challenge) -> Set[str]:
        return {p.id for p in room.active_players() if p.id != challenge.origin_player_id}

    def vote(self, room: Room, voter_id: str) -> bool:
        """Record one skip vote. Returns False when the vote is not accepted."""
        challenge = room.challenge
        if challenge is None or voter_id in challenge.votes:
            return False
        if voter_id not in self.eligible_voters(room, challenge):
            return False
        challenge.votes.add(voter_id)
        return True

    def votes_complete(self, room: Room) -> bool:
        challenge = room.challenge
        if challenge is None:
            return False
        return self.eligible_voters(room, challenge) <= challenge.votes

    def resolve(self, room: Room, challenge: Challenge, expired: bool) -> ChallengeResult:
        """Close ``challenge`` by timeout (``expired``) or by unanimous skip.

        No-solution: the origin's claim stands, so they take the next award.
        Reveal: nobody solved the exposed hand, so nobody scores.
        Either way the origin is done for the round.
        """
        if challenge.handle is not None:
            challenge.handle.cancel()
        if room.challenge is challenge:
            room.challenge = None

        result = ChallengeResult(challenge=challenge)
        origin = room.players.get(challenge.origin_player_id)
        if origin is not None:
            if challenge.kind == ChallengeKind.NO_SOLUTION:
                result.points = award(room, origin)
                result.awarded_to = origin.id
                origin.finished_status = FinishedStatus.SOLVED
            mark_round_finished(origin)

        result.payload = {
            'kind': challenge.kind.value,
            'origin_player_id': challenge.origin_player_id,
            'origin_hand': [c.to_dict() for c in challenge.origin_hand],
            # a skipped reveal is reported as expired too: the window is over with no solver
            'expired': expired or challenge.kind == ChallengeKind.REVEAL,
            'skipped': not expired,
        }
        log.info(
            f"[challenge-resolved] room={room.id} kind={challenge.kind.value} origin={challenge.origin_player_id} "
            f"expired={expired} awarded_to={result.awarded_to} points={result.points}"
        )
        return result
