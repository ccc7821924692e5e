import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set


class FinishedStatus(str, Enum):
    NONE = 'none'
    WAITING = 'waiting'
    SOLVED = 'solved'


class ChallengeKind(str, Enum):
    NO_SOLUTION = 'no_solution'
    REVEAL = 'reveal'


@dataclass(frozen=True)
class Card:
    id: str
    value: int

    def to_dict(self):
        return {'id': self.id, 'value': self.value}


@dataclass
class Deal:
    """One round's card distribution: a shared target plus a 4-card hand per player."""
    target: int
    hands: Dict[str, List[Card]] = field(default_factory=dict)

    def hand_for(self, player_id: str) -> List[Card]:
        return list(self.hands.get(player_id, []))

    def to_dict(self):
        return {
            'target': self.target,
            'hands': {pid: [c.to_dict() for c in hand] for pid, hand in self.hands.items()},
        }


@dataclass
class Player:
    id: str
    name: str
    finished_status: FinishedStatus = FinishedStatus.NONE
    # True once the player can no longer move this round; implies WAITING
    round_finished: bool = False
    solved_count: int = 0
    # False for players who joined after the current deal
    is_active_in_round: bool = False

    def to_dict(self):
        return {
            'player_id': self.id,
            'name': self.name,
            'finished': self.finished_status != FinishedStatus.NONE,
            'finished_status': self.finished_status.value,
            'round_finished': self.round_finished,
            'solved_count': self.solved_count,
            'active': self.is_active_in_round,
        }


@dataclass
class Challenge:
    """A pending no-solution or reveal window opened by (or for) one origin player."""
    kind: ChallengeKind
    origin_player_id: str
    expires_at: float
    origin_hand: List[Card] = field(default_factory=list)
    votes: Set[str] = field(default_factory=set)
    handle: Optional[object] = field(default=None, repr=False, compare=False)

    def to_dict(self):
        return {
            'kind': self.kind.value,
            'origin_player_id': self.origin_player_id,
            'expires_at': self.expires_at,
            'votes': sorted(self.votes),
            'origin_hand': [c.to_dict() for c in self.origin_hand],
        }


@dataclass(eq=False)
class Room:
    id: str
    name: Optional[str] = None
    host_id: Optional[str] = None
    players: Dict[str, Player] = field(default_factory=dict)
    scores: Dict[str, int] = field(default_factory=dict)
    deal: Optional[Deal] = None
    challenge: Optional[Challenge] = None
    round_number: int = 0
    # Awards this round earned by players who have since left
    departed_solves: int = 0
    advance_handle: Optional[object] = field(default=None, repr=False)
    # Player ids that acknowledged the current deal; None outside the loading phase
    loaded: Optional[Set[str]] = None
    loading_handle: Optional[object] = field(default=None, repr=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def active_players(self) -> List[Player]:
        return [p for p in self.players.values() if p.is_active_in_round]

    def cancel_timers(self) -> None:
        """Cancel every scheduled callback tied to this room."""
        for handle in (
            self.challenge.handle if self.challenge else None,
            self.advance_handle,
            self.loading_handle,
        ):
            if handle is not None:
                handle.cancel()
        self.challenge = None
        self.advance_handle = None
        self.loading_handle = None
        self.loaded = None

    def summary(self):
        return {
            'room_id': self.id,
            'room_name': self.name,
            'host_id': self.host_id,
            'player_count': len(self.players),
        }

    def to_dict(self):
        active = self.active_players()
        return {
            'room_id': self.id,
            'room_name': self.name,
            'host_id': self.host_id,
            'players': [p.to_dict() for p in self.players.values()],
            'scores': dict(self.scores),
            'round_number': self.round_number,
            'active_count': len(active),
            'finished_count': sum(1 for p in active if p.round_finished),
            'challenge': self.challenge.to_dict() if self.challenge else None,
        }
