"""Room domain services: dealing, scoring, round lifecycle and challenge timers.

This package holds the in-memory game core that socket handlers and HTTP
routes call into, keeping transport concerns separated from the room rules.
"""

from .challenges import ChallengeResult, ChallengeTimer
from .deck import InsufficientCardsError, build_deck, deal_round
from .lifecycle import RoundLifecycle, mark_round_finished, mark_waiting
from .orchestrator import RoomOrchestrator
from .scheduler import BackgroundScheduler, ManualScheduler, TimerHandle
from .scoring import award, next_award
from .store import RoomStore
