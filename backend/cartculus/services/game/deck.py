import logging
import random
from typing import List, Optional

from cartculus.models import Card, Deal, FinishedStatus, Room


log = logging.getLogger(__name__)

RANKS = range(1, 14)
COPIES_PER_RANK = 4
DECK_SIZE = len(RANKS) * COPIES_PER_RANK
HAND_SIZE = 4
# Largest room one deck can serve: a hand each plus the target
MAX_PLAYERS = (DECK_SIZE - 1) // HAND_SIZE


class InsufficientCardsError(Exception):
    """Raised when a room has more players than one deck can serve."""

    def __init__(self, player_count: int):
        self.player_count = player_count
        self.cards_needed = HAND_SIZE * player_count + 1
        super().__init__(
            f"Cannot deal {player_count} hands: need {self.cards_needed} cards, deck has {DECK_SIZE}"
        )


def build_deck(rng: Optional[random.Random] = None) -> List[int]:
    """Return the 52 card values (1..13, four copies each) in shuffled order."""
    deck = [value for value in RANKS for _ in range(COPIES_PER_RANK)]
    (rng or random).shuffle(deck)
    return deck


def deal_round(room: Room, rng: Optional[random.Random] = None) -> Deal:
    """Deal a new round to everyone currently in the room.

    The target is drawn first so it is removed from the deck before any hand is
    dealt. Every present player becomes active for the round with fresh flags.
    Raises InsufficientCardsError without touching the room when the deck is
    too small.
    """
    player_ids = list(room.players)
    if HAND_SIZE * len(player_ids) + 1 > DECK_SIZE:
        raise InsufficientCardsError(len(player_ids))

    deck = build_deck(rng)
    target = deck.pop()
    round_number = room.round_number + 1
    hands = {}
    dealt = 0
    for player_id in player_ids:
        hand = []
        for _ in range(HAND_SIZE):
            hand.append(Card(id=f"r{round_number}-c{dealt}", value=deck.pop()))
            dealt += 1
        hands[player_id] = hand

    for player in room.players.values():
        player.finished_status = FinishedStatus.NONE
        player.round_finished = False
        player.solved_count = 0
        player.is_active_in_round = True

    room.round_number = round_number
    room.departed_solves = 0
    room.deal = Deal(target=target, hands=hands)
    log.info(f"[round-dealt] room={room.id} round={round_number} players={len(player_ids)} target={target}")
    return room.deal
