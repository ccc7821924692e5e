import logging

from cartculus.models import Player, Room


log = logging.getLogger(__name__)

# Points for the 1st, 2nd, 3rd and 4th award of a round; every later award is worth TAIL_AWARD
AWARD_ORDER = (10, 7, 5, 3)
TAIL_AWARD = 1


def awards_this_round(room: Room) -> int:
    """Number of scoring events already handed out in the current round."""
    return sum(p.solved_count for p in room.players.values()) + room.departed_solves


def next_award(room: Room) -> int:
    """Points the next scoring event of this round is worth.

    Earlier finishers earn more: 10, 7, 5, 3, then 1 for everyone after.
    """
    n = awards_this_round(room)
    return AWARD_ORDER[n] if n < len(AWARD_ORDER) else TAIL_AWARD


def award(room: Room, player: Player) -> int:
    """Credit ``player`` with the next award and count it against the round."""
    points = next_award(room)
    room.scores[player.id] = room.scores.get(player.id, 0) + points
    player.solved_count += 1
    log.info(f"[score] room={room.id} round={room.round_number} player={player.id} points={points} total={room.scores[player.id]}")
    return points
