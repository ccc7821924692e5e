import random

from cartculus.models import FinishedStatus, Player, Room
from cartculus.services.game import RoundLifecycle


def _dealt_room(lifecycle, *ids):
    room = Room(id='life-room')
    for pid in ids:
        room.players[pid] = Player(id=pid, name=pid.upper())
    lifecycle.deal(room)
    return room


def test_declare_finish_awards_once(scheduler):
    lifecycle = RoundLifecycle(scheduler, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a', 'b')
    player = room.players['a']

    assert lifecycle.declare_finish(room, player) == 10
    # solved is transient; a round-finished player always reads as waiting
    assert player.finished_status == FinishedStatus.WAITING
    assert player.round_finished is True
    assert player.solved_count == 1
    # a second claim in the same round is ignored
    assert lifecycle.declare_finish(room, player) is None
    assert room.scores['a'] == 10


def test_inactive_player_cannot_finish(scheduler):
    lifecycle = RoundLifecycle(scheduler, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a')
    late = Player(id='z', name='Z')
    room.players['z'] = late
    assert lifecycle.declare_finish(room, late) is None
    assert 'z' not in room.scores


def test_all_waiting_advance_fires_exactly_once(scheduler):
    lifecycle = RoundLifecycle(scheduler, advance_delay=1.5, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a', 'b')
    dealt = []

    def on_advance(r):
        dealt.append(r.round_number)
        lifecycle.deal(r)

    for pid in ('a', 'b'):
        lifecycle.declare_finish(room, room.players[pid])
    assert lifecycle.schedule_advance(room, on_advance) is True
    # already pending: debounced
    assert lifecycle.schedule_advance(room, on_advance) is False

    scheduler.advance(1.4)
    assert dealt == []
    scheduler.advance(0.2)
    assert dealt == [1]
    assert room.round_number == 2
    scheduler.advance(10)
    assert dealt == [1]


def test_advance_not_scheduled_while_someone_is_playing(scheduler):
    lifecycle = RoundLifecycle(scheduler, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a', 'b')
    lifecycle.declare_finish(room, room.players['a'])
    assert lifecycle.schedule_advance(room, lambda r: None) is False
    assert scheduler.pending() == 0


def test_manual_deal_makes_pending_advance_stale(scheduler):
    lifecycle = RoundLifecycle(scheduler, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a')
    calls = []
    lifecycle.declare_finish(room, room.players['a'])
    lifecycle.schedule_advance(room, calls.append)

    lifecycle.deal(room)
    scheduler.advance(5)
    assert calls == []
    assert room.advance_handle is None


def test_single_survivor(scheduler):
    lifecycle = RoundLifecycle(scheduler, rng=random.Random(1))
    room = _dealt_room(lifecycle, 'a', 'b', 'c')
    assert lifecycle.single_survivor(room) is None

    lifecycle.declare_finish(room, room.players['a'])
    assert lifecycle.single_survivor(room) is None
    lifecycle.declare_finish(room, room.players['b'])
    assert lifecycle.single_survivor(room) is room.players['c']
