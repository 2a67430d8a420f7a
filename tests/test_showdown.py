import pytest

from holdem.errors import InvalidShowdownDecision
from holdem.models import ActionType, Round, ShowDecision, TablePhase
from holdem.showdown import ShowdownKind

from .helpers import (
    RecordingOracle,
    act,
    check_down,
    create_engine,
    event_names,
    perform_actions,
    rig_hand,
    start_hand,
)

BOARD = ["Kh", "9s", "4c", "3h", "Jd"]


def play_to_showdown(**kwargs):
    """Player0 folds, Player1 completes the small blind, Player2 checks it down.

    Player1 holds pocket aces, Player2 seven-deuce.
    """
    engine = create_engine(players=3, **kwargs)
    start_hand(engine)
    rig_hand(engine, {"Player1": ["As", "Ad"], "Player2": ["7c", "2d"]}, BOARD)
    perform_actions(
        engine,
        [("Player0", "fold", None), ("Player1", "bet", 20), ("Player2", "bet", 20)],
    )
    check_down(engine)
    assert engine.state.phase == TablePhase.SHOWDOWN
    return engine


def chips(engine):
    return {seat.username: seat.chips for seat in engine.state.seats}


def test_showdown_opens_with_everyone_undecided_and_cards_hidden():
    engine = play_to_showdown()
    showdown = engine.showdown

    assert showdown.awaiting_decisions
    assert showdown.choices() == {"Player1": "undecided", "Player2": "undecided"}
    assert sorted(showdown.pending()) == ["Player1", "Player2"]
    assert engine.state.community and len(engine.state.community) == 5

    payload = showdown.payload()
    assert payload["kind"] == "showdown"
    assert payload["final"] is False
    assert payload["winners"] == []
    assert all(player["holeCards"] == [] for player in payload["showdownPlayers"])

    players = {player["name"]: player for player in engine.snapshot("Player0")["players"]}
    assert players["Player1"]["holeCards"] == []


def test_both_show_best_hand_takes_the_pot():
    engine = play_to_showdown()
    first = engine.showdown.record_decision("Player1", ShowDecision.SHOW)
    assert event_names(first) == ["SHOW_CHOICE"]
    assert engine.state.phase == TablePhase.SHOWDOWN

    events = engine.showdown.record_decision("Player2", ShowDecision.SHOW)
    assert event_names(events) == ["SHOW_CHOICE", "SETTLED"]
    assert events[-1]["winners"] == ["Player1"]
    assert chips(engine) == {"Player0": 1_000, "Player1": 1_020, "Player2": 980}
    assert engine.state.pot == 0
    assert engine.state.phase == TablePhase.REVIEW


def test_nobody_shows_splits_the_pot():
    engine = play_to_showdown()
    engine.showdown.record_decision("Player1", ShowDecision.MUCK)
    events = engine.showdown.record_decision("Player2", ShowDecision.MUCK)

    assert events[-1]["undecided_split"] is True
    assert chips(engine) == {"Player0": 1_000, "Player1": 1_000, "Player2": 1_000}
    assert engine.showdown.payload()["undecidedSplit"] is True


def test_only_showers_compete_for_the_pot():
    engine = play_to_showdown()
    engine.showdown.record_decision("Player1", ShowDecision.MUCK)
    engine.showdown.record_decision("Player2", ShowDecision.SHOW)
    assert chips(engine)["Player2"] == 1_020
    assert chips(engine)["Player1"] == 980


def test_expire_mucks_for_undecided_players():
    engine = play_to_showdown()
    engine.showdown.record_decision("Player2", ShowDecision.SHOW)
    events = engine.showdown.expire()

    assert event_names(events) == ["SHOW_CHOICE", "SETTLED"]
    assert engine.showdown.choices() == {"Player1": "muck", "Player2": "show"}
    assert chips(engine)["Player2"] == 1_020
    assert engine.showdown.expire() == []


def test_expire_with_no_decisions_splits():
    engine = play_to_showdown()
    engine.showdown.expire()
    assert chips(engine) == {"Player0": 1_000, "Player1": 1_000, "Player2": 1_000}


def test_invalid_decisions_are_rejected():
    engine = create_engine(players=2)
    with pytest.raises(InvalidShowdownDecision):
        engine.showdown.record_decision("Player0", ShowDecision.SHOW)

    engine = play_to_showdown()
    with pytest.raises(InvalidShowdownDecision, match="not part"):
        engine.showdown.record_decision("Player0", ShowDecision.SHOW)
    with pytest.raises(InvalidShowdownDecision):
        engine.showdown.record_decision("Player1", ShowDecision.UNDECIDED)

    engine.showdown.record_decision("Player1", ShowDecision.SHOW)
    with pytest.raises(InvalidShowdownDecision, match="already chose"):
        engine.showdown.record_decision("Player1", ShowDecision.MUCK)
    assert engine.showdown.choices()["Player1"] == "show"


def test_revealed_cards_only_after_settlement():
    engine = play_to_showdown()
    engine.showdown.record_decision("Player1", ShowDecision.SHOW)
    assert engine.showdown.revealed() == set()

    engine.showdown.record_decision("Player2", ShowDecision.MUCK)
    payload = engine.showdown.payload()
    players = {player["name"]: player for player in payload["showdownPlayers"]}

    assert payload["final"] is True
    assert players["Player1"]["holeCards"] == ["As", "Ad"]
    assert players["Player1"]["hand"] == "Pair"
    assert players["Player1"]["description"] == "Pair, A's"
    assert players["Player2"]["holeCards"] == []
    assert players["Player0"]["folded"] is True
    assert payload["winners"] == [{"name": "Player1", "chips": 1_020, "amount": 40, "hand": "Pair"}]

    view = {player["name"]: player for player in engine.snapshot("Player0")["players"]}
    assert view["Player1"]["holeCards"] == ["As", "Ad"]
    assert view["Player2"]["holeCards"] == []


def test_odd_chip_goes_to_first_winner_left_of_dealer():
    engine = create_engine(players=3, sb=5, bb=10)
    start_hand(engine)
    rig_hand(engine, {"Player0": ["2c", "3d"], "Player2": ["4s", "5c"]}, ["Ah", "Kh", "Qh", "Jh", "Th"])
    perform_actions(engine, [("Player0", "bet", 10), ("Player1", "fold", None), ("Player2", "bet", 10)])
    check_down(engine)
    assert engine.state.pot == 25

    engine.showdown.record_decision("Player0", ShowDecision.SHOW)
    engine.showdown.record_decision("Player2", ShowDecision.SHOW)

    assert engine.showdown.context.payouts == {"Player2": 13, "Player0": 12}
    assert chips(engine) == {"Player0": 1_002, "Player1": 995, "Player2": 1_003}


def test_last_aggressor_reported_from_final_street():
    engine = create_engine(players=3)
    start_hand(engine)
    rig_hand(engine, {"Player1": ["As", "Ad"], "Player2": ["7c", "2d"]}, BOARD)
    perform_actions(engine, [("Player0", "fold", None), ("Player1", "bet", 20), ("Player2", "bet", 20)])
    st = engine.state
    while st.round != Round.RIVER:
        engine.apply_action(st.current_index, ActionType.BET, st.current_bet)

    act(engine, "Player1", "bet", 40)
    act(engine, "Player2", "bet", 40)

    assert st.phase == TablePhase.SHOWDOWN
    assert st.pot == 120
    assert engine.showdown.payload()["lastAggressor"] == "Player1"


def test_fold_out_awards_without_consulting_oracle():
    oracle = RecordingOracle()
    engine = create_engine(players=2, oracle=oracle)
    start_hand(engine)

    act(engine, "Player1", "bet", 100)
    events = act(engine, "Player0", "fold")

    assert event_names(events) == ["FOLD", "FOLD_OUT"]
    assert events[-1] == {"ev": "FOLD_OUT", "winner": "Player1", "amount": 120}
    assert oracle.rank_calls == 0
    assert oracle.winner_calls == 0
    assert chips(engine) == {"Player0": 980, "Player1": 1_020}
    assert engine.state.phase == TablePhase.REVIEW
    assert not engine.showdown.awaiting_decisions

    payload = engine.showdown.payload()
    assert payload["kind"] == ShowdownKind.FOLD_OUT.value
    assert payload["final"] is True
    assert all(player["holeCards"] == [] for player in payload["showdownPlayers"])

    with pytest.raises(InvalidShowdownDecision):
        engine.showdown.record_decision("Player1", ShowDecision.SHOW)


def test_leaving_during_showdown_counts_as_muck():
    engine = play_to_showdown()
    events = engine.remove_player("Player1")
    assert event_names(events) == ["SHOW_CHOICE"]
    engine.showdown.record_decision("Player2", ShowDecision.SHOW)
    assert chips(engine)["Player2"] == 1_020

    engine.showdown.reset_to_idle()
    assert [seat.username for seat in engine.state.seats] == ["Player0", "Player2"]


def test_reset_to_idle_clears_the_hand():
    engine = play_to_showdown()
    assert engine.showdown.reset_to_idle() == []

    engine.showdown.expire()
    assert event_names(engine.showdown.reset_to_idle()) == ["RESET"]
    st = engine.state
    assert st.phase == TablePhase.WAITING
    assert st.community == []
    assert st.pot == 0
    assert all(seat.hole_cards == [] and not seat.folded for seat in st.seats)
    assert engine.showdown.context is None
    assert engine.showdown.reset_to_idle() == []
