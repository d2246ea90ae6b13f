"""
Test fixtures for version-control testing.
Includes sample game states shaped like the ones the game engine produces.
"""

import copy


def make_player(player_id: str, name: str, money: int = 1500, position: int = 0) -> dict:
    return {
        "id": player_id,
        "name": name,
        "money": money,
        "position": position,
        "properties": [],
        "in_jail": False,
    }


def make_game_state(round_number: int = 1, status: str = "playing") -> dict:
    """A small but realistic game state."""
    return {
        "round": round_number,
        "status": status,
        "current_player": 0,
        "players": [
            make_player("p1", "Alice"),
            make_player("p2", "Bob"),
        ],
        "board": {
            "houses": {"boardwalk": 0, "park_place": 0},
            "owners": {},
        },
        "log": ["game started"],
    }


def evolve(state: dict, **changes) -> dict:
    """Copy a state and apply top-level changes."""
    new_state = copy.deepcopy(state)
    new_state.update(changes)
    return new_state


BASIC_STATE = {"money": 1500, "position": 0}

# (before, after) pairs covering nested mappings, sequences and type changes
DIFF_CASES = [
    ({"a": 1}, {"a": 1, "b": 2}),
    ({"a": 1, "b": {"c": [1, 2, 3]}}, {"a": 1, "b": {"c": [1]}}),
    ({"players": [{"money": 1}]}, {"players": [{"money": 2}, {"money": 3}]}),
    ({"x": {"y": 1}}, {"x": [1, 2]}),
    ({"flag": True}, {"flag": 1}),
    (make_game_state(), evolve(make_game_state(), round=2, status="finished", log=[])),
]
