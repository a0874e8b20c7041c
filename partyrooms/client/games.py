"""Per-game configuration: remote procedure names, phase vocabulary and action gating.

Every game is the same room state machine parameterized by a ``GameDefinition``.
Gate functions are pure: they only look at the last snapshot, the local
session and whatever static content the game needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from partyrooms.client.content import pick_next_prompt
from partyrooms.client.errors import ContentError, InputValidationError
from partyrooms.client.models import RoomSession

RPS_CHOICES = ("rock", "paper", "scissors")
TTT_CELLS = 9


@dataclass(frozen=True)
class GateContext:
    session: RoomSession
    snapshot: dict[str, Any]
    current: dict[str, Any] | None
    content: list[dict[str, Any]] | None = None

    @property
    def player_id(self) -> str:
        return self.session.player_id

    @property
    def player_count(self) -> int:
        return int(self.snapshot.get("playerCount") or 0)

    @property
    def room_status(self) -> str | None:
        return self.snapshot.get("roomStatus")

    def self_player(self) -> dict[str, Any] | None:
        for player in self.snapshot.get("players") or []:
            if player.get("id") == self.player_id:
                return player
        return None

    def current_value(self, key: str, default: Any = None) -> Any:
        if self.current is None:
            return default
        value = self.current.get(key)
        return default if value is None else value


@dataclass(frozen=True)
class ActionSpec:
    rpc: str
    params: Mapping[str, str] = field(default_factory=dict)
    fixed: Mapping[str, Any] = field(default_factory=dict)
    missing_message: str | None = None
    prepare: Callable[[dict[str, Any], GateContext | None], dict[str, Any]] | None = None


@dataclass(frozen=True)
class GameDefinition:
    slug: str
    title: str
    min_players: int
    max_players: int | None
    create_rpc: str
    join_rpc: str
    snapshot_rpc: str
    snapshot_needs_identity: bool
    actions: Mapping[str, ActionSpec]
    gates: Callable[[GateContext], dict[str, bool]]
    host_only_start: bool = False
    round_key: str = "currentRound"
    status_key: str = "status"
    terminal_statuses: frozenset[str] = frozenset({"revealed"})
    child_tables: tuple[str, ...] = ()
    content_kind: str | None = None
    spectator: Callable[[GateContext], bool] | None = None
    reveal_key: Callable[[dict[str, Any]], str] | None = None

    def current_round(self, snapshot: dict[str, Any] | None) -> dict[str, Any] | None:
        if not snapshot:
            return None
        current = snapshot.get(self.round_key)
        return current if isinstance(current, dict) else None

    def round_status(self, current: dict[str, Any] | None) -> str | None:
        if current is None:
            return None
        return current.get(self.status_key)

    def round_identity(self, current: dict[str, Any]) -> str:
        if self.reveal_key is not None:
            return self.reveal_key(current)
        return str(current.get("id", ""))

    def closed_gates(self) -> dict[str, bool]:
        return {name: False for name in self.actions}


def _revealed(ctx: GateContext) -> bool:
    return ctx.current_value("status") == "revealed"


def _pending(ctx: GateContext) -> bool:
    return ctx.current_value("status") == "pending"


def _is_eliminated(ctx: GateContext) -> bool:
    player = ctx.self_player()
    return bool(player and player.get("isEliminated"))


def _own_hand(ctx: GateContext, *, by_flag: bool = False) -> dict[str, Any] | None:
    for hand in ctx.current_value("playerHands", []):
        if by_flag and hand.get("isSelf"):
            return hand
        if not by_flag and hand.get("playerId") == ctx.player_id:
            return hand
    return None


def _rps_gates(ctx: GateContext) -> dict[str, bool]:
    full_table = ctx.player_count == 2
    already_played = ctx.player_id in ctx.current_value("submittedPlayerIds", [])
    return {
        "submit_move": full_table and _pending(ctx) and not already_played,
        "start_next_round": full_table and _revealed(ctx),
    }


def _prepare_rps_move(params: dict[str, Any], ctx: GateContext | None) -> dict[str, Any]:
    if params.get("choice") not in RPS_CHOICES:
        raise InputValidationError("Pick rock, paper or scissors.")
    return params


def _ttt_gates(ctx: GateContext) -> dict[str, bool]:
    full_table = ctx.player_count == 2
    return {
        "submit_move": full_table and _pending(ctx) and ctx.current_value("nextPlayerId") == ctx.player_id,
        "start_next_round": full_table and _revealed(ctx),
    }


def _prepare_ttt_move(params: dict[str, Any], ctx: GateContext | None) -> dict[str, Any]:
    cell = params.get("cell_index")
    if not isinstance(cell, int) or isinstance(cell, bool) or not 0 <= cell < TTT_CELLS:
        raise InputValidationError("Pick a cell between 0 and 8.")
    return params


def _bj_gates(ctx: GateContext) -> dict[str, bool]:
    hand = _own_hand(ctx)
    can_play = ctx.current_value("status") == "player_turn" and hand is not None and hand.get("turnStatus") == "active"
    enough_players = ctx.player_count >= 2
    return {
        "hit": can_play,
        "stand": can_play,
        "start_round": enough_players and (ctx.current is None or _revealed(ctx)),
    }


def _bjd_gates(ctx: GateContext) -> dict[str, bool]:
    hand = _own_hand(ctx, by_flag=True)
    can_play = _pending(ctx) and hand is not None and hand.get("turnStatus") == "active"
    return {
        "hit": can_play,
        "stand": can_play,
        "start_next_round": _revealed(ctx) and ctx.player_count == 2,
    }


def _bb_spectator(ctx: GateContext) -> bool:
    if ctx.current is None:
        return False
    hand_owners = {hand.get("playerId") for hand in ctx.current_value("hands", [])}
    return bool(hand_owners) and ctx.player_id not in hand_owners


def _bb_gates(ctx: GateContext) -> dict[str, bool]:
    my_turn = (
        _pending(ctx)
        and ctx.current_value("currentPlayerId") == ctx.player_id
        and not _is_eliminated(ctx)
        and not _bb_spectator(ctx)
    )
    last_player = ctx.current_value("lastPlayPlayerId")
    if ctx.current is None:
        can_start = ctx.player_count >= 2 and ctx.room_status == "waiting"
    else:
        can_start = _revealed(ctx) and ctx.room_status != "finished"
    return {
        "play_cards": my_turn and len(ctx.current_value("handCards", [])) > 0,
        "challenge": my_turn and bool(last_player) and last_player != ctx.player_id,
        "start_round": can_start,
    }


def _spot_gates(ctx: GateContext) -> dict[str, bool]:
    participant = ctx.player_id in ctx.current_value("participantPlayerIds", [])
    already_voted = ctx.player_id in ctx.current_value("submittedPlayerIds", [])
    return {
        "start_round": bool(ctx.content) and ctx.player_count >= 3 and (ctx.current is None or _revealed(ctx)),
        "vote": _pending(ctx) and participant and not already_voted,
    }


def _spot_spectator(ctx: GateContext) -> bool:
    return ctx.current is not None and ctx.player_id not in ctx.current_value("participantPlayerIds", [])


def _prepare_spot_round(params: dict[str, Any], ctx: GateContext | None) -> dict[str, Any]:
    if params.get("prompt_id") and params.get("prompt_text"):
        return params
    if ctx is None or not ctx.content:
        raise ContentError("No prompts are loaded yet.")
    prompt = pick_next_prompt(ctx.content, ctx.snapshot.get("usedPromptIds"))
    if prompt is None:
        raise ContentError("No prompts are loaded yet.")
    return {**params, "prompt_id": prompt["id"], "prompt_text": prompt["text"]}


def _imp_in_match(ctx: GateContext) -> bool:
    player = ctx.self_player()
    return bool(player and player.get("isInMatch"))


def _imp_spectator(ctx: GateContext) -> bool:
    return ctx.current is not None and not _imp_in_match(ctx)


def _imp_gates(ctx: GateContext) -> dict[str, bool]:
    player = ctx.self_player()
    is_host = bool(player and player.get("isHost"))
    phase = ctx.current_value("phase")
    can_act = _imp_in_match(ctx) and not _is_eliminated(ctx)
    already_voted = ctx.player_id in ctx.current_value("submittedVotePlayerIds", [])
    return {
        "start_match": (
            is_host and bool(ctx.content) and ctx.player_count >= 3 and (ctx.current is None or phase == "finished")
        ),
        "submit_clue": phase == "clue" and ctx.current_value("currentTurnPlayerId") == ctx.player_id and can_act,
        "vote": phase == "vote" and can_act and not already_voted,
        "advance_round": is_host and phase == "revealed",
    }


def _prepare_imp_match(params: dict[str, Any], ctx: GateContext | None) -> dict[str, Any]:
    if params.get("category_label") and params.get("category_words"):
        return params
    if ctx is None or not ctx.content:
        raise ContentError("No categories are loaded yet.")
    wanted = params.get("category_id") or ctx.content[0]["id"]
    for category in ctx.content:
        if category["id"] == wanted:
            return {
                "category_id": category["id"],
                "category_label": category["label"],
                "category_words": list(category["words"]),
            }
    raise InputValidationError("Choose a category first.")


def _prepare_clue(params: dict[str, Any], ctx: GateContext | None) -> dict[str, Any]:
    clue = params.get("clue_text")
    return {**params, "clue_text": clue.strip() if isinstance(clue, str) else clue}


def _imp_reveal_key(current: dict[str, Any]) -> str:
    return f"{current.get('id', '')}:{current.get('roundNumber', '')}"


RPS = GameDefinition(
    slug="rps",
    title="Rock paper scissors",
    min_players=2,
    max_players=2,
    create_rpc="create_rps_room",
    join_rpc="join_rps_room",
    snapshot_rpc="get_rps_room_snapshot",
    snapshot_needs_identity=False,
    actions={
        "submit_move": ActionSpec(
            rpc="submit_rps_move",
            params={"choice": "player_choice"},
            missing_message="Pick rock, paper or scissors.",
            prepare=_prepare_rps_move,
        ),
        "start_next_round": ActionSpec(rpc="start_next_rps_round"),
    },
    gates=_rps_gates,
    child_tables=("rps_rounds",),
)

TTT = GameDefinition(
    slug="ttt",
    title="Tic tac toe",
    min_players=2,
    max_players=2,
    create_rpc="create_ttt_room",
    join_rpc="join_ttt_room",
    snapshot_rpc="get_ttt_room_snapshot",
    snapshot_needs_identity=False,
    actions={
        "submit_move": ActionSpec(
            rpc="submit_ttt_move",
            params={"cell_index": "cell_index_input"},
            missing_message="Pick a cell first.",
            prepare=_prepare_ttt_move,
        ),
        "start_next_round": ActionSpec(rpc="start_next_ttt_round"),
    },
    gates=_ttt_gates,
    child_tables=("ttt_rounds",),
)

BJ = GameDefinition(
    slug="bj",
    title="Blackjack",
    min_players=2,
    max_players=None,
    create_rpc="create_bj_room",
    join_rpc="join_bj_room",
    snapshot_rpc="get_bj_room_snapshot",
    snapshot_needs_identity=False,
    actions={
        "hit": ActionSpec(rpc="submit_bj_action", fixed={"action_input": "hit"}),
        "stand": ActionSpec(rpc="submit_bj_action", fixed={"action_input": "stand"}),
        "start_round": ActionSpec(rpc="start_next_bj_round"),
    },
    gates=_bj_gates,
    child_tables=("bj_rounds", "bj_player_hands"),
)

BJD = GameDefinition(
    slug="bjd",
    title="Blackjack duel",
    min_players=2,
    max_players=2,
    create_rpc="create_bjd_room",
    join_rpc="join_bjd_room",
    snapshot_rpc="get_bjd_room_snapshot",
    snapshot_needs_identity=True,
    actions={
        "hit": ActionSpec(rpc="submit_bjd_action", fixed={"action_input": "hit"}),
        "stand": ActionSpec(rpc="submit_bjd_action", fixed={"action_input": "stand"}),
        "start_next_round": ActionSpec(rpc="start_next_bjd_round"),
    },
    gates=_bjd_gates,
)

BB = GameDefinition(
    slug="bb",
    title="Bluff Battle",
    min_players=2,
    max_players=None,
    create_rpc="create_bb_room",
    join_rpc="join_bb_room",
    snapshot_rpc="get_bb_room_snapshot",
    snapshot_needs_identity=True,
    actions={
        "play_cards": ActionSpec(
            rpc="play_bb_cards",
            params={"card_indexes": "card_indexes_input"},
            missing_message="Select at least one card first.",
        ),
        "challenge": ActionSpec(rpc="challenge_bb_play"),
        "start_round": ActionSpec(rpc="start_next_bb_round"),
    },
    gates=_bb_gates,
    spectator=_bb_spectator,
)

SPOT = GameDefinition(
    slug="spot",
    title="Spotlight vote",
    min_players=3,
    max_players=None,
    create_rpc="create_spot_room",
    join_rpc="join_spot_room",
    snapshot_rpc="get_spot_room_snapshot",
    snapshot_needs_identity=True,
    actions={
        "start_round": ActionSpec(
            rpc="start_next_spot_round",
            params={"prompt_id": "prompt_id_input", "prompt_text": "prompt_text_input"},
            prepare=_prepare_spot_round,
        ),
        "vote": ActionSpec(
            rpc="submit_spot_vote",
            params={"target_player_id": "target_player_id_input"},
            missing_message="Pick a player to vote for.",
        ),
    },
    gates=_spot_gates,
    child_tables=("spot_rounds",),
    content_kind="prompts",
    spectator=_spot_spectator,
)

IMP = GameDefinition(
    slug="imp",
    title="Impostor",
    min_players=3,
    max_players=None,
    create_rpc="create_imp_room",
    join_rpc="join_imp_room",
    snapshot_rpc="get_imp_room_snapshot",
    snapshot_needs_identity=True,
    actions={
        "start_match": ActionSpec(
            rpc="start_imp_match",
            params={
                "category_id": "category_id_input",
                "category_label": "category_label_input",
                "category_words": "category_words_input",
            },
            missing_message="Choose a category first.",
            prepare=_prepare_imp_match,
        ),
        "submit_clue": ActionSpec(
            rpc="submit_imp_clue",
            params={"clue_text": "clue_text_input"},
            missing_message="Write a clue first.",
            prepare=_prepare_clue,
        ),
        "vote": ActionSpec(
            rpc="submit_imp_vote",
            params={"target_player_id": "target_player_id_input"},
            missing_message="Pick a player to vote for.",
        ),
        "advance_round": ActionSpec(rpc="advance_imp_round"),
    },
    gates=_imp_gates,
    host_only_start=True,
    round_key="currentMatch",
    status_key="phase",
    terminal_statuses=frozenset({"revealed", "finished"}),
    child_tables=("imp_matches",),
    content_kind="categories",
    spectator=_imp_spectator,
    reveal_key=_imp_reveal_key,
)

GAMES: dict[str, GameDefinition] = {game.slug: game for game in (RPS, TTT, BJ, BJD, BB, SPOT, IMP)}


def get_game(slug: str) -> GameDefinition | None:
    return GAMES.get(slug)
