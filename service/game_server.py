import logging
import os
from typing import Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from board_rules import as_grid, slide, valid_moves
from game_sessions import SessionStore, UnknownGameError

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 1000


def resolve_seed() -> Optional[int]:
    raw = os.environ.get("GAME_SEED")
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer GAME_SEED %r", raw)
        return None


def resolve_max_sessions() -> int:
    raw = os.environ.get("GAME_MAX_SESSIONS")
    if not raw:
        return DEFAULT_MAX_SESSIONS
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        logger.warning("Ignoring invalid GAME_MAX_SESSIONS %r", raw)
        return DEFAULT_MAX_SESSIONS
    return value


app = Flask(__name__)
allowed_origins = os.environ.get("GAME_ALLOWED_ORIGINS", "*")
CORS(app, resources={r"/*": {"origins": allowed_origins}})
store = SessionStore(seed=resolve_seed(), max_sessions=resolve_max_sessions())


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _json_body() -> Optional[Dict]:
    payload = request.get_json(force=True, silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


def _state_payload(session, state) -> Dict:
    payload = state.to_dict()
    payload["id"] = session.game_id
    return payload


@app.errorhandler(UnknownGameError)
def unknown_game(exc: UnknownGameError):
    return _error(f"Unknown game: {exc.args[0]}", 404)


@app.errorhandler(ValueError)
def bad_value(exc: ValueError):
    return _error(str(exc), 400)


@app.post("/games")
def create_game():
    session = store.create()
    return jsonify(session.snapshot()), 201


@app.get("/games/<game_id>")
def get_game(game_id: str):
    return jsonify(store.get(game_id).snapshot())


@app.post("/games/<game_id>/move")
def play_move(game_id: str):
    session = store.get(game_id)
    payload = _json_body()
    if payload is None:
        return _error("Payload must be a JSON object", 400)
    direction = payload.get("direction")
    if direction is None:
        return _error("Payload must include 'direction' key", 400)

    state, moved = session.move(direction)
    response = _state_payload(session, state)
    response["moved"] = moved
    response["validMoves"] = valid_moves(state.grid)
    return jsonify(response)


@app.post("/games/<game_id>/restart")
def restart_game(game_id: str):
    session = store.get(game_id)
    state = session.new_game()
    return jsonify(_state_payload(session, state))


@app.delete("/games/<game_id>")
def delete_game(game_id: str):
    store.discard(game_id)
    return "", 204


@app.post("/valid-moves")
def check_valid_moves():
    payload = _json_body()
    if payload is None:
        return _error("Payload must be a JSON object", 400)
    grid = payload.get("grid")
    if grid is None:
        return _error("Payload must include 'grid' key", 400)

    response = {"valid_moves": valid_moves(grid)}

    direction = payload.get("direction")
    if direction is not None:
        next_grid, score_delta, _ = slide(as_grid(grid), direction)
        response["next_grid"] = next_grid.tolist()
        response["score_delta"] = score_delta

    return jsonify(response)


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Use 0.0.0.0 so the web app can reach it from another process on the same machine.
    port = int(os.environ.get("PORT", 5050))
    app.run(host="0.0.0.0", port=port, debug=bool(os.environ.get("FLASK_DEBUG")))
