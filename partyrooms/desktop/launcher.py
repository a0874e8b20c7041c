"""Desktop launcher: start the local room view server and open a game room in the browser."""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
import time
import webbrowser
from pathlib import Path
from urllib import error, request

from partyrooms.client.codes import build_share_url, normalize_room_code
from partyrooms.client.games import GAMES

ROOT_DIR = Path(__file__).resolve().parents[2]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Party rooms launcher")
    parser.add_argument("--game", choices=sorted(GAMES), required=True)
    parser.add_argument("--room", default="")
    parser.add_argument("--server", default="http://127.0.0.1:8000")
    parser.add_argument("--start-server", action="store_true")
    return parser.parse_args(argv)


def wait_for_server(server_url: str, timeout_s: float = 8.0) -> bool:
    start = time.time()
    while time.time() - start < timeout_s:
        try:
            with request.urlopen(f"{server_url}/api/games", timeout=0.5) as response:
                if int(response.status) < 500:
                    return True
        except (error.URLError, TimeoutError):
            pass
        time.sleep(0.2)
    return False


def maybe_start_server(server_url: str) -> subprocess.Popen[str] | None:
    env = os.environ.copy()
    env.setdefault("PARTYROOMS_PUBLIC_URL", server_url)
    host_port = server_url.removeprefix("http://")
    host, port = host_port.split(":", maxsplit=1)
    command = [
        sys.executable,
        "-m",
        "uvicorn",
        "partyrooms.client.api:app",
        "--host",
        host,
        "--port",
        port,
    ]
    process = subprocess.Popen(command, cwd=str(ROOT_DIR), env=env)
    if wait_for_server(server_url):
        return process
    process.terminate()
    return None


def build_room_url(server: str, game: str, room: str) -> str:
    base = f"{server.rstrip('/')}/games/{game}/"
    code = normalize_room_code(room)
    if not code:
        return base
    return build_share_url(base, code)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    server_process: subprocess.Popen[str] | None = None
    if args.start_server:
        server_process = maybe_start_server(args.server)
        if server_process is None:
            print("Could not start the room server.", file=sys.stderr)
            return 1
    elif not wait_for_server(args.server):
        print("Room server unreachable. Use --start-server or run uvicorn manually.", file=sys.stderr)
        return 1

    url = build_room_url(server=args.server, game=args.game, room=args.room)
    print(url)
    webbrowser.open(url)
    if server_process is not None:
        try:
            server_process.wait()
        except KeyboardInterrupt:
            server_process.terminate()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
