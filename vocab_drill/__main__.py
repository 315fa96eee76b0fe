"""CLI entry point for vocab-drill.

Usage:
  python -m vocab_drill serve [--port PORT] [--host HOST]
  python -m vocab_drill stop
  python -m vocab_drill restart [--port PORT]
  python -m vocab_drill status
  python -m vocab_drill import FILE --user USER_ID
  python -m vocab_drill stats --user USER_ID
"""
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".vocab-drill.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "restart":
        _restart(args[1:])
    elif command == "status":
        _status()
    elif command == "import":
        _import_words(args[1:])
    elif command == "stats":
        _stats(args[1:])
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, restart, status, import, stats")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str | None) -> str | None:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _require_user(args: list[str]) -> str:
    user_id = _parse_flag(args, "--user", None)
    if not user_id:
        print("Missing --user USER_ID")
        sys.exit(1)
    return user_id


def _server_pid() -> int | None:
    """PID of the running vocab-drill server, or None.

    A PID file left behind by a dead process is removed.
    """
    try:
        pid = int(PID_FILE.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None
    try:
        os.kill(pid, 0)
    except (ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None
    return pid


def _stop() -> bool:
    pid = _server_pid()
    if pid is None:
        print("vocab-drill is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        print(f"vocab-drill (PID {pid}) had already exited.")
        return False
    finally:
        PID_FILE.unlink(missing_ok=True)
    print(f"Sent SIGTERM to vocab-drill (PID {pid}).")
    return True


def _status():
    pid = _server_pid()
    print(f"vocab-drill is running (PID {pid})." if pid else "vocab-drill is not running.")


def _restart(args: list[str]):
    import time
    if _stop():
        time.sleep(1)
    _serve(args)


def _serve(args: list[str]):
    import uvicorn

    running = _server_pid()
    if running is not None:
        print(f"vocab-drill is already running (PID {running}); stop or restart it instead.")
        sys.exit(1)

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    PID_FILE.write_text(str(os.getpid()))

    print(f"Vocab Drill listening on http://{host}:{port} (Ctrl+C to stop)")
    try:
        uvicorn.run(
            "vocab_drill.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        PID_FILE.unlink(missing_ok=True)


def _import_words(args: list[str]):
    from vocab_drill.config import load_settings
    from vocab_drill.db import Database
    from vocab_drill.parsers.word_list_parser import parse_word_list

    user_id = _require_user(args)
    files = [
        a for i, a in enumerate(args)
        if not a.startswith("--") and (i == 0 or args[i - 1] != "--user")
    ]
    if not files:
        print("No word list given.")
        sys.exit(1)

    settings = load_settings()
    db = Database(settings.db_full_path)

    for name in files:
        path = Path(name)
        if not path.exists():
            print(f"  Skipping (not found): {path}")
            continue
        print(f"  Parsing: {path.name}")
        entries = parse_word_list(path)
        imported, skipped = db.import_entries(user_id, entries)
        print(f"    {imported} words imported, {skipped} skipped")

    print(f"\nTotal for {user_id}: {db.count_items(user_id)} words")
    db.close()


def _stats(args: list[str]):
    from vocab_drill.config import load_settings
    from vocab_drill.db import Database

    user_id = _require_user(args)
    settings = load_settings()
    db = Database(settings.db_full_path)
    stats = db.get_stats(user_id)

    print(f"Vocab Drill Stats ({user_id})")
    print("=" * 40)
    print(f"Total words:        {stats['total_words']}")
    print(f"Sessions recorded:  {stats['total_sessions']}")
    print(f"Average score:      {stats['average_score']}%")
    print(f"Questions answered: {stats['total_answered']}")
    print(f"Overall accuracy:   {stats['accuracy']}%")
    db.close()


if __name__ == "__main__":
    main()
