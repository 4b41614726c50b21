"""Run an interview session in the terminal."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from candidate_management import CandidateStore
from config.settings import settings
from services.commands import AppendChatTurn, Command, StoreCommandSink
from services.remote import bind_from_file
from services.sessions import InterviewRuntime

HELP = "Commands: /pause, /resume, /state, /quit. Anything else is sent as a chat turn."


class EchoSink:
    """Print bot turns as they are emitted, then forward to the store sink."""

    def __init__(self) -> None:
        self.inner: Optional[StoreCommandSink] = None

    def __call__(self, command: Command) -> None:
        if isinstance(command, AppendChatTurn) and command.turn.origin == "bot":
            print(f"bot> {command.turn.text}", flush=True)
        if self.inner is not None:
            self.inner(command)


def list_candidates(store: CandidateStore, query: str, sort_by: str) -> None:
    for c in store.list_candidates(query, sort_by):
        final = "-" if c.final_score is None else c.final_score
        print(f"{c.id}  {c.name or '?':<24} {c.status:<10} total={c.total_score:<4} final={final}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Timed mock interview in the terminal")
    parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")
    parser.add_argument("--candidate", help="Resume an existing candidate by id")
    parser.add_argument("--name", default="", help="Candidate name (asked in chat when omitted)")
    parser.add_argument("--email", default="")
    parser.add_argument("--phone", default="")
    parser.add_argument("--list", action="store_true", help="List stored candidates and exit")
    parser.add_argument("--query", default="", help="Filter for --list")
    parser.add_argument("--sort-by", choices=["score", "date", "name"], default="score")
    args = parser.parse_args(argv)

    store = CandidateStore(Path(args.db))
    if args.list:
        list_candidates(store, args.query, args.sort_by)
        return

    bind_from_file(Path(settings.APP_CONFIG_PATH))
    echo = EchoSink()
    runtime = InterviewRuntime(store, sink=echo)
    echo.inner = runtime.store_sink

    candidate_id = args.candidate
    if not candidate_id:
        candidate_id = store.create_candidate(name=args.name, email=args.email, phone=args.phone).id
    print(HELP)
    runtime.activate(candidate_id)

    machine = runtime.machine
    try:
        while True:
            index = machine.snapshot().question_index
            try:
                line = input("you> ")
            except EOFError:
                break
            command = line.strip().lower()
            if command == "/quit":
                break
            if command == "/pause":
                machine.pause()
            elif command == "/resume":
                machine.resume()
            elif command == "/state":
                snap = machine.snapshot()
                print(f"phase={snap.phase.value} question={snap.question_index} remaining={snap.remaining_seconds}s")
            else:
                machine.submit(line, question_index=index)
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
