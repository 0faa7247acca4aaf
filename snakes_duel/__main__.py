"""CLI entry point: python -m snakes_duel {play,board}."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import random
import sys
from pathlib import Path

from snakes_duel.board import BoardTopology, TopologyError, roll_dice
from snakes_duel.chat import ChatTranscript, send_user_message
from snakes_duel.commentary import NarrationChannel, NarrationWorker
from snakes_duel.config import Settings
from snakes_duel.game import GameOrchestrator
from snakes_duel.narrators import CannedNarrator, Narrator, make_narrator
from snakes_duel.render import render_board, render_chat, render_status

PROMPT = "[Enter] roll · r reset · q quit · or say something > "


def _load_topology(path: str | None) -> BoardTopology:
    if path is None:
        return BoardTopology.standard()
    try:
        data = json.loads(Path(path).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise TopologyError(f"Can't read board table {path}: {exc}") from exc
    return BoardTopology.from_dict(data)


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env()
    if args.provider:
        settings = dataclasses.replace(settings, provider=args.provider)
    if args.model:
        settings = dataclasses.replace(settings, model=args.model)
    if args.fast:
        settings = settings.instant()
    return settings


# ── play ─────────────────────────────────────────────────────────────

async def _play(
    args: argparse.Namespace,
    topology: BoardTopology,
    settings: Settings,
    narrator: Narrator,
) -> None:
    transcript = ChatTranscript()

    channel = NarrationChannel()
    worker = NarrationWorker(channel, narrator, transcript, settings.context_messages)
    worker_task = asyncio.create_task(worker.run())

    rng = random.Random(args.seed)
    game = GameOrchestrator(topology, channel, settings, roll=lambda: roll_dice(rng))

    shown = 0

    def show() -> None:
        nonlocal shown
        snap = game.snapshot()
        print()
        print(render_board(topology, snap.players))
        print(render_status(snap, game.status_line()))
        if shown > len(transcript.messages):
            shown = 0
        fresh = transcript.messages[shown:]
        if fresh or transcript.error:
            print(render_chat(fresh, transcript.error))
        shown = len(transcript.messages)

    try:
        show()
        while True:
            try:
                line = await asyncio.to_thread(input, PROMPT)
            except EOFError:
                break
            cmd = line.strip()

            if cmd == "q":
                break
            if cmd == "r":
                game.reset_game()
                transcript.reset_to_welcome()
                shown = 0
                show()
                continue
            if cmd:
                await send_user_message(transcript, narrator, cmd, settings.context_messages)
                show()
                continue

            if game.snapshot().game_over:
                print("Game over. Press r to play again.")
                continue

            if await game.request_move() is None:
                continue
            show()
            if game.snapshot().game_over:
                continue
            await game.wait_idle()
            show()
    finally:
        game.reset_game()
        worker_task.cancel()


def cmd_play(args: argparse.Namespace) -> None:
    """Play against the AI in the terminal."""
    topology = _load_topology(args.board)
    settings = _settings_from_args(args)
    if args.no_narrator:
        narrator: Narrator = CannedNarrator()
    else:
        try:
            narrator = make_narrator(settings)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            sys.exit(2)
    asyncio.run(_play(args, topology, settings, narrator))


# ── board ────────────────────────────────────────────────────────────

def cmd_board(args: argparse.Namespace) -> None:
    """Validate a board table and print it."""
    topology = _load_topology(args.board)
    print(render_board(topology))
    print()
    for start, end in topology.transitions():
        kind = "ladder" if end > start else "snake "
        print(f"  {kind} {start:>3} → {end}")


# ── main ─────────────────────────────────────────────────────────────

def main() -> None:
    parser = argparse.ArgumentParser(
        prog="snakes_duel",
        description="Snakes & Ladders Showdown — you vs. a trash-talking AI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--board", help="JSON snake/ladder table (default: standard board)")
    sub = parser.add_subparsers(dest="command")

    p_play = sub.add_parser("play", help="Play a game in the terminal")
    p_play.add_argument("--fast", action="store_true", help="No pacing delays")
    p_play.add_argument("--seed", type=int, help="Seed the dice")
    p_play.add_argument("--provider", help="Narrator provider (openai, anthropic, openrouter)")
    p_play.add_argument("--model", help="Narrator model id")
    p_play.add_argument("--no-narrator", action="store_true", help="Use canned lines offline")

    sub.add_parser("board", help="Validate and print the board")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "play":
            cmd_play(args)
        elif args.command == "board":
            cmd_board(args)
        else:
            parser.print_help()
    except TopologyError as exc:
        print(f"Invalid board: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
