#!/usr/bin/env python3
"""
conversation-model - Command Line Interface

Commands:
    chat        - Start an interactive conversation with a streaming backend
    replace     - Show a phonetic rewrite and its index mapping

Usage:
    python -m conversation_model.cli chat
    python -m conversation_model.cli chat --allow-code --url http://localhost:1234
    python -m conversation_model.cli replace "SQL is great" --map SQL=sequel

For help on a specific command:
    python -m conversation_model.cli <command> --help
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Optional, Set

from conversation_model.config import settings
from conversation_model.core.messages import CodeTurn, DialogueTurn
from conversation_model.core.phonetic import PhoneticReplacer
from conversation_model.logger import get_logger, init_logging

logger = get_logger(__name__)


def _parse_pairs(pairs: Optional[List[str]]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    for pair in pairs or []:
        pattern, separator, replacement = pair.partition("=")
        if not separator or not pattern:
            raise ValueError(f"Expected PATTERN=REPLACEMENT, got {pair!r}")
        mapping[pattern] = replacement
    return mapping


def _build_replacer(args: argparse.Namespace) -> PhoneticReplacer:
    from conversation_model.realtime.voice import load_pronunciations

    mapping: Dict[str, str] = {}
    path = args.pronunciations or settings.voice.pronunciation_file
    if path:
        mapping.update(load_pronunciations(path))
    mapping.update(_parse_pairs(args.map))
    if not mapping:
        return PhoneticReplacer.NULL
    return PhoneticReplacer(mapping, ignore_case=args.ignore_case or None)


def cmd_replace(args: argparse.Namespace) -> int:
    """
    Show how a text is rewritten and where each rewritten index maps back to.
    """
    try:
        replacer = _build_replacer(args)
    except (OSError, ValueError) as e:
        print(f"❌ {e}")
        return 1

    mapping = replacer.replace(args.text)
    print(f"Original: {mapping.original}")
    print(f"Replaced: {mapping.replaced}")
    print("Index map:")
    for index, char in enumerate(mapping.replaced):
        print(f"  {index:4d} {char!r} -> {mapping.map_output_index(index)}")
    return 0


async def _chat(args: argparse.Namespace) -> int:
    from conversation_model.realtime import (
        ConsoleVoice,
        Conversation,
        HttpBackend,
        PythonCodeRunner,
        disabled_code_function,
        speech_function,
    )

    if args.url:
        settings.backend.base_url = args.url
    if args.model:
        settings.backend.model = args.model
    settings.validate_all()

    voice = ConsoleVoice(replacer=_build_replacer(args), words_per_second=args.rate)
    say = speech_function(voice)

    async def speak(turn: DialogueTurn, cancel: asyncio.Event) -> Optional[DialogueTurn]:
        mood = f" [{turn.mood}]" if turn.mood else ""
        print(f"{turn.speaker}{mood}: ", end="", flush=True)
        return await say(turn, cancel)

    run_code = PythonCodeRunner() if (args.allow_code or settings.code.enabled) else None

    async def execute(turn: CodeTurn, cancel: asyncio.Event) -> str:
        print(f"```\n{turn.code}\n```")
        if run_code is None:
            return await disabled_code_function(turn, cancel)
        output = await run_code(turn, cancel)
        print(output)
        return output

    def show_token(fragment: str) -> None:
        sys.stderr.write(fragment)
        sys.stderr.flush()

    conversation = Conversation(
        HttpBackend(), speak, execute,
        token_listener=show_token if args.show_tokens else None,
    )
    pending: Set[asyncio.Future] = set()

    def on_done(task: asyncio.Future) -> None:
        pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            print(f"❌ Response failed: {error}")

    print("\n" + "=" * 60)
    print("💬 conversation-model - Interactive Chat")
    print("=" * 60)
    print("Type a message at any time; new input interrupts the response.")
    print("  /history - Show conversation history")
    print("  /stats   - Show statistics")
    print("  /quit    - Exit chat")
    print("-" * 60)

    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                user_input = (await loop.run_in_executor(None, input)).strip()
            except EOFError:
                break

            if not user_input:
                continue
            if user_input.lower() == "/quit":
                break
            if user_input.lower() == "/history":
                for message in await conversation.history():
                    print(f"[{message.role.value}] {message.content.rstrip()}")
                continue
            if user_input.lower() == "/stats":
                for key, value in conversation.stats.items():
                    print(f"   {key}: {value}")
                continue

            task = asyncio.ensure_future(conversation.submit_user_input(user_input))
            task.add_done_callback(on_done)
            pending.add(task)
    finally:
        await conversation.close()
        if pending:
            await asyncio.wait(pending)

    print("\n👋 Goodbye!")
    return 0


def cmd_chat(args: argparse.Namespace) -> int:
    """
    Start an interactive conversation.
    """
    try:
        return asyncio.run(_chat(args))
    except KeyboardInterrupt:
        print("\n\n👋 Goodbye!")
        return 0
    except Exception as e:
        print(f"❌ Chat failed: {e}")
        logger.exception("Chat error")
        return 1


def _add_replacement_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--map", "-m",
        action="append",
        metavar="PATTERN=REPLACEMENT",
        help="Add a phonetic replacement (repeatable)"
    )
    parser.add_argument(
        "--pronunciations", "-p",
        help="JSON file of pattern -> replacement pairs"
    )
    parser.add_argument(
        "--ignore-case", "-i",
        action="store_true",
        help="Match replacement patterns case-insensitively"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all commands."""
    parser = argparse.ArgumentParser(
        prog="conversation-model",
        description="Conversational core for streaming text-generation backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Interactive chat:
    python -m conversation_model.cli chat
    python -m conversation_model.cli chat --allow-code --rate 5

  Phonetic replacement:
    python -m conversation_model.cli replace "abcdefgh" -m b=xxx -m efg=y
        """
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Chat command
    chat_parser = subparsers.add_parser(
        "chat",
        help="Start an interactive conversation"
    )
    chat_parser.add_argument(
        "--url", "-u",
        help=f"Backend base URL (default: {settings.backend.base_url})"
    )
    chat_parser.add_argument(
        "--model",
        help=f"Backend model name (default: {settings.backend.model})"
    )
    chat_parser.add_argument(
        "--allow-code",
        action="store_true",
        help="Execute code blocks requested by the backend"
    )
    chat_parser.add_argument(
        "--rate", "-r",
        type=float,
        default=settings.voice.words_per_second,
        help=f"Words per second for console speech (default: {settings.voice.words_per_second})"
    )
    chat_parser.add_argument(
        "--show-tokens",
        action="store_true",
        help="Echo raw backend fragments to stderr as they arrive"
    )
    _add_replacement_arguments(chat_parser)
    chat_parser.set_defaults(func=cmd_chat)

    # Replace command
    replace_parser = subparsers.add_parser(
        "replace",
        help="Show a phonetic rewrite and its index mapping"
    )
    replace_parser.add_argument(
        "text",
        help="Text to rewrite"
    )
    _add_replacement_arguments(replace_parser)
    replace_parser.set_defaults(func=cmd_replace)

    return parser


def main() -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    init_logging("DEBUG" if args.verbose else None)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
