import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

from common.events import Event, Notification
from colloquy.chat import ChatController
from colloquy.config import ClientConfig, ConfigError
from colloquy.errors import ChatError, Unauthorized
from colloquy.models import Message

logger = logging.getLogger(__name__)

HELP = """Commands:
  /new              start a new chat (reuses an empty one)
  /chats            list chats
  /switch N         open chat number N from /chats
  /edit N text      replace message N and regenerate the reply
  /discard N        remove message N and its pair
  /delete N         delete chat number N
  /stop             cancel the request in flight
  /sources          list cited sources in this chat
  /quit             exit"""


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line; records logged with ``extra={"chat_id": ...}`` carry the chat."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        chat_id = getattr(record, "chat_id", None)
        if chat_id:
            payload["chat_id"] = chat_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(verbose: bool = False, quiet: bool = False, log_format: str = "text") -> None:
    """Configure root logging on stderr; stdout carries the chat transcript."""
    level = logging.WARNING if quiet else logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S"))
    logging.basicConfig(level=level, handlers=[handler])

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _format_message(index: int, message: Message) -> str:
    marker = "*" if message.pending else " "
    who = "you" if message.role == "user" else "assistant"
    return f"{index:>3}{marker} {who}: {message.content}"


def _print_event(event: Event) -> None:
    if isinstance(event, Notification):
        print(f"\n[{event.title}] {event.message}", file=sys.stderr)


class ChatREPL:
    def __init__(self, chat: ChatController):
        self.chat = chat
        self._inflight: set[asyncio.Task] = set()

    def _message_at(self, arg: str) -> Message | None:
        try:
            return self.chat.messages[int(arg) - 1]
        except (ValueError, IndexError):
            print(f"No message {arg!r}")
            return None

    def _chat_at(self, arg: str) -> str | None:
        try:
            return self.chat.chats[int(arg) - 1].id
        except (ValueError, IndexError):
            print(f"No chat {arg!r}")
            return None

    def show_chats(self) -> None:
        if not self.chat.chats:
            print("No chats yet.")
        for i, session in enumerate(self.chat.chats, 1):
            active = ">" if session.id == self.chat.current_chat_id else " "
            print(f"{active}{i:>3}. {session.title or '(untitled)'}")

    def show_timeline(self) -> None:
        for i, message in enumerate(self.chat.messages, 1):
            print(_format_message(i, message))

    def _background(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            print(f"\n❌ Error: {error}", file=sys.stderr)
        elif task.result():
            print()
            self.show_timeline()

    async def handle(self, line: str) -> bool:
        command, _, rest = line.partition(" ")
        rest = rest.strip()

        if command in ("/quit", "/exit"):
            return False
        if command == "/help":
            print(HELP)
        elif command == "/new":
            await self.chat.create_chat()
            print("Started a new chat.")
        elif command == "/chats":
            await self.chat.refresh()
            self.show_chats()
        elif command == "/switch":
            chat_id = self._chat_at(rest)
            if chat_id and await self.chat.select_chat(chat_id):
                self.show_timeline()
        elif command == "/delete":
            chat_id = self._chat_at(rest)
            if chat_id:
                await self.chat.delete_chat(chat_id)
        elif command == "/sources":
            sources = self.chat.sources()
            if not sources:
                print("No sources cited.")
            for source in sources:
                label = source.get("title") or source.get("url") or "(untitled)"
                print(f"  [{source.get('index', '-')}] {label}")
        elif command == "/stop":
            if not self.chat.stop():
                print("Nothing to stop.")
        elif command == "/discard":
            message = self._message_at(rest)
            if message:
                await self.chat.discard(message.id)
                self.show_timeline()
        elif command == "/edit":
            index, _, text = rest.partition(" ")
            message = self._message_at(index)
            if message:
                self.chat.begin_edit(message.id)
                self._background(self.chat.submit_edit(message.id, text))
        elif command.startswith("/"):
            print(f"Unknown command: {command}. Type /help for available commands.")
        else:
            if self.chat.is_loading:
                print("Still waiting for the previous reply (use /stop).")
            else:
                self._background(self.chat.send(line))
        return True

    async def run(self) -> None:
        self.chat.subscribe(_print_event)
        await self.chat.restore()
        print("💬 Colloquy started. Type /help for commands.")
        self.show_timeline()

        while True:
            try:
                line = (await asyncio.to_thread(input, "\n> ")).strip()
            except EOFError:
                break
            if not line:
                continue
            try:
                if not await self.handle(line):
                    break
            except Unauthorized:
                raise
            except ChatError as e:
                print(f"❌ {e}")


async def _list_chats(chat: ChatController) -> int:
    await chat.sessions.list_sessions()
    for session in chat.chats:
        updated = session.updated_at.strftime("%Y-%m-%d %H:%M")
        print(f"{session.id}  {updated}  {session.title or '(untitled)'}")
    return 0


async def _run(args: argparse.Namespace, config: ClientConfig) -> int:
    async with ChatController.from_config(config) as chat:
        if args.command == "chats":
            return await _list_chats(chat)
        await ChatREPL(chat).run()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="colloquy", description="Chat with a remote assistant")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors")
    parser.add_argument("--log-format", default="text", choices=["text", "json"])
    parser.add_argument("--api-url", default=None, help="Backend base URL (COLLOQUY_API_URL)")
    parser.add_argument("--token", default=None, help="Bearer token (COLLOQUY_API_TOKEN)")
    parser.add_argument("--state-path", default=None, help="Client state file")

    subparsers = parser.add_subparsers(dest="command", required=False)
    subparsers.add_parser("chats", help="List chats")
    subparsers.add_parser("repl", help="Interactive chat (default)")
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.log_format)

    try:
        config = ClientConfig.from_env()
        if args.api_url:
            config.api_url = args.api_url
        if args.token:
            config.token = args.token
        if args.state_path:
            config.state_path = args.state_path
        config.validate()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(_run(args, config))
    except Unauthorized as e:
        print(f"Error: {e or 'unauthorized'}. Check COLLOQUY_API_TOKEN.", file=sys.stderr)
        return 2
    except ChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
