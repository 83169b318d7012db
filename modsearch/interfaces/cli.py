"""CLI interface: search loop, /help /retry /clear /quit."""

import asyncio

import httpx

from modsearch.client.consumer import StreamConsumer
from modsearch.client.view import Colors, ConsoleView, colorize
from modsearch.core.config import config
from modsearch.core.logger import logger


def print_banner():
    banner = """
    ╭───────────────────────────────────────────╮
    │   modsearch · streaming module search     │
    ╰───────────────────────────────────────────╯
    """
    print(colorize(banner, Colors.MAGENTA))


def print_help():
    help_text = """
    ╭─────────────────────────────────────────────╮
    │  Commands                                   │
    ├─────────────────────────────────────────────┤
    │  <keyword> - Search (replaces running one)  │
    │  /retry    - Repeat the last search         │
    │  /clear    - Cancel and clear results       │
    │  /help     - Show this help                 │
    │  /quit     - Exit                           │
    │  Ctrl+C    - Exit                           │
    ╰─────────────────────────────────────────────╯
    """
    print(colorize(help_text, Colors.CYAN))


async def run_cli(gateway_url: str | None = None):
    url = gateway_url or config.gateway_url
    print_banner()
    print(colorize(f"  Gateway: {url}", Colors.DIM))
    print(colorize("  Type /help for commands\n", Colors.DIM))

    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None)) as client:
        consumer = StreamConsumer(client, ConsoleView(), gateway_url=url)
        try:
            while True:
                try:
                    # Input runs in a thread so a running search keeps streaming.
                    user_input = await asyncio.to_thread(
                        input, colorize("\n❯ ", Colors.GREEN, Colors.BOLD)
                    )
                except EOFError:
                    break
                text = user_input.strip()
                if not text:
                    continue
                command = text.lower()

                if command == "/help":
                    print_help()
                    continue

                if command == "/retry":
                    if not consumer.last_keyword:
                        print(colorize("  Nothing to retry yet.", Colors.YELLOW))
                        continue
                    consumer.start(consumer.last_keyword, retry=True)
                    continue

                if command == "/clear":
                    await consumer.clear()
                    print(colorize("  Cleared ✨", Colors.YELLOW))
                    continue

                if command in ("/quit", "/exit", "/q"):
                    print(colorize("\n  Bye!\n", Colors.MAGENTA))
                    break

                consumer.start(text)
        except KeyboardInterrupt:
            print(colorize("\n\n  Bye!\n", Colors.MAGENTA))
        except Exception as e:
            logger.error(f"CLI crashed: {e}", exc_info=True)
            raise
        finally:
            await consumer.close()


def main():
    try:
        asyncio.run(run_cli())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
