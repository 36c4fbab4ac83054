"""CLI entry point for the concierge agent.

A terminal chat loop for development and testing. For production, use
the FastAPI server (``concierge/server.py``).

Usage:
    python -m concierge.main                          # normal mode (quiet)
    python -m concierge.main --debug                  # debug mode (shows API calls)
    python -m concierge.main --profiles customers.json --customer alice
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv

from concierge.agent import AgentLoopController
from concierge.assistant import Assistant
from concierge.audit import AuditLog
from concierge.context import InMemoryContextStore
from concierge.errors import AgentError
from concierge.llm import AnthropicLLM
from concierge.tools import build_default_registry

logger = logging.getLogger(__name__)

LOCAL_CUSTOMER_ID = "local"


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("concierge").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_store(args: argparse.Namespace) -> tuple[InMemoryContextStore, str]:
    if args.profiles:
        store = InMemoryContextStore.from_json_file(args.profiles)
        customer_id = args.customer or LOCAL_CUSTOMER_ID
        if customer_id not in store:
            raise SystemExit(f"Customer {customer_id!r} not found in {args.profiles}")
        return store, customer_id

    store = InMemoryContextStore()
    store.add_customer(LOCAL_CUSTOMER_ID, args.name, {"full_name": args.name})
    return store, LOCAL_CUSTOMER_ID


async def _chat_loop(assistant: Assistant, customer_id: str, audit: AuditLog) -> None:
    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye!")
            break

        try:
            result = await assistant.handle_message(customer_id, user_input)
        except AgentError as e:
            logger.exception("Error processing message")
            print(f"\nAssistant: I'm sorry, something went wrong: {e}")
            print("           Please try again.\n")
            continue

        print(f"\nAssistant: {result.reply_text}")
        for record in result.invocations:
            status = "ok" if record.succeeded else "failed"
            print(f"  [{record.name} {status}{': ' + record.target if record.target else ''}]")
        print()

    await audit.drain()


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Concierge AI Agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument("--name", default="Guest", help="Display name of the local customer")
    parser.add_argument("--profiles", help="JSON file of customer profiles")
    parser.add_argument("--customer", help="Customer id to chat as (with --profiles)")
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    store, customer_id = _build_store(args)
    audit = AuditLog()
    controller = AgentLoopController(AnthropicLLM(), build_default_registry(), audit=audit)
    assistant = Assistant(store, controller)

    print("\n" + "=" * 60)
    print("  Concierge AI Agent - CLI Chat")
    print("=" * 60)
    print(f"  Chatting as customer: {customer_id}")
    print("  Type your message and press Enter. 'quit' to exit.")
    print("=" * 60 + "\n")

    try:
        asyncio.run(_chat_loop(assistant, customer_id, audit))
    except KeyboardInterrupt:
        print("\n\nGoodbye!")


if __name__ == "__main__":
    main()
