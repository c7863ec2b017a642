"""Simple CLI entry point for the catalog filter."""

import argparse
import asyncio
import logging

from catalog_filter import CatalogFilterAgent
from catalog_filter.config import LOG_LEVEL
from catalog_filter.utils import load_catalog


async def main() -> None:
    parser = argparse.ArgumentParser(description="Narrow a product catalog query by query.")
    parser.add_argument("catalog", help="Path to a JSON file with the products")
    parser.add_argument("--owner", default="cli", help="Session owner id")
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL)
    catalog = load_catalog(args.catalog)
    agent = CatalogFilterAgent()
    print(f"Loaded {len(catalog)} products. Type a query, 'clear' to start over, 'exit' or 'quit' to stop.")
    print("An empty line shows the full catalog again.")

    reset = False
    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\nExiting.")
            break

        if user_input.lower() in {"exit", "quit"}:
            print("Goodbye.")
            break
        if user_input.lower() == "clear":
            # The next query starts a fresh history
            reset = True
            print("History cleared.\n")
            continue

        outcome = await agent.filter_catalog(args.owner, catalog, user_input, reset=reset)
        reset = False
        if outcome.warning:
            print(f"Warning: {outcome.warning}")
        for item in outcome.items:
            print(f"  - {item.title} ({item.price:g})  [{item.id}]")
        if outcome.reasoning:
            print(f"Why: {outcome.reasoning}")
        print(f"{len(outcome.items)} of {len(catalog)} products.\n")

    print("Session ended.")


if __name__ == "__main__":
    asyncio.run(main())
