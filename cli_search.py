"""Terminal client driving the search controller against the products index."""
from __future__ import annotations

import argparse
import asyncio
from typing import Iterable, List

from product_search.cache import InMemoryCache
from product_search.controller import SearchController
from product_search.es_client import build_gateway
from product_search.state import FacetDimension
from product_search.url_state import format_list, to_query_string

GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"
HELP = """Commands:
  <text>              set the search text (debounced)
  :cat LABEL          toggle a category filter
  :brand LABEL        toggle a brand filter
  :page N             go to page N
  :more categories    load more categories (or: brands)
  :clear              clear text and filters
  :url                print the shareable query string
  exit                quit"""


def build_controller() -> SearchController:
    return SearchController(build_gateway(cache=InMemoryCache()))


def pretty_print(controller: SearchController) -> None:
    result = controller.result
    status = f"{RED}failed{RESET}" if controller.error else f"{GREEN}ok{RESET}"
    print(
        f"Query: {controller.query.text!r} | categories: {list(controller.query.categories)} | "
        f"brands: {list(controller.query.brands)} | results: {result.total_items} | {status}"
    )
    for idx, item in enumerate(result.items, start=(result.current_page - 1) * result.page_size + 1):
        print(f"  {idx:03d}. {item.brand} | {item.name} | {', '.join(item.categories)}")
    pages = " ".join(
        f"[{page}]" if page == result.current_page else str(page) for page in controller.pages()
    )
    if pages:
        print(f"Pages: {pages}")


def pretty_print_facets(controller: SearchController, dimension: FacetDimension) -> None:
    facet = controller.facets.get(dimension)
    selected = controller.query.categories if dimension is FacetDimension.CATEGORY else controller.query.brands
    suffix = f" {RED}(loading failed){RESET}" if facet.error else ""
    print(f"{dimension.value} facets: {len(facet.items)}/{facet.total}{suffix}")
    for item in facet.items:
        marker = "*" if item.label in selected else " "
        print(f"  {marker} {item.label} ({item.count})")


async def run_command(controller: SearchController, line: str) -> bool:
    """Execute one shell line; returns False when the shell should exit."""
    if line.lower() in {"exit", "quit"}:
        return False
    if line in {":help", "?"}:
        print(HELP)
        return True
    if not line.startswith(":"):
        controller.set_query_text(line)
        await controller.flush()
        pretty_print(controller)
        return True

    command, _, argument = line[1:].partition(" ")
    argument = argument.strip()
    if command == "cat" and argument:
        await controller.toggle_category(argument)
        pretty_print(controller)
        pretty_print_facets(controller, FacetDimension.BRAND)
    elif command == "brand" and argument:
        await controller.toggle_brand(argument)
        pretty_print(controller)
        pretty_print_facets(controller, FacetDimension.CATEGORY)
    elif command == "page" and argument.isdigit():
        await controller.set_page(int(argument))
        pretty_print(controller)
    elif command == "more" and argument in {"categories", "brands"}:
        dimension = FacetDimension.CATEGORY if argument == "categories" else FacetDimension.BRAND
        await controller.load_more(dimension)
        pretty_print_facets(controller, dimension)
    elif command == "clear":
        await controller.clear_query()
        await controller.clear_filters()
        pretty_print(controller)
    elif command == "url":
        print(f"?{to_query_string(controller.query)}")
    else:
        print(HELP)
    return True


async def interactive_shell() -> None:
    controller = build_controller()
    await controller.refresh()
    print("Interactive product search. Type ':help' for commands, 'exit' to quit.")
    pretty_print_facets(controller, FacetDimension.CATEGORY)
    while True:
        try:
            line = (await asyncio.to_thread(input, "> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not line:
            continue
        if not await run_command(controller, line):
            return


async def one_shot(query: str, categories: List[str], brands: List[str], page: int) -> None:
    controller = build_controller()
    params = {"q": query, "categories": format_list(categories), "brands": format_list(brands), "page": str(page)}
    await controller.hydrate_from_url(params)
    pretty_print(controller)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the product search")
    parser.add_argument("query", nargs="?", help="Search text. If omitted, starts REPL mode.")
    parser.add_argument("--category", action="append", default=[], help="Category filter (repeatable)")
    parser.add_argument("--brand", action="append", default=[], help="Brand filter (repeatable)")
    parser.add_argument("--page", type=int, default=1)
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.query or args.category or args.brand:
        asyncio.run(one_shot(args.query or "", args.category, args.brand, args.page))
        return 0
    asyncio.run(interactive_shell())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
