"""Marketplace CLI commands for extman.

Browse and search the extension marketplace.
"""

from typing import Optional

import typer
from rich.panel import Panel
from rich.table import Table

from extensions.errors import LifecycleError
from extensions.marketplace import CATEGORIES
from extman.output import console, print_error

marketplace_app = typer.Typer(
    name="marketplace",
    help="Browse extensions in the marketplace.",
    no_args_is_help=True,
)


def get_marketplace_client():
    """Get the marketplace client."""
    from extman.context import get_context

    return get_context().marketplace


def _price(ext) -> str:
    if ext.is_free:
        return "Free"
    return f"{ext.price:.2f} {ext.currency}"


def _fail(action: str, error: LifecycleError) -> None:
    print_error(f"{action} failed ({error.kind.value}): {error.message}")
    raise typer.Exit(1)


@marketplace_app.command("search")
def search(
    query: str = typer.Argument("", help="Search query"),
    category: Optional[str] = typer.Option(
        None,
        "--category",
        "-c",
        help="Filter by category slug",
    ),
    page: int = typer.Option(1, "--page", "-p", help="Result page"),
    sort: str = typer.Option("popular", "--sort", help="Sort order (popular, rating, newest)"),
    free_only: bool = typer.Option(
        False,
        "--free",
        "-f",
        help="Only show free extensions",
    ),
) -> None:
    """Search for extensions in the marketplace.

    Examples:
        extman marketplace search payments
        extman marketplace search --category security
        extman marketplace search forms --free
    """
    if category and category not in CATEGORIES:
        print_error(f"Unknown category: {category}. Use: {', '.join(CATEGORIES)}")
        raise typer.Exit(1)

    client = get_marketplace_client()

    try:
        results = client.search(query, category=category or "", page=page, sort=sort)
    except LifecycleError as e:
        _fail("Search", e)

    extensions = results.extensions
    if free_only:
        extensions = [ext for ext in extensions if ext.is_free]

    if not extensions:
        console.print(f"[yellow]No extensions found for: {query or category or 'all'}[/yellow]")
        return

    table = Table(title=f"Search Results: {query}" if query else "Search Results")
    table.add_column("Slug", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Rating", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Description")

    for ext in extensions:
        desc = ext.description[:35] + "..." if len(ext.description) > 35 else ext.description
        table.add_row(
            ext.slug,
            ext.name,
            ext.version,
            f"{ext.rating:.1f}" if ext.rating_count else "-",
            _price(ext),
            desc,
        )

    console.print(table)
    console.print(f"\n[dim]Page {page} of {results.pages} ({results.total} results)[/dim]")


@marketplace_app.command("featured")
def featured() -> None:
    """Show featured extensions.

    Example:
        extman marketplace featured
    """
    client = get_marketplace_client()

    try:
        results = client.fetch_featured()
    except LifecycleError as e:
        _fail("Fetching featured extensions", e)

    if not results:
        console.print("[yellow]No featured extensions available[/yellow]")
        return

    console.print("[bold]Featured Extensions[/bold]\n")

    for ext in results:
        panel = Panel(
            f"{ext.description}\n\n"
            f"[dim]v{ext.version} | {_price(ext)} | {ext.active_installs:,} installs[/dim]",
            title=f"[cyan]{ext.name}[/cyan] ({ext.slug})",
            title_align="left",
        )
        console.print(panel)


@marketplace_app.command("info")
def info(
    slug: str = typer.Argument(..., help="Extension slug"),
) -> None:
    """Show detailed information about an extension.

    Example:
        extman marketplace info seo-kit
    """
    client = get_marketplace_client()

    try:
        ext = client.fetch_info(slug)
    except LifecycleError as e:
        _fail("Fetching extension info", e)

    rating = f"★ {ext.rating:.1f} ({ext.rating_count})" if ext.rating_count else "No ratings yet"

    console.print(f"\n[bold cyan]{ext.name or ext.slug}[/bold cyan] v{ext.version}")
    if ext.author:
        console.print(f"[dim]by {ext.author}[/dim]")
    console.print(f"\n{ext.long_description or ext.description}\n")

    console.print("[bold]Details[/bold]")
    console.print(f"  Category: {CATEGORIES.get(ext.category, ext.category)}")
    console.print(f"  Price: {_price(ext)}")
    console.print(f"  Active installs: {ext.active_installs:,}")
    console.print(f"  Rating: {rating}")
    if ext.last_updated:
        console.print(f"  Updated: {ext.last_updated}")

    console.print("\n[bold]Requirements[/bold]")
    console.print(f"  Runtime: {ext.requires_runtime}")
    console.print(f"  Platform: {ext.requires_platform}")
    console.print(f"  Host application: {ext.requires_app}")

    if ext.features:
        console.print("\n[bold]Features[/bold]")
        for feature in ext.features:
            console.print(f"  - {feature}")

    if ext.tags:
        console.print(f"\n[bold]Tags[/bold]: {', '.join(ext.tags)}")

    hint = f"extman extensions install {slug}"
    if ext.is_premium:
        hint += " --license-key <key>"
    console.print(f"\n[dim]Install with: {hint}[/dim]")


@marketplace_app.command("categories")
def categories() -> None:
    """List marketplace categories.

    Example:
        extman marketplace categories
    """
    table = Table(title="Categories")
    table.add_column("Slug", style="cyan")
    table.add_column("Name")

    for slug, name in CATEGORIES.items():
        table.add_row(slug, name)

    console.print(table)
