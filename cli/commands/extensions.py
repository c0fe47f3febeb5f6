"""Extensions CLI commands for extman.

Install, activate, update and remove extensions.
"""

from typing import Optional

import typer
from rich.table import Table

from extman.output import (
    console,
    format_status,
    print_error,
    print_info,
    print_key_value,
    print_result,
    print_success,
    print_warning,
)

extensions_app = typer.Typer(
    name="extensions",
    help="Install and manage extensions.",
    no_args_is_help=True,
)


def get_manager():
    """Get the extension lifecycle manager."""
    from extman.context import get_context

    return get_context().manager


def _exit_on_failure(result) -> None:
    print_result(result)
    if not result.success:
        raise typer.Exit(1)


@extensions_app.command("list")
def list_extensions(
    active: bool = typer.Option(
        False,
        "--active",
        help="Only show active extensions",
    ),
    updates: bool = typer.Option(
        False,
        "--updates",
        "-u",
        help="Only show extensions with an update available",
    ),
) -> None:
    """List installed extensions.

    Examples:
        extman extensions list
        extman extensions list --active
    """
    manager = get_manager()

    if active:
        installed = manager.list_active()
    elif updates:
        installed = manager.updates_available()
    else:
        installed = manager.list_installed()

    if not installed:
        console.print("[yellow]No extensions installed[/yellow]")
        console.print("[dim]Install extensions with: extman extensions install <slug>[/dim]")
        return

    table = Table(title="Installed Extensions")
    table.add_column("Slug", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Latest")
    table.add_column("Premium", justify="center")

    for record in sorted(installed, key=lambda r: r.slug):
        table.add_row(
            record.slug,
            record.name,
            record.version,
            format_status(manager.status_of(record.slug)),
            record.latest_known_version or "-",
            "yes" if record.is_premium else "",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(installed)} extensions[/dim]")


@extensions_app.command("show")
def show(
    slug: str = typer.Argument(..., help="Extension slug"),
) -> None:
    """Show details of an installed extension.

    Example:
        extman extensions show seo-kit
    """
    manager = get_manager()
    record = manager.get_record(slug)

    if not record:
        print_error(f"Extension '{slug}' is not installed")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]{record.name}[/bold cyan] v{record.version}")
    if record.author:
        console.print(f"[dim]by {record.author}[/dim]")
    if record.description:
        console.print(f"\n{record.description}")

    console.print()
    print_key_value("Status", format_status(manager.status_of(slug)))
    print_key_value("Category", record.category)
    print_key_value("Install path", record.install_path)
    print_key_value("Entry point", record.main_file)
    print_key_value("Installed", record.installed_at.isoformat(timespec="seconds"))
    print_key_value("Updated", record.updated_at.isoformat(timespec="seconds"))
    if record.latest_known_version:
        print_key_value("Latest version", record.latest_known_version)

    if record.is_premium:
        expires = record.license_expires_at
        print_key_value("License", "present" if record.license_key else "missing")
        print_key_value("License expires", expires.isoformat(timespec="seconds") if expires else "-")


@extensions_app.command("install")
def install(
    slug: str = typer.Argument(..., help="Extension slug"),
    license_key: Optional[str] = typer.Option(
        None,
        "--license-key",
        "-k",
        help="License key for premium extensions",
    ),
    activate: bool = typer.Option(
        False,
        "--activate",
        "-a",
        help="Activate after installing",
    ),
) -> None:
    """Install an extension from the marketplace.

    Examples:
        extman extensions install seo-kit
        extman extensions install pro-forms --license-key ABC-123 --activate
    """
    manager = get_manager()

    with console.status(f"Installing {slug}..."):
        result = manager.install(slug, license_key=license_key)
    _exit_on_failure(result)

    if activate:
        _exit_on_failure(manager.activate(slug))


@extensions_app.command("activate")
def activate(
    slug: str = typer.Argument(..., help="Extension slug"),
) -> None:
    """Activate an installed extension.

    Example:
        extman extensions activate seo-kit
    """
    _exit_on_failure(get_manager().activate(slug))


@extensions_app.command("deactivate")
def deactivate(
    slug: str = typer.Argument(..., help="Extension slug"),
) -> None:
    """Deactivate an extension without uninstalling it.

    Example:
        extman extensions deactivate seo-kit
    """
    _exit_on_failure(get_manager().deactivate(slug))


@extensions_app.command("update")
def update(
    slug: Optional[str] = typer.Argument(
        None,
        help="Extension slug (omit with --all)",
    ),
    all_exts: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Update every extension with an update available",
    ),
) -> None:
    """Update extension(s) to the latest version.

    Examples:
        extman extensions update seo-kit
        extman extensions update --all
    """
    manager = get_manager()

    if not slug and not all_exts:
        print_error("Specify an extension slug or use --all")
        raise typer.Exit(1)

    if slug:
        with console.status(f"Updating {slug}..."):
            result = manager.update(slug)
        _exit_on_failure(result)
        if result.details.get("reactivated") is False:
            print_warning(f"{slug} was updated but could not be reactivated")
        return

    pending = manager.updates_available()
    if not pending:
        print_success("All extensions are up to date")
        return

    failed = 0
    for record in pending:
        console.print(f"Updating {record.slug}: {record.version} → {record.latest_known_version}")
        result = manager.update(record.slug)
        print_result(result)
        if not result.success:
            failed += 1

    if failed:
        raise typer.Exit(1)


@extensions_app.command("uninstall")
def uninstall(
    slug: str = typer.Argument(..., help="Extension slug"),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation",
    ),
) -> None:
    """Uninstall an extension and delete its files.

    Example:
        extman extensions uninstall seo-kit
    """
    manager = get_manager()

    record = manager.get_record(slug)
    if record is None:
        print_info(f"Extension '{slug}' is not installed")
        return

    if not yes:
        if not typer.confirm(f"Uninstall {slug} v{record.version}?"):
            raise typer.Exit(0)

    _exit_on_failure(manager.uninstall(slug))


@extensions_app.command("license")
def license_(
    slug: str = typer.Argument(..., help="Extension slug"),
    license_key: str = typer.Argument(..., help="License key"),
) -> None:
    """Validate and store a license key for a premium extension.

    Example:
        extman extensions license pro-forms ABC-123
    """
    _exit_on_failure(get_manager().activate_license(slug, license_key))


@extensions_app.command("check-updates")
def check_updates() -> None:
    """Ask the marketplace for newer versions of installed extensions.

    Example:
        extman extensions check-updates
    """
    manager = get_manager()

    with console.status("Checking for updates..."):
        result = manager.check_for_updates()
    _exit_on_failure(result)

    for slug in result.details.get("skipped", []):
        print_warning(f"Skipped {slug}: another operation is running")

    pending = manager.updates_available()
    if not pending:
        return

    table = Table(title="Updates Available")
    table.add_column("Slug", style="cyan")
    table.add_column("Installed")
    table.add_column("Latest", style="green")
    for record in pending:
        table.add_row(record.slug, record.version, record.latest_known_version)
    console.print(table)
