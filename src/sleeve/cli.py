"""Async CLI for Sleeve.

Loads the library from the library server, resolves missing artwork and
reports what every song will display.
"""

from pathlib import Path

import asyncclick as click
import humanfriendly
from rich import get_console
from rich.table import Table

from . import __version__
from .core import Sleeve, configure_logging, open_sleeve
from .utils.cover_keys import song_key
from .utils.exceptions import ConfigurationError
from .utils.image_cache import ImageCache
from .utils.progress import RichCoverProgress
from .utils.settings import (
    AppSettings,
    default_settings_path,
    load_settings,
    save_settings,
)

# =============================================================================
# Helper Functions
# =============================================================================


def describe_cover(image: str | None) -> str:
    """Short human description of an image reference.

    Args:
        image: URL, data URI or None.

    Returns:
        Display text for tables.
    """
    if not image:
        return "[dim]none[/dim]"
    if image.startswith("data:"):
        mime = image[5:].split(";", 1)[0]
        return f"{mime} ({humanfriendly.format_size(len(image), binary=True)})"
    return image if len(image) <= 60 else image[:57] + "..."


def render_library(sleeve: Sleeve) -> Table:
    """Builds a table of every song and its displayed artwork.

    Args:
        sleeve: A loaded orchestrator.

    Returns:
        The rich table.
    """
    table = Table(title=f"{len(sleeve.library.songs)} songs", expand=True)
    table.add_column("File", overflow="fold")
    table.add_column("Artist / Album", overflow="fold")
    table.add_column("Duration", justify="right")
    table.add_column("Cover unit", overflow="fold")
    table.add_column("Cover", overflow="fold")
    for song in sleeve.library.songs:
        table.add_row(
            song.filename,
            f"{song.artist} / {song.album}",
            song.duration,
            song_key(song),
            describe_cover(sleeve.display_cover(song)),
        )
    return table


async def load_and_drain(sleeve: Sleeve, force: bool) -> RichCoverProgress:
    """Loads the library and waits until every queued cover is processed.

    Args:
        sleeve: A running orchestrator.
        force: Force a rescan after loading.

    Returns:
        The progress renderer holding the counters.

    Raises:
        click.ClickException: If the library cannot be loaded.
    """
    with RichCoverProgress() as progress:
        unsubscribe = sleeve.reporter.subscribe(progress)
        try:
            if not await sleeve.reload_library():
                server_url = sleeve.settings.general.server_url
                raise click.ClickException(
                    f"Could not load the library from {server_url}"
                )
            if force:
                await sleeve.rescan(force=True)
            await sleeve.wait_until_idle()
        finally:
            unsubscribe()
    return progress


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group(invoke_without_command=True)
@click.option(
    "-s",
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Settings file. Defaults to the user config directory.",
)
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
async def cli(ctx: click.Context, settings_path: Path | None, debug: bool) -> None:
    """Sleeve - cover art for your music library.

    \b
    Examples:
        sleeve scan
        sleeve scan --force
        sleeve play "Kill Bill.mp3"
    """
    path = settings_path or default_settings_path()
    try:
        settings = load_settings(path)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    configure_logging(debug or settings.advanced.debug_mode)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["settings_path"] = path

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("version")
def version_command() -> None:
    """Show Sleeve version information."""
    click.echo(f"Sleeve v{__version__}")


# =============================================================================
# Library Commands
# =============================================================================


@cli.command("scan")
@click.option("-f", "--force", is_flag=True, help="Re-check songs that have a cover.")
@click.pass_context
async def scan_command(ctx: click.Context, force: bool) -> None:
    """Load the library and resolve missing cover art."""
    settings: AppSettings = ctx.obj["settings"]
    async with open_sleeve(settings) as sleeve:
        progress = await load_and_drain(sleeve, force)
        get_console().print(render_library(sleeve))
        click.echo(progress.summary)


@cli.command("play")
@click.argument("filename")
@click.pass_context
async def play_command(ctx: click.Context, filename: str) -> None:
    """Select a song and resolve its cover first."""
    settings: AppSettings = ctx.obj["settings"]
    async with open_sleeve(settings) as sleeve:
        if not await sleeve.reload_library():
            raise click.ClickException("Could not load the library.")
        if await sleeve.play(filename) is None:
            raise click.ClickException(f'"{filename}" is not in the library.')
        await sleeve.wait_until_idle()

        song = sleeve.library.now_playing
        if song is None:
            raise click.ClickException(f'"{filename}" left the library.')
        click.echo(f"Now playing: {song.title} - {song.artist} [{song.duration}]")
        click.echo(f"Cover: {describe_cover(sleeve.display_cover(song))}")
        if song.lyrics:
            click.echo(f"Lyrics: {len(song.lyrics)} timed lines")


# =============================================================================
# Settings Commands
# =============================================================================


@cli.command("settings")
@click.option(
    "--auto-load/--no-auto-load",
    default=None,
    help="Queue missing covers automatically.",
)
@click.option(
    "--animated/--no-animated",
    default=None,
    help="Prefer animated covers when available.",
)
@click.pass_context
async def settings_command(
    ctx: click.Context, auto_load: bool | None, animated: bool | None
) -> None:
    """Show or change cover settings."""
    settings: AppSettings = ctx.obj["settings"]
    path: Path = ctx.obj["settings_path"]

    if auto_load is not None or animated is not None:
        if auto_load is not None:
            settings.covers.auto_load_covers = auto_load
        if animated is not None:
            settings.covers.disable_animated_covers = not animated
        save_settings(path, settings)
        click.echo(f"Saved {path}")

    covers = settings.covers
    click.echo(f"Server:            {settings.general.server_url}")
    click.echo(f"Music path:        {settings.general.music_path or '(server)'}")
    click.echo(f"Cache path:        {settings.cache_path}")
    click.echo(f"Auto-load covers:  {covers.auto_load_covers}")
    click.echo(f"Animated covers:   {not covers.disable_animated_covers}")
    click.echo(
        f"Artwork:           {covers.resolution}px {covers.image_format} "
        f"({covers.compression} compression)"
    )


# =============================================================================
# Cache Commands
# =============================================================================


@cli.group("cache")
def cache_group() -> None:
    """Manage the offline cover cache."""


@cache_group.command("info")
@click.pass_context
async def cache_info(ctx: click.Context) -> None:
    """Show the number and size of cached covers."""
    settings: AppSettings = ctx.obj["settings"]
    cache = ImageCache(settings.cache_path)
    if not cache.available:
        raise click.ClickException(f"Cache at {cache.path} is unavailable.")
    count, size = await cache.stats()
    size_text = humanfriendly.format_size(size, binary=True)
    click.echo(f"{cache.path}: {count} covers, {size_text}")


@cache_group.command("clear")
@click.confirmation_option(prompt="Are you sure you want to clear the cover cache?")
@click.pass_context
async def cache_clear(ctx: click.Context) -> None:
    """Delete every cached cover."""
    settings: AppSettings = ctx.obj["settings"]
    removed = await ImageCache(settings.cache_path).clear()
    click.echo(f"Removed {removed} cached covers.")


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for the Sleeve CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\n\t^C pressed - abort")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
