"""
Command-line interface for the atlas packer.
Provides commands for packing atlases and inspecting configuration.
"""

import sys
import os
import logging
from pathlib import Path
from typing import Optional, List
import typer
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .config import PackerConfig
from .processing.atlas import AtlasPacker, AtlasValidator, AtlasGenerationError, BACKGROUND_CHECKERBOARD
from .processing.loader import load_sources
from .processing.packing import PackingError, PackingOverflowError
from .utils.image import ImageLoadError
from .utils.log import setup_logging

# Initialize typer app and rich console
app = typer.Typer(
    name="atlas-packer",
    help="Texture atlas packer for XS engine sprites - Pack images into a single atlas with a frame map",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]atlas-packer pack sprites/*.png -o atlas.png[/cyan]                Pack with MaxRects
  [cyan]atlas-packer pack sprites/*.png --strategy shelf -p 4[/cyan]      Shelf packing, 4px padding
  [cyan]atlas-packer pack sprites/*.png --auto-trim --preview[/cyan]      Trim transparent borders
  [cyan]atlas-packer config --env-vars[/cyan]                             List environment overrides
    """
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """Texture atlas packer."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def pack(
    images: List[Path] = typer.Argument(..., help="Source images to pack"),
    output: Path = typer.Option(Path("atlas.png"), "--output", "-o", help="Atlas image output path"),
    frame_map: Optional[Path] = typer.Option(None, "--frame-map", help="Frame map output path (defaults next to the atlas)"),
    frame_map_format: Optional[str] = typer.Option(None, "--frame-map-format", help="Frame map format: json or toml"),
    sprite_data: Optional[Path] = typer.Option(None, "--sprite-data", help="Also write a sprite editor document"),
    image_format: Optional[str] = typer.Option(None, "--format", "-f", help="Atlas image format: PNG or WEBP (defaults to the output extension)"),
    padding: Optional[int] = typer.Option(None, "--padding", "-p", help="Padding between images in pixels"),
    strategy: Optional[str] = typer.Option(None, "--strategy", "-s", help="Packing strategy: shelf or maxrects"),
    auto_trim: Optional[bool] = typer.Option(None, "--auto-trim/--no-auto-trim", help="Trim transparent borders"),
    allow_partial: Optional[bool] = typer.Option(None, "--allow-partial/--strict", help="Write the atlas even if some images do not fit"),
    power_of_two: Optional[bool] = typer.Option(None, "--pot/--no-pot", help="Round atlas size up to powers of two"),
    preview: bool = typer.Option(False, "--preview", help="Render a checkerboard behind the sprites"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path")
):
    """Pack images into a texture atlas."""
    console.print("[bold blue]Packing texture atlas...[/bold blue]")

    config = _load_config(config_file)

    if padding is not None:
        config.padding = padding
    if strategy is not None:
        config.strategy = strategy
    if auto_trim is not None:
        config.auto_trim = auto_trim
    if allow_partial is not None:
        config.allow_partial = allow_partial
    if power_of_two is not None:
        config.power_of_two = power_of_two
    if image_format is not None:
        config.output_format = image_format.upper()
    if frame_map_format is not None:
        config.frame_map_format = frame_map_format.lower()
    if preview:
        config.background = BACKGROUND_CHECKERBOARD

    errors = config.validate()
    if errors:
        console.print("[red]Configuration validation errors:[/red]")
        for error in errors:
            console.print(f"  • {error}")
        raise typer.Exit(1)

    atlas_config = config.to_atlas_config()

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            task1 = progress.add_task("Loading images...", total=None)
            sources = load_sources(images, auto_trim=config.auto_trim,
                                   alpha_threshold=config.alpha_threshold)
            progress.update(task1, description=f"✓ Loaded {len(sources)} images")

            task2 = progress.add_task(f"Packing with {atlas_config.strategy.value}...", total=None)
            result = AtlasPacker(atlas_config).pack_atlas(sources)
            progress.update(task2, description=f"✓ Packed into {result.width}×{result.height}")

        output.parent.mkdir(parents=True, exist_ok=True)
        result.save_atlas(output, format=config.output_format,
                          compression_level=config.compression_level)

        frame_map_path = frame_map or output.with_suffix(f".{config.frame_map_format}")
        frame_map_path.parent.mkdir(parents=True, exist_ok=True)
        result.save_frame_map(frame_map_path, format=config.frame_map_format)

        if sprite_data:
            sprite_data.parent.mkdir(parents=True, exist_ok=True)
            result.save_sprite_data(sprite_data, output.name)

    except ImageLoadError as e:
        console.print(f"[red]Image error:[/red] {e}")
        raise typer.Exit(1)
    except PackingOverflowError as e:
        console.print(f"[red]Packing overflow:[/red] {len(e.unplaced)} image(s) did not fit")
        for source_id in e.unplaced:
            console.print(f"  • {source_id}")
        console.print("[yellow]Use --allow-partial to write the incomplete atlas anyway[/yellow]")
        raise typer.Exit(1)
    except (PackingError, AtlasGenerationError) as e:
        console.print(f"[red]Packing error:[/red] {e}")
        raise typer.Exit(1)
    except OSError as e:
        console.print(f"[red]Error writing output:[/red] {e}")
        raise typer.Exit(1)

    issues = AtlasValidator(atlas_config).validate_atlas_result(result, sources)
    for issue in issues:
        console.print(f"[yellow]Warning:[/yellow] {issue}")

    if result.pack_result and result.pack_result.unplaced:
        console.print(f"[yellow]Warning: {len(result.pack_result.unplaced)} image(s) left out of the atlas[/yellow]")

    console.print(f"[green]✓[/green] Atlas written to {output}")
    console.print(f"[green]✓[/green] Frame map written to {frame_map_path}")
    if sprite_data:
        console.print(f"[green]✓[/green] Sprite data written to {sprite_data}")

    _display_pack_summary(result)


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    validate_config: bool = typer.Option(False, "--validate", help="Validate configuration file"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    env_vars: bool = typer.Option(False, "--env-vars", help="Show available environment variables")
):
    """Manage packer configuration."""
    if env_vars:
        _display_env_vars()
        return

    if not (show or validate_config):
        console.print("Use --show to display configuration, --validate to check it, or --env-vars to see environment variables.")
        return

    config = _load_config(config_file)

    if show:
        _display_config(config)

    if validate_config:
        errors = config.validate()
        if errors:
            console.print("[red]Configuration validation errors:[/red]")
            for error in errors:
                console.print(f"  • {error}")
            raise typer.Exit(1)
        console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def version():
    """Show atlas packer version information."""
    console.print("[bold]XS Atlas Packer[/bold]")
    console.print(f"Version: {__version__}")
    console.print("Python: " + sys.version.split()[0])

    from importlib import metadata

    deps_status = []
    for package in ("Pillow", "numpy", "typer", "rich", "toml"):
        try:
            deps_status.append((package, metadata.version(package), "✓"))
        except metadata.PackageNotFoundError:
            deps_status.append((package, "Not installed", "✗"))

    console.print("\n[bold]Dependencies:[/bold]")
    table = Table(show_header=False)
    table.add_column("Status", width=3)
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")

    for name, package_version, status in deps_status:
        color = "green" if status == "✓" else "red"
        table.add_row(f"[{color}]{status}[/{color}]", name, package_version)

    console.print(table)


def _load_config(config_file: Optional[Path]) -> PackerConfig:
    """Load configuration from file or use defaults with environment variable support."""
    config = None

    if config_file:
        if not config_file.exists():
            console.print(f"[red]Configuration file not found:[/red] {config_file}")
            raise typer.Exit(1)
        config = _read_config(config_file)
        console.print(f"[dim]Using configuration: {config_file}[/dim]")
    else:
        default_configs = [
            Path("atlas_packer.toml"),
            Path("atlas_packer.json"),
            Path("scripts/atlas_packer.toml"),
            Path("scripts/atlas_packer.json")
        ]

        for config_path in default_configs:
            if config_path.exists():
                console.print(f"[dim]Using configuration: {config_path}[/dim]")
                config = _read_config(config_path)
                break

        if config is None:
            console.print("[dim]Using default configuration[/dim]")

    try:
        if config is None:
            config = PackerConfig.default()
        else:
            config = PackerConfig._apply_env_overrides(config)
    except ValueError as e:
        console.print(f"[red]Invalid environment override:[/red] {e}")
        raise typer.Exit(1)

    env_vars_used = [key for key in os.environ if key.startswith('ATLAS_PACKER_')]
    if env_vars_used:
        console.print(f"[dim]Environment overrides applied: {len(env_vars_used)} variables[/dim]")

    return config


def _read_config(config_path: Path) -> PackerConfig:
    try:
        return PackerConfig.from_file(config_path)
    except (ValueError, TypeError, OSError) as e:
        console.print(f"[red]Error reading configuration:[/red] {e}")
        raise typer.Exit(1)


def _display_pack_summary(result) -> None:
    """Display packing summary."""
    table = Table(title="Atlas Summary", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    metadata = result.metadata
    table.add_row("Atlas size", f"{result.width}×{result.height}")
    table.add_row("Strategy", str(metadata.get("strategy")))
    table.add_row("Padding", str(metadata.get("padding")))
    table.add_row("Sprites", str(metadata.get("sprite_count")))
    table.add_row("Efficiency", f"{metadata.get('layout_efficiency', 0.0):.1%}")
    if result.pack_result:
        table.add_row("Attempts", str(result.pack_result.attempts))

    console.print(table)


def _display_config(config: PackerConfig) -> None:
    """Display configuration in a formatted table."""
    table = Table(title="Atlas Packer Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Packing settings
    table.add_row("Padding", str(config.padding))
    table.add_row("Strategy", config.strategy)
    table.add_row("Allow Partial", str(config.allow_partial))
    table.add_row("Power Of Two", str(config.power_of_two))
    table.add_row("Max Size", f"{config.max_size[0]}×{config.max_size[1]}")

    # Trim settings
    table.add_row("Auto Trim", str(config.auto_trim))
    table.add_row("Alpha Threshold", str(config.alpha_threshold))

    # Output settings
    table.add_row("Output Format", config.output_format or "from output extension")
    table.add_row("Compression Level", str(config.compression_level))
    table.add_row("Background", config.background)
    table.add_row("Frame Map Format", config.frame_map_format)

    console.print(table)


def _display_env_vars() -> None:
    """Display available environment variables for configuration."""
    table = Table(title="Atlas Packer Environment Variables")
    table.add_column("Environment Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example", style="green")

    env_vars = [
        ("ATLAS_PACKER_PADDING", "Padding between images in pixels", "2"),
        ("ATLAS_PACKER_STRATEGY", "Packing strategy (shelf/maxrects)", "maxrects"),
        ("ATLAS_PACKER_ALLOW_PARTIAL", "Accept incomplete atlases (true/false)", "false"),
        ("ATLAS_PACKER_POWER_OF_TWO", "Round atlas size to powers of two (true/false)", "false"),
        ("ATLAS_PACKER_AUTO_TRIM", "Trim transparent borders (true/false)", "true"),
        ("ATLAS_PACKER_ALPHA_THRESHOLD", "Highest alpha treated as transparent (0-255)", "0"),
        ("ATLAS_PACKER_OUTPUT_FORMAT", "Atlas image format", "PNG"),
        ("ATLAS_PACKER_COMPRESSION_LEVEL", "Compression level (0-9)", "6"),
        ("ATLAS_PACKER_BACKGROUND", "Atlas background (transparent/checkerboard)", "transparent"),
        ("ATLAS_PACKER_FRAME_MAP_FORMAT", "Frame map format (json/toml)", "json"),
    ]

    for var_name, description, example in env_vars:
        table.add_row(var_name, description, example)

    console.print(table)
    console.print("\n[dim]Set these environment variables to override configuration file settings.[/dim]")
    console.print("[dim]Example: export ATLAS_PACKER_STRATEGY=shelf[/dim]")


if __name__ == "__main__":
    app()
