"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from arctic_helper.api.lora_adapter import LoraMetadata
from arctic_helper.models.catalog import Catalog, VramTier
from arctic_helper.models.stats import DownloadStats
from arctic_helper.models.transfer import (
    BatchResult,
    BatchStatus,
    OutcomeStatus,
    ResolvedArtifact,
)
from arctic_helper.utils.formatting import format_duration, format_size, format_speed


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Run `arctic-helper init --install-root <ComfyUI folder>`.",
            "• Check the values shown by `arctic-helper --show-config`.",
        ],
        "CatalogUnavailable": [
            "• Check your internet connection and try again.",
            "• Point ARCTIC_CATALOG_PATH at a local catalog.json.",
            "• Reinstall the application if the bundled catalog is damaged.",
        ],
        "UnknownModel": [
            "• Run `arctic-helper models` to list the available model ids.",
            "• The catalog may have changed; refresh it and try again.",
        ],
        "UnknownVariant": [
            "• Run `arctic-helper models --vram-tier <tier>` to list variant ids.",
        ],
        "UnknownLora": [
            "• Run `arctic-helper loras` to list the available LoRA ids.",
        ],
        "EngineBusy": [
            "• Wait for the current download to finish or cancel it first.",
        ],
        "Unauthorized": [
            "• Create an API key at civitai.com/user/account.",
            "• Save it with `arctic-helper init --civitai-token <key>`.",
            "• Or export CIVITAI_TOKEN before running the command.",
        ],
        "TransientError": [
            "• Civitai might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
        "FileIntegrityError": [
            "• The download was corrupted or tampered with and has been removed.",
            "• Try again; if it keeps failing, report it on the project page.",
        ],
        "UpdateError": [
            "• Check your internet connection.",
            "• Download the latest release manually from the project page.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in sorted(config_data.items()):
        if key == "civitai_token" and value:
            value = "[hidden]"
        content += f"{key} = {escape(str(value))}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_catalog_table(catalog: Catalog, vram_tier: VramTier | None = None):
    """Lists selectable models and their variants, optionally for one VRAM tier."""
    console = Console()
    table = Table(title=f"Models (catalog v{catalog.catalog_version})", box=box.SIMPLE_HEAD)
    table.add_column("Model", style="cyan")
    table.add_column("Family", style="dim")
    table.add_column("Variant", style="green")
    table.add_column("Tier", justify="center")
    table.add_column("Details")

    for model in catalog.selectable_models():
        variants = model.variants_for_tier(vram_tier) if vram_tier else model.variants
        if not variants:
            continue
        for i, variant in enumerate(variants):
            table.add_row(
                model.id if i == 0 else "",
                model.family if i == 0 else "",
                variant.id,
                variant.tier.value,
                escape(variant.selection_label()),
            )
    families = catalog.model_families()
    if families:
        table.caption = f"Families: {escape(', '.join(families))}"
    console.print(table)


def print_lora_table(catalog: Catalog, family: str | None = None):
    console = Console()
    table = Table(title="LoRAs", box=box.SIMPLE_HEAD)
    table.add_column("#", style="dim", justify="right")
    table.add_column("LoRA", style="cyan")
    table.add_column("Name")
    table.add_column("Family", style="dim")
    table.add_column("Source")
    for i, lora in enumerate(catalog.loras_in_family(family), 1):
        source = "Civitai" if lora.host_ref else "Direct link"
        table.add_row(str(i), lora.id, escape(lora.display_name), lora.family, source)
    if not family:
        table.caption = f"Families: {escape(', '.join(catalog.lora_families()))}"
    console.print(table)


def print_plan_table(artifacts: list[ResolvedArtifact]):
    """Shows what a download would fetch and where it would go."""
    console = Console()
    table = Table(title="Download plan", box=box.SIMPLE_HEAD)
    table.add_column("#", style="dim", justify="right")
    table.add_column("File", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Destination", style="dim")
    for i, artifact in enumerate(artifacts, 1):
        size = format_size(artifact.size) if artifact.size else "?"
        table.add_row(str(i), artifact.name, size, str(artifact.folder))
    console.print(table)
    total = sum(a.size or 0 for a in artifacts)
    console.print(f"[bold]Total:[/bold] {len(artifacts)} file(s), {format_size(total)}")


def print_lora_metadata(name: str, metadata: LoraMetadata):
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    creator = escape(metadata.creator)
    if metadata.creator_url:
        creator += f" [dim]({metadata.creator_url})[/dim]"
    table.add_row("Creator:", creator)
    table.add_row("Recommended Strength:", metadata.strength)
    table.add_row(
        "Trigger Words:",
        escape(", ".join(metadata.triggers)) if metadata.triggers else "[dim]None[/dim]",
    )
    if metadata.preview_url:
        table.add_row(f"Preview ({metadata.preview_kind}):", metadata.preview_url)
    table.add_row("Description:", escape(metadata.description))

    console.print(
        Panel(table, title=f"[bold]{escape(name)}[/bold]", border_style="magenta")
    )


def print_summary_panel(
    stats: DownloadStats, duration_s: float, result: BatchResult | None = None
):
    """Prints the end-of-session summary."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold")
    table.add_column(justify="right")
    table.add_row("Downloaded", f"[green]{stats.files_downloaded}[/green]")
    table.add_row("Already present", f"[yellow]{stats.files_skipped_exists}[/yellow]")
    table.add_row("Failed", f"[red]{stats.files_failed}[/red]")
    if stats.files_cancelled:
        table.add_row("Cancelled", f"[yellow]{stats.files_cancelled}[/yellow]")
    table.add_row("Data", format_size(stats.total_size_downloaded))
    if stats.peak_speed_bps > 0:
        table.add_row("Peak speed", format_speed(stats.peak_speed_bps))
    table.add_row("Duration", format_duration(duration_s))

    if result is not None:
        for outcome in result.outcomes:
            if outcome.status is OutcomeStatus.FAILED:
                table.add_row(
                    f"[red]✗ {escape(outcome.artifact.name)}[/red]",
                    f"[dim]{escape(outcome.message)}[/dim]",
                )

    status = result.status if result is not None else BatchStatus.FINISHED
    style = {
        BatchStatus.FINISHED: ("green", "✓ Download Complete"),
        BatchStatus.FAILED: ("red", "✗ Download Failed"),
        BatchStatus.CANCELLED: ("yellow", "Download Cancelled"),
    }[status]
    console.print(
        Panel(
            table,
            title=f"[bold {style[0]}]{style[1]}[/bold {style[0]}]",
            border_style=style[0],
            expand=False,
        )
    )
