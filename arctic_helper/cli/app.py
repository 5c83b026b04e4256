"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import aiohttp
import typer
from rich.console import Console
from rich.logging import RichHandler

from arctic_helper import __version__
from arctic_helper.api.client import CivitaiClient
from arctic_helper.api.lora_adapter import LoraAdapter
from arctic_helper.core.catalog_provider import CatalogProvider
from arctic_helper.core.download_engine import DownloadEngine
from arctic_helper.core.resolver import TierResolver
from arctic_helper.core.updater import Updater
from arctic_helper.exceptions import ArcticHelperError, ConfigurationError
from arctic_helper.models.catalog import Catalog, RamTier, VramTier
from arctic_helper.models.config import AppSettings
from arctic_helper.models.events import TransferKind
from arctic_helper.storage.cache import CacheManager
from arctic_helper.storage.catalog_store import CatalogStore
from arctic_helper.storage.config_manager import ConfigManager
from arctic_helper.utils.formatting import format_size
from arctic_helper.utils.hardware import detect_gpu, detect_ram_tier, total_ram_gb

from .formatters import (
    print_catalog_table,
    print_config,
    print_lora_metadata,
    print_lora_table,
    print_plan_table,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("arctic_helper")

app = typer.Typer(
    name="arctic-helper",
    help=(
        "Download ComfyUI models and LoRAs matched to your GPU and RAM. Use"
        " 'arctic-helper <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "arctic-helper"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_settings(cli_options: dict | None = None) -> AppSettings:
    """Settings from the INI file; read-only commands work without one."""
    return ConfigManager(CONFIG_FILE).load_config(cli_options, allow_missing=True)


async def _load_catalog(settings: AppSettings) -> Catalog:
    provider = CatalogProvider.from_settings(settings)
    catalog = await provider.load()
    log.info(f"Catalog v{catalog.catalog_version} loaded from {provider.source}.")
    return catalog


def _parse_tier(value: str | None, tier_type):
    if value is None:
        return None
    try:
        return tier_type.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    clear_cache: bool = typer.Option(
        False,
        "--clear-cache",
        help="Clear the cached catalog and LoRA metadata, then exit.",
    ),
):
    """Arctic Helper CLI"""
    if version:
        console.print(f"[bold]arctic-helper[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("arctic_helper").setLevel(log_level)

    if clear_cache:
        cache = CacheManager(CONFIG_DIR)
        console.print("[cyan]Clearing caches...[/cyan]")
        entries = cache.entry_count()
        CatalogStore(CONFIG_DIR).clear()
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({entries} metadata entries"
                " and the cached catalog removed).[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]arctic-helper init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_data = ConfigManager(CONFIG_FILE).get_config_as_dict()
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    install_root: Path = typer.Option(  # noqa: B008
        ...,
        "--install-root",
        "-r",
        help="Your ComfyUI folder (the one that contains 'models').",
    ),
    civitai_token: str | None = typer.Option(
        None, "--civitai-token", "-t", help="Civitai API key for gated LoRAs."
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Simultaneous downloads (1-4)."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration."
    ),
):
    """Create the configuration file."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    install_root = install_root.expanduser()
    if not install_root.is_dir():
        console.print(f"[red]✗ '{install_root}' is not a folder.[/red]")
        raise typer.Exit(code=1)
    if not (install_root / "models").is_dir():
        console.print(
            "[yellow]⚠️  No 'models' folder found there; it will be created on the"
            " first download.[/yellow]"
        )

    settings = {"install_root": str(install_root)}
    if civitai_token:
        settings["civitai_token"] = civitai_token
    if workers is not None:
        settings["max_workers"] = workers
    try:
        AppSettings(**settings)
    except ValueError as e:
        console.print(f"[red]✗ Invalid settings: {e}[/red]")
        raise typer.Exit(code=1) from e

    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("See what fits your machine: [cyan]arctic-helper models[/cyan]")


@app.command(name="set-token")
def set_token(
    token: str = typer.Argument(..., help="Civitai API key. Use '' to remove it."),
):
    """Save or remove the Civitai API key."""
    ConfigManager(CONFIG_FILE).update_config({"civitai_token": token.strip()})
    if token.strip():
        console.print("[green]✓ Civitai token saved.[/green]")
    else:
        console.print("[green]✓ Civitai token removed.[/green]")


@app.command()
def models(
    vram_tier: str | None = typer.Option(
        None,
        "--vram-tier",
        "-g",
        help="Only show variants for this VRAM tier (S, A, B, C). 'auto' detects it.",
    ),
):
    """List the models in the catalog and their variants."""
    tier: VramTier | None = None
    if vram_tier and vram_tier.lower() == "auto":
        gpu = detect_gpu()
        if gpu is None:
            console.print(
                "[yellow]⚠️  No NVIDIA GPU detected; showing all tiers.[/yellow]"
            )
        else:
            tier = gpu.tier
            console.print(
                f"[dim]Detected {gpu.name} ({gpu.vram_gb:.0f} GB) → tier"
                f" {tier.value}[/dim]"
            )
    else:
        tier = _parse_tier(vram_tier, VramTier)

    async def _models():
        catalog = await _load_catalog(_load_settings())
        print_catalog_table(catalog, tier)

    asyncio.run(_models())


@app.command()
def loras(
    family: str | None = typer.Option(
        None, "--family", help="Only show LoRAs of this model family."
    ),
):
    """List the LoRAs in the catalog."""

    async def _loras():
        catalog = await _load_catalog(_load_settings())
        print_lora_table(catalog, family)

    asyncio.run(_loras())


@app.command()
def plan(
    model_id: str = typer.Argument(..., help="Model id from 'arctic-helper models'."),
    variant_id: str = typer.Argument(..., help="Variant id of that model."),
    ram_tier: str | None = typer.Option(
        None, "--ram-tier", help="RAM tier (A, B, C). Detected when omitted."
    ),
):
    """Show which files a download would fetch, without downloading."""
    tier = _parse_tier(ram_tier, RamTier) or detect_ram_tier()

    async def _plan():
        settings = _load_settings()
        catalog = await _load_catalog(settings)
        resolver = TierResolver(catalog, settings.install_root)
        print_plan_table(resolver.resolve(model_id, variant_id, tier))

    asyncio.run(_plan())


@app.command(name="download")
def download_command(
    model_id: str = typer.Argument(..., help="Model id from 'arctic-helper models'."),
    variant_id: str = typer.Argument(..., help="Variant id of that model."),
    ram_tier: str | None = typer.Option(
        None, "--ram-tier", help="RAM tier (A, B, C). Detected when omitted."
    ),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Simultaneous downloads (1-4)."
    ),
):
    """Download a model variant into your ComfyUI folder."""
    tier = _parse_tier(ram_tier, RamTier) or detect_ram_tier()
    cli_options = {"max_workers": workers} if workers is not None else {}

    async def _download_async():
        settings = ConfigManager(CONFIG_FILE).load_config(cli_options)
        catalog = await _load_catalog(settings)
        items = TierResolver(catalog, settings.install_root).resolve(
            model_id, variant_id, tier
        )
        console.print(
            f"[bold cyan]Starting download of {model_id} / {variant_id}"
            f" (RAM {tier.description})...[/bold cyan]"
        )

        start_time = time.monotonic()
        async with ProgressManager(console=console) as progress_manager:
            async with DownloadEngine(
                sink=progress_manager, max_workers=settings.max_workers
            ) as engine:
                handle = engine.enqueue_batch(TransferKind.MODEL, items)
                result = await handle.wait()

        print_summary_panel(engine.stats, time.monotonic() - start_time, result)
        if result.failed:
            raise typer.Exit(code=1)

    asyncio.run(_download_async())


@app.command(name="lora-info")
def lora_info(
    lora_id: str = typer.Argument(..., help="LoRA id from 'arctic-helper loras'."),
):
    """Show creator, trigger words and strength for a LoRA."""

    async def _lora_info():
        settings = _load_settings()
        catalog = await _load_catalog(settings)
        lora = catalog.find_lora(lora_id)
        cache = CacheManager(settings.cache_dir)
        cache.cleanup_expired()
        async with CivitaiClient() as client, DownloadEngine() as engine:
            adapter = LoraAdapter(
                TierResolver(catalog, settings.install_root), engine, client, cache
            )
            metadata = await adapter.get_metadata(lora_id, settings.token)
        print_lora_metadata(lora.display_name if lora else lora_id, metadata)

    asyncio.run(_lora_info())


@app.command(name="lora-download")
def lora_download(
    lora_id: str = typer.Argument(..., help="LoRA id from 'arctic-helper loras'."),
):
    """Download a LoRA into models/loras/<family>."""

    async def _lora_download():
        settings = ConfigManager(CONFIG_FILE).load_config()
        catalog = await _load_catalog(settings)
        start_time = time.monotonic()
        async with ProgressManager(console=console, title="LoRA") as progress_manager:
            async with (
                CivitaiClient() as client,
                DownloadEngine(sink=progress_manager, max_workers=1) as engine,
            ):
                adapter = LoraAdapter(
                    TierResolver(catalog, settings.install_root), engine, client
                )
                resolved, handle = adapter.start_download(lora_id, settings.token)
                result = await handle.wait()

        print_summary_panel(engine.stats, time.monotonic() - start_time, result)
        if result.failed:
            raise typer.Exit(code=1)
        console.print(f"[green]✓ Saved to '{resolved.destination}'[/green]")

    asyncio.run(_lora_download())


@app.command(name="check-update")
def check_update(
    download_dir: Path | None = typer.Option(  # noqa: B008
        None,
        "--download",
        "-d",
        help="Download and verify the update package into this folder.",
    ),
):
    """Check whether a newer release is available."""

    async def _check_update():
        settings = _load_settings()
        updater = Updater(settings.update_manifest_url)
        try:
            update = await updater.check()
            if update is None:
                console.print(f"[green]✓ arctic-helper {__version__} is up to date.[/]")
                return
            console.print(
                f"[bold cyan]Version {update.version} is available[/bold cyan]"
                f" (you have {__version__})."
            )
            if update.notes:
                console.print(f"[dim]{update.notes}[/dim]")
            if download_dir is not None:
                path = await updater.download(update, download_dir.expanduser())
                console.print(f"[green]✓ Verified package saved to '{path}'[/green]")
        finally:
            await updater.close()

    asyncio.run(_check_update())


@app.command()
def diagnose():
    """Diagnose common configuration, hardware and connectivity issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False
    settings = None

    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print(
            "[red]✗ Config file not found.[/] Run [cyan]arctic-helper init[/cyan]."
        )
        issues_found = True
    try:
        settings = _load_settings()
        console.print("[green]✓[/] Configuration can be loaded.")
        if settings.install_root is None:
            console.print("[red]✗ No ComfyUI folder configured.[/]")
            issues_found = True
        elif not settings.install_root.is_dir():
            console.print(
                f"[red]✗ ComfyUI folder '{settings.install_root}' does not exist.[/]"
            )
            issues_found = True
        else:
            console.print(
                f"[green]✓[/] ComfyUI folder: [dim]{settings.install_root}[/dim]"
            )
        if settings.token:
            console.print("[green]✓[/] Civitai token is set.")
        else:
            console.print("[yellow]•[/] No Civitai token; some LoRAs may be refused.")
    except ConfigurationError as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        issues_found = True

    ram_tier = detect_ram_tier()
    console.print(
        f"[green]✓[/] System RAM: {total_ram_gb():.0f} GB → tier {ram_tier.value}"
        f" ({ram_tier.description})"
    )
    gpu = detect_gpu()
    if gpu is None:
        console.print("[yellow]•[/] No NVIDIA GPU detected (nvidia-smi unavailable).")
    else:
        console.print(
            f"[green]✓[/] GPU: {gpu.name}, {format_size(int(gpu.vram_gb * 1024**3))}"
            f" → tier {gpu.tier.value}"
        )

    async def test_catalog_and_connection() -> bool:
        ok = True
        try:
            provider = CatalogProvider.from_settings(settings or AppSettings())
            catalog = await provider.load()
            console.print(
                f"[green]✓[/] Catalog v{catalog.catalog_version} loaded from"
                f" {provider.source} ({len(catalog.models)} models,"
                f" {len(catalog.loras)} LoRAs)."
            )
        except ArcticHelperError as e:
            console.print(f"[red]✗ Catalog could not be loaded: {e}[/red]")
            ok = False

        console.print("\n[dim]Testing connectivity to Civitai...[/dim]")
        try:
            timeout = aiohttp.ClientTimeout(total=10)
            async with (
                aiohttp.ClientSession(timeout=timeout) as session,
                session.get("https://civitai.com/api/v1/models?limit=1") as resp,
            ):
                if resp.status == 200:
                    console.print("[green]✓[/] Successfully connected to Civitai.")
                else:
                    console.print(
                        "[red]✗ Could not connect to Civitai"
                        f" (Status: {resp.status}).[/red]"
                    )
                    ok = False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            console.print(f"[red]✗ Connection test failed: {e}[/red]")
            ok = False
        return ok

    if not asyncio.run(test_catalog_and_connection()):
        issues_found = True
    console.print()
    if not issues_found:
        console.print(
            "[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n"
        )
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
