"""
Entry point for ``arctic-helper`` and ``python -m arctic_helper``.

Sets up the console encoding, runs the Typer app and turns uncaught errors
into a suggestions panel and a non-zero exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from arctic_helper.cli.app import app
from arctic_helper.cli.formatters import format_error_with_suggestions
from arctic_helper.exceptions import ArcticHelperError, ConfigurationError

EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def main() -> None:
    if os.name == "nt":
        # Rich prints ✓/✗ and the Windows console defaults to a legacy code page.
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("arctic_helper")
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]⚠️  Cancelled. Partial downloads removed.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_CONFIG)
    except ArcticHelperError as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_ERROR)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_ERROR)


if __name__ == "__main__":
    main()
