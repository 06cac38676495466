"""
elfscope CLI
=============

Click command that decodes one ELF file and prints its header, section and
segment tables, symbols, dynamic entries and validation findings.

Usage::

    # Full report
    elfscope /usr/bin/ls

    # JSON summary on stdout
    elfscope /usr/bin/ls --json

    # Resolve a symbol through the SysV .hash section
    elfscope libfoo.so --lookup foo_init

    # Skip validation and symbol listings
    elfscope core.elf --no-validate --no-symbols

Exit codes: 0 on success, 1 when the file cannot be read or decoded,
2 when validation reports errors.

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import sys

import click

from shared.config import ScopeConfig
from shared.console import ScopeConsole
from shared.logger import ScopeLogger

from elfscope import __version__
from elfscope.core.engine import FileTooLargeError, InspectEngine
from elfscope.core.errors import ElfError
from elfscope.output.console import ScopeConsoleOutput

EXIT_DECODE_ERROR = 1
EXIT_INVALID = 2


def _make_logger(component: str, config: ScopeConfig, verbose: bool) -> ScopeLogger:
    settings = config.global_settings
    return ScopeLogger(
        component,
        log_level="DEBUG" if verbose or settings.debug else settings.log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )


@click.command("elfscope")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print the summary as JSON to stdout.",
)
@click.option(
    "--no-validate",
    is_flag=True,
    default=False,
    help="Skip the validation layer.",
)
@click.option(
    "--symbols/--no-symbols",
    default=True,
    help="List symbol table entries (default: on).",
)
@click.option(
    "--lookup", "-l",
    "lookup",
    metavar="NAME",
    default=None,
    help="Look NAME up through the SysV .hash section.",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="TOML configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging on stderr.",
)
@click.version_option(__version__, prog_name="elfscope")
def elfscope_cli(
    path: str,
    json_output: bool,
    no_validate: bool,
    symbols: bool,
    lookup: str | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """elfscope -- ELF decoder and validator.

    PATH is the ELF file to inspect.

    Examples:

    \b
        elfscope /bin/true
        elfscope /bin/true --json --no-symbols
        elfscope libc.so.6 --lookup printf
    """
    console = ScopeConsole()

    try:
        config = ScopeConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Cannot load configuration: {exc}")
        sys.exit(EXIT_DECODE_ERROR)

    logger = _make_logger("cli", config, verbose)
    engine = InspectEngine(config=config,
                           logger=_make_logger("engine", config, verbose))

    try:
        summary = engine.inspect_file(
            path,
            validate=False if no_validate else None,
            symbols=symbols,
            lookup=lookup,
        )
    except ElfError as exc:
        logger.debug("decode failed", kind=exc.kind.value)
        console.error(f"{path}: {exc.kind.value}: {exc.message}")
        sys.exit(EXIT_DECODE_ERROR)
    except (OSError, FileTooLargeError) as exc:
        console.error(str(exc))
        sys.exit(EXIT_DECODE_ERROR)

    if json_output:
        click.echo(summary.model_dump_json(indent=2))
    else:
        ScopeConsoleOutput(console=console).display(summary)

    if not summary.is_valid:
        sys.exit(EXIT_INVALID)


def main() -> None:
    """Entry point for the ``elfscope`` console script."""
    elfscope_cli()


if __name__ == "__main__":
    main()
