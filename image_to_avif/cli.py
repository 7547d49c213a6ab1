# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from pathlib import Path
from typing import Optional

import click

from .config import CONFIG_FILE_NAME, ConfigException, RunConfiguration
from .plugin import AvifPlugin


def show_help_and_exit() -> None:
    ctx = click.get_current_context()
    click.echo(ctx.get_help())
    ctx.exit(2)


@click.command()
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    help=f"Specify a config file, defaults to ./{CONFIG_FILE_NAME} if present.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug messages.")
@click.version_option(package_name="image-to-avif")
def main(config: Optional[Path], verbose: bool) -> None:
    logging.basicConfig(
        format="%(asctime)s %(threadName)-10s %(levelname)-7s %(message)s",
        level=logging.DEBUG if verbose else logging.INFO,
    )

    if config is None and Path(CONFIG_FILE_NAME).is_file():
        config = Path(CONFIG_FILE_NAME)

    try:
        if config is None:
            run_config = RunConfiguration()
        else:
            run_config = RunConfiguration.from_toml(config)
    except FileNotFoundError:
        click.echo(f"Could not find configuration file {config}.\n")
        show_help_and_exit()
    except PermissionError:
        click.echo(f"Could not read configuration file {config}.\n")
        show_help_and_exit()
    except ConfigException as e:
        click.echo(f"{e}\n")
        show_help_and_exit()

    report = AvifPlugin(config=run_config).build_end()
    click.echo(
        f"Done. {report.converted} converted, {report.skipped} skipped,"
        f" {report.failed + report.errors} failed."
    )
