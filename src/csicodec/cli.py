import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from .config import READERS, make_reader
from .errors import CSICodecError
from .export import save_mat, save_npz, to_dataframe


def setup_logging(log_dir: Optional[str] = None, verbose: bool = False) -> Optional[str]:
    """
    Configure the root logger with a console handler and, if `log_dir` is
    given, a timestamped log file.

    Returns:
        Optional[str]: Path to the log file if one was created, None otherwise
    """
    date_format = "%Y-%m-%d %H:%M:%S"
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", date_format)
    )
    root_logger.addHandler(console_handler)

    if log_dir is None:
        return None

    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"csi_decode_{timestamp}.log"

    log_format = (
        "%(asctime)s [%(levelname)8s] "
        "%(filename)s:%(lineno)d - "
        "%(funcName)s(): %(message)s"
    )
    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(log_format, date_format))
    root_logger.addHandler(file_handler)

    logging.info(f"Log file created at {log_file}")
    return str(log_file)


def _decode(vendor, csi_file, config):
    reader = make_reader(vendor, csi_file, config_path=config)
    try:
        reader.read()
    except CSICodecError as e:
        raise click.ClickException(
            f"{type(e).__name__}: {e} (kept {len(reader)} records)"
        )
    return reader


vendor_option = click.option(
    "--vendor",
    "-v",
    type=click.Choice(sorted(READERS)),
    required=True,
    help="Tool that produced the capture",
)
config_option = click.option(
    "--config", "-c", type=click.Path(exists=True, dir_okay=False),
    help="JSON file with reader options",
)


@click.group()
@click.option("--log-dir", help="Also write logs to a timestamped file here")
@click.option("--debug", is_flag=True, help="Log per-record progress")
def cli(log_dir, debug):
    """Decode CSI captures from Intel, Atheros and Nexmon tools."""
    setup_logging(log_dir, debug)


@cli.command()
@click.argument("csi_file", type=click.Path(exists=True, dir_okay=False))
@vendor_option
@config_option
@click.option("--rows", "-n", default=5, show_default=True, help="Records to show")
def info(csi_file, vendor, config, rows):
    """Decode CSI_FILE and print a summary."""
    reader = _decode(vendor, csi_file, config)
    for name, count in reader.report().items():
        click.echo(f"{name:>18}: {count}")
    store = reader.stores[reader.primary]
    click.echo(f"{'csi shape':>18}: {store.csi.shape}")
    if len(store):
        click.echo(to_dataframe(store).head(rows).to_string())


@cli.command()
@click.argument("csi_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("output", type=click.Path(dir_okay=False))
@vendor_option
@config_option
def export(csi_file, output, vendor, config):
    """Decode CSI_FILE and write it to OUTPUT (.mat, .npz or .csv)."""
    reader = _decode(vendor, csi_file, config)
    store = reader.stores[reader.primary]
    ext = os.path.splitext(output)[1].lower()
    if ext == ".mat":
        save_mat(store, output)
    elif ext == ".npz":
        save_npz(store, output)
    elif ext == ".csv":
        to_dataframe(store).to_csv(output, index=False)
    else:
        raise click.BadParameter(
            "OUTPUT must end in .mat, .npz or .csv", param_hint="OUTPUT"
        )
    click.echo(f"Wrote {len(store)} records to {output}")


if __name__ == "__main__":
    cli()
