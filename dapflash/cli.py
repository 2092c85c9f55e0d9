"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer

from dapflash.backends.pyocd_backend import PyOCDBackend
from dapflash.core.errors import DapflashError
from dapflash.core.format_detect import detect_format
from dapflash.core.gate import SelectionGate
from dapflash.core.model import BinOptions, FirmwareFormat, StatusLevel
from dapflash.core.target_loader import load_targets

app = typer.Typer(help="Flash STM32 firmware through a USB debug probe")


def _build_gate() -> SelectionGate:
    loaded = load_targets()
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return SelectionGate(PyOCDBackend(), loaded.targets)


def _check(gate: SelectionGate, status: str) -> None:
    if gate.selection.status_level is StatusLevel.ERROR:
        typer.echo(f"Error: {status}", err=True)
        raise typer.Exit(code=1)


def _select(gate: SelectionGate, target: str, probe: str | None) -> None:
    _check(gate, gate.on_target_chosen(target))
    if probe is not None:
        _check(gate, gate.on_probe_chosen(probe))


def _parse_address(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value, 0)
    except ValueError:
        raise typer.BadParameter(f"'{value}' is not a valid address") from None


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Probe selection, erase, flash and reset for STM32 targets."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("probes")
def list_probes() -> None:
    """List connected debug probes."""
    try:
        gate = _build_gate()
        _check(gate, gate.selection.status)
        probes = gate.selection.probes
        if not probes:
            typer.echo("No debug probes found")
            return
        for index, probe in enumerate(probes):
            typer.echo(f"{index}: {probe.identifier} ({probe.unique_id})")
    except DapflashError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("targets")
def list_targets() -> None:
    """List supported target MCUs."""
    try:
        loaded = load_targets()
        for warning in loaded.warnings:
            typer.echo(f"Warning: {warning}", err=True)
        if not loaded.targets:
            typer.echo("No targets loaded")
            raise typer.Exit(code=1)
        for target_id in sorted(loaded.targets):
            target = loaded.targets[target_id]
            line = f"{target.id}: {target.name}"
            if target.description:
                line += f" - {target.description}"
            typer.echo(line)
    except DapflashError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("detect")
def detect(file: str) -> None:
    """Print the firmware format inferred from FILE's extension."""
    fmt = detect_format(file)
    if fmt is FirmwareFormat.UNSUPPORTED:
        typer.echo("Error: unsupported file format", err=True)
        raise typer.Exit(code=1)
    typer.echo(fmt.value)


@app.command("erase")
def erase(
    target: str = typer.Option(..., "--target", "-t", help="Target MCU ID"),
    probe: str | None = typer.Option(None, "--probe", "-p", help="Probe identifier or serial"),
) -> None:
    """Erase the whole flash of the target."""
    try:
        gate = _build_gate()
        _select(gate, target, probe)
        status = gate.on_erase()
        _check(gate, status)
        typer.echo(status)
    except DapflashError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("flash")
def flash(
    file: str,
    target: str = typer.Option(..., "--target", "-t", help="Target MCU ID"),
    probe: str | None = typer.Option(None, "--probe", "-p", help="Probe identifier or serial"),
    base_address: str | None = typer.Option(None, "--base-address", help="Load address for .bin images"),
    skip: int | None = typer.Option(None, "--skip", min=0, help="Bytes to skip at the start of .bin images"),
) -> None:
    """Erase the target, program FILE, and reset core 0."""
    try:
        gate = _build_gate()
        _select(gate, target, probe)
        address = _parse_address(base_address)
        if address is not None or skip is not None:
            defaults = gate.selection.target.bin_defaults
            gate.bin_override = BinOptions(
                base_address=address if address is not None else defaults.base_address,
                skip=skip if skip is not None else defaults.skip,
            )
        _check(gate, gate.on_file_dropped_or_selected(file))
        status = gate.on_flash()
        _check(gate, status)
        typer.echo(status)
    except DapflashError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("reset")
def reset(
    target: str = typer.Option(..., "--target", "-t", help="Target MCU ID"),
    probe: str | None = typer.Option(None, "--probe", "-p", help="Probe identifier or serial"),
) -> None:
    """Reset core 0 of the target."""
    try:
        gate = _build_gate()
        _select(gate, target, probe)
        status = gate.on_reset()
        _check(gate, status)
        typer.echo(status)
    except DapflashError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
