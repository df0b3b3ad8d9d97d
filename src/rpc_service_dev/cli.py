"""
rpc-service-dev CLI

Dump, inspect and modify storage devices on a remote target over RPC.

All human-readable output goes to stderr: `dump ... -` streams the device
contents to stdout.
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from rpc_service_dev import __version__
from rpc_service_dev.core.config import (
    ConnectionConfig,
    DEFAULT_BAUDRATE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    PORT_ENVVAR,
    CHUNK_SIZE_ENVVAR,
)
from rpc_service_dev.core.context import CallContext
from rpc_service_dev.core.errors import DeviceToolError, error_chain_lines, format_error_chain
from rpc_service_dev.core.parsing import parse_int_literal, resolve_dump_args, DumpRequest
from rpc_service_dev.core.results import OperationResult
from rpc_service_dev.core.safety import (
    CONFIRMATION_TOKEN,
    SafetyContext,
    create_cli_safety_context,
)
from rpc_service_dev.core.actions import (
    open_service,
    dump_device as core_dump_device,
    device_info as core_device_info,
    write_device as core_write_device,
    erase_device as core_erase_device,
    create_device as core_create_device,
    remove_device as core_remove_device,
)
from rpc_service_dev.protocol import RPCTransportError

# Rich console on stderr; stdout is reserved for dump data
console = Console(stderr=True)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)
logger = logging.getLogger("rpc_service_dev")

app = typer.Typer(help="Raw device access over RPC (Dev.* service)")


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_error_chain(exc: BaseException) -> None:
    """Print an error and its annotated causes."""
    print_error(f"Error: {escape(format_error_chain(exc))}")
    if logger.isEnabledFor(logging.DEBUG):
        for line in error_chain_lines(exc):
            console.print(f"   {escape(line)}", style="dim")


def print_result(result: OperationResult) -> None:
    """Print warnings and errors of a core result."""
    for warning in result.warnings:
        print_warning(escape(warning))
    if not result.ok:
        if result.exception is not None:
            print_error_chain(result.exception)
        else:
            for err in result.errors:
                print_error(escape(err))


def parse_int(value: Optional[str], label: str) -> Optional[int]:
    """
    Parse an integer option (decimal, 0x hex, leading-zero octal).

    CLI wrapper around core.parsing.parse_int_literal that converts
    ValueError to typer.BadParameter for proper CLI error handling.
    """
    if value is None:
        return None
    try:
        parsed = parse_int_literal(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid {label}: {value}")
    if parsed < 0:
        raise typer.BadParameter(f"Invalid {label}: {value} (negative)")
    return parsed


def setup_verbosity(verbose: bool) -> None:
    if verbose:
        logger.setLevel(logging.DEBUG)


def make_config(
    port: Optional[str],
    baud: int,
    timeout: float,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    deadline: Optional[float] = None,
) -> ConnectionConfig:
    """
    Build the connection settings, exiting with status 1 when they are unusable.

    Configuration errors share the exit status of every other dump failure.
    """
    if not port:
        print_error(f"no port given: use --port or set {PORT_ENVVAR}")
        sys.exit(1)
    try:
        return ConnectionConfig(
            port=port,
            baudrate=baud,
            timeout=timeout,
            chunk_size=chunk_size,
            deadline=deadline,
        )
    except ValueError as e:
        print_error(escape(f"invalid configuration: {e}"))
        sys.exit(1)


def make_progress() -> Progress:
    return Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        console=console,
        transient=True,
    )


def confirm_write_with_details(safety: SafetyContext) -> SafetyContext:
    """
    Attach Rich/typer prompt callbacks to an interactive safety context.

    Non-interactive contexts are left as-is: core.safety then requires
    --confirm WRITE.
    """
    if not safety.interactive:
        return safety

    def show_details(details: dict) -> None:
        console.print()
        console.print(Panel(
            f"[bold yellow]⚠️  WRITE CONFIRMATION REQUIRED[/bold yellow]\n\n"
            f"Operation:     {details.get('operation', '')}\n"
            f"Device:        {details.get('device', 'Unknown')}\n"
            f"Target:        {details.get('target_region') or '-'}\n"
            f"Bytes:         {details.get('bytes_length', 0):,}\n"
            f"\n[bold]Type '{CONFIRMATION_TOKEN}' to proceed, or anything else to abort:[/bold]",
            title="Device Write Operation",
            expand=False,
        ))

    def prompt_confirmation(prompt_text: str) -> str:
        return typer.prompt("Confirm", err=True)

    safety.show_details = show_details
    safety.prompt_confirmation = prompt_confirmation
    return safety


def _finish(result: OperationResult) -> None:
    print_result(result)
    if not result.ok:
        if result.metadata.get("permission_denied"):
            console.print(
                f"[dim]Re-run with --write (and --confirm {CONFIRMATION_TOKEN} "
                f"when not on a terminal) to proceed.[/dim]"
            )
        sys.exit(1)


def dump(
    args: Optional[List[str]] = typer.Argument(
        None,
        metavar="NAME [OFFSET LENGTH] OUTPUT",
        help="Device name, optional offset and length, output file ('-' for stdout)",
        show_default=False,
    ),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL (socket://host:port)"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    chunk_size: int = typer.Option(
        DEFAULT_CHUNK_SIZE, "--chunk-size", envvar=CHUNK_SIZE_ENVVAR, help="Max bytes per Dev.Read call"
    ),
    deadline: Optional[float] = typer.Option(None, "--deadline", help="Give up after this many seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """
    Dump a device (or a range of it) to a file or stdout.

    Examples:
        dump-device -p /dev/ttyUSB0 sfl0 dump.bin
        dump-device -p /dev/ttyUSB0 sfl0 0 1024 -
    """
    setup_verbosity(verbose)

    try:
        request: DumpRequest = resolve_dump_args(args or [])
    except DeviceToolError as e:
        print_error_chain(e)
        sys.exit(1)

    config = make_config(port, baud, timeout, chunk_size, deadline)
    ctx = CallContext(timeout=config.deadline)

    try:
        with open_service(config) as service, make_progress() as progress:
            task = None

            def on_progress(done: int, total: int) -> None:
                nonlocal task
                if task is None:
                    task = progress.add_task(f"Reading {request.device}", total=total)
                progress.update(task, completed=done)

            result = core_dump_device(
                service,
                request,
                chunk_size=config.chunk_size,
                ctx=ctx,
                progress_cb=on_progress,
            )
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)
    if not request.to_stdout:
        print_success(f"Saved {result.bytes_len:,} bytes to {request.output}")
    logger.debug(f"sha256 {result.hashes.get('sha256')}")


app.command("dump")(dump)


@app.command()
def info(
    name: str = typer.Argument(..., help="Device name"),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """Show device size and erase sizes."""
    setup_verbosity(verbose)
    config = make_config(port, baud, timeout)

    try:
        with open_service(config) as service:
            result = core_device_info(service, name)
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)

    table = Table(title=f"Device {name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    size = result.metadata["size"]
    table.add_row("Size", f"{size:,} bytes (0x{size:X})")
    erase_sizes = result.metadata.get("erase_sizes") or []
    table.add_row("Erase sizes", ", ".join(f"0x{s:X}" for s in erase_sizes) or "-")
    console.print(table)


@app.command()
def write(
    name: str = typer.Argument(..., help="Device name"),
    offset: str = typer.Argument(..., help="Offset: decimal, hex (0x1000) or octal (010)"),
    image: Path = typer.Option(..., "--in", "-i", exists=True, dir_okay=False, help="File to write"),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    chunk_size: int = typer.Option(
        DEFAULT_CHUNK_SIZE, "--chunk-size", envvar=CHUNK_SIZE_ENVVAR, help="Max bytes per Dev.Write call"
    ),
    erase: bool = typer.Option(False, "--erase", help="Erase the target range before writing"),
    write_flag: bool = typer.Option(False, "--write", help="Actually write to the device"),
    confirm: Optional[str] = typer.Option(None, "--confirm", help=f"Non-interactive confirmation ({CONFIRMATION_TOKEN})"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate only, no write"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """Write a local file into a device range."""
    setup_verbosity(verbose)
    print_header("Write Device")

    offset_val = parse_int(offset, "offset")
    config = make_config(port, baud, timeout, chunk_size)
    data = image.read_bytes()

    console.print(f"Device:  {name}")
    console.print(f"Offset:  0x{offset_val:08X}")
    console.print(f"Bytes:   {len(data):,}")

    safety = confirm_write_with_details(
        create_cli_safety_context(write_flag, device=name, simulate=dry_run, confirmation_token=confirm)
    )

    try:
        with open_service(config) as service, make_progress() as progress:
            task = progress.add_task(f"Writing {name}", total=len(data))
            result = core_write_device(
                service,
                name,
                offset_val,
                data,
                safety,
                chunk_size=config.chunk_size,
                erase=erase,
                progress_cb=lambda done, total: progress.update(task, completed=done),
            )
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)
    print_success(f"Wrote {result.bytes_len:,} bytes to {name} {result.region}")


@app.command()
def erase(
    name: str = typer.Argument(..., help="Device name"),
    offset: str = typer.Argument(..., help="Offset"),
    length: str = typer.Argument(..., help="Length"),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    write_flag: bool = typer.Option(False, "--write", help="Actually erase the device"),
    confirm: Optional[str] = typer.Option(None, "--confirm", help=f"Non-interactive confirmation ({CONFIRMATION_TOKEN})"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate only, no erase"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """Erase a device range."""
    setup_verbosity(verbose)
    offset_val = parse_int(offset, "offset")
    length_val = parse_int(length, "length")
    if not length_val:
        raise typer.BadParameter("Length must be positive")
    config = make_config(port, baud, timeout)

    safety = confirm_write_with_details(
        create_cli_safety_context(write_flag, device=name, simulate=dry_run, confirmation_token=confirm)
    )

    try:
        with open_service(config) as service:
            result = core_erase_device(service, name, offset_val, length_val, safety)
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)
    print_success(f"Erased {name} {result.region}")


@app.command()
def create(
    name: str = typer.Argument(..., help="Name to register the device under"),
    dev_type: str = typer.Argument(..., metavar="TYPE", help="Device driver type"),
    opts: str = typer.Option("", "--opts", help="Driver options (JSON string)"),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    write_flag: bool = typer.Option(False, "--write", help="Actually create the device"),
    confirm: Optional[str] = typer.Option(None, "--confirm", help=f"Non-interactive confirmation ({CONFIRMATION_TOKEN})"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """Create and register a device on the target."""
    setup_verbosity(verbose)
    config = make_config(port, baud, timeout)
    safety = confirm_write_with_details(
        create_cli_safety_context(write_flag, device=name, confirmation_token=confirm)
    )

    try:
        with open_service(config) as service:
            result = core_create_device(service, name, dev_type, opts, safety)
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)
    print_success(f"Created {name} ({dev_type})")


@app.command()
def remove(
    name: str = typer.Argument(..., help="Device name"),
    port: Optional[str] = typer.Option(None, "--port", "-p", envvar=PORT_ENVVAR, help="Serial port or URL"),
    baud: int = typer.Option(DEFAULT_BAUDRATE, "--baud", help="Serial baud rate"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Per-call RPC timeout, seconds"),
    write_flag: bool = typer.Option(False, "--write", help="Actually remove the device"),
    confirm: Optional[str] = typer.Option(None, "--confirm", help=f"Non-interactive confirmation ({CONFIRMATION_TOKEN})"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (RPC frames)"),
) -> None:
    """Unregister a device on the target."""
    setup_verbosity(verbose)
    config = make_config(port, baud, timeout)
    safety = confirm_write_with_details(
        create_cli_safety_context(write_flag, device=name, confirmation_token=confirm)
    )

    try:
        with open_service(config) as service:
            result = core_remove_device(service, name, safety)
    except RPCTransportError as e:
        print_error_chain(e)
        sys.exit(1)

    _finish(result)
    print_success(f"Removed {name}")


@app.command()
def ports() -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    import serial.tools.list_ports

    ports_list = list(serial.tools.list_ports.comports())

    if not ports_list:
        print_warning("No serial ports found")
        return

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    table.add_column("Device", style="magenta")
    table.add_column("Description", style="green")

    for port in ports_list:
        table.add_row(port.device, port.name or "-", port.description or "-")

    console.print(table)


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"rpc-service-dev {__version__}")


# Single-command app behind the dump-device script
dump_app = typer.Typer(add_completion=False)
dump_app.command()(dump)


def _run(typer_app: typer.Typer) -> None:
    # Click turns Ctrl-C into "Aborted!" with exit status 1
    try:
        typer_app()
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


def main() -> None:
    """Main entry point."""
    _run(app)


def dump_main() -> None:
    """Entry point of the dump-device script."""
    _run(dump_app)


if __name__ == "__main__":
    main()
