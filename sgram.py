import argparse
import logging
import logging.handlers
import os
import sys
import time

try:
    from rich.console import Console
    from rich.table import Table
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn
    from rich.logging import RichHandler
    from rich import box
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install sgram[cli]", file=sys.stderr)
    sys.exit(1)

from sgramlib import __version__
from sgramlib.audio import AUDIO_EXTENSIONS
from sgramlib.colormaps import PALETTES
from sgramlib.config import (
    ConfigError,
    PipelineConfig,
    apply_resolution_preset,
    default_config,
    load_preset,
    merge_configs,
    save_preset,
    validate_config,
)
from sgramlib.events import EventBus, PIPELINE_ERROR, PIPELINE_PROGRESS, PIPELINE_START
from sgramlib.models import FreqScale, InputSpec, RenderMode, Style, WindowKind
from sgramlib.pipeline import Pipeline
from sgramlib.session import Session
from sgramtui import settings

console = Console()
err_console = Console(stderr=True)

log = logging.getLogger("sgram")

USAGE_HINT = "Usage: sgram [mic|wav|file|FILE] [FILE] [flags]"


def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="sgram",
        description="Terminal spectrogram viewer for microphone or WAV input",
    )
    parser.add_argument("--version", action="version",
                        version=f"sgram {__version__}")

    parser.add_argument("source", nargs="?", default=None, metavar="SOURCE",
                        help="mic | wav | file | FILE (direct path)")
    parser.add_argument("file", nargs="?", default=None, metavar="FILE",
                        help="Audio file path when SOURCE is 'wav' or 'file'")

    # Analysis
    parser.add_argument("--fft", dest="fft_size", type=int, default=None,
                        help="FFT size; controls frequency resolution (default 1024)")
    parser.add_argument("--win", dest="window_len", type=int, default=None,
                        help="Window length in samples (<= fft); zero-padded when shorter")
    parser.add_argument("--hop", type=int, default=None,
                        help="Hop between frames in samples (default 256)")
    parser.add_argument("--sample-rate", dest="sample_rate", type=int, default=None,
                        help="Processing sample rate in Hz (default 48000)")
    parser.add_argument("--window", type=str, default=None,
                        choices=[w.value for w in WindowKind],
                        help="Window function (default hann)")
    parser.add_argument("--alpha", type=int, default=None, choices=[1, 2],
                        help="Magnitude exponent: 1 = amplitude, 2 = power")
    parser.add_argument("--pre-emphasis", dest="pre_emphasis", type=float, default=None,
                        help="Pre-emphasis coefficient (0..1), e.g. 0.97; omit to disable")
    parser.add_argument("--clamp-floor", dest="clamp_floor", action="store_true", default=None,
                        help="Clamp values below the dB floor to the floor")
    parser.add_argument("--normalize", action="store_true", default=None,
                        help="Peak-normalize every row to 0 dB")
    parser.add_argument("--realtime", action="store_true", default=None,
                        help="Pace WAV input to real time")

    # Display
    parser.add_argument("--floor", dest="db_floor", type=float, default=None,
                        help="dB floor (default -80)")
    parser.add_argument("--ceil", dest="db_ceiling", type=float, default=None,
                        help="dB ceiling (default 0)")
    parser.add_argument("--fps", type=int, default=None,
                        help="Display refresh rate (default 30)")
    parser.add_argument("--zoom", type=float, default=None,
                        help="Initial zoom; >1 shows only low frequencies")
    parser.add_argument("--palette", type=str, default=None, choices=PALETTES,
                        help="Initial palette (default viridis)")
    parser.add_argument("--style", type=str, default=None,
                        choices=[s.value for s in Style],
                        help="Animation style (default waterfall)")
    parser.add_argument("--render", type=str, default=None,
                        choices=[r.value for r in RenderMode],
                        help="cell = one row per line, half = two rows per line")
    parser.add_argument("--resolution", type=str, default=None,
                        choices=["low", "medium", "high", "ultra"],
                        help="Resolution preset; adjusts history and renderer")
    parser.add_argument("--freq-scale", dest="freq_scale", type=str, default=None,
                        choices=[f.value for f in FreqScale],
                        help="Frequency axis scale (default linear)")
    parser.add_argument("--history", type=int, default=None,
                        help="History length in rows (default 512)")
    parser.add_argument("--detailed", action="store_true", default=None,
                        help="Show frequency labels and the details panel")
    parser.add_argument("--fullscreen", action="store_true", default=None,
                        help="Hide borders and the status panel")
    parser.add_argument("--overview", action="store_true", default=None,
                        help="Fit the whole history into the view")

    # Input / output
    parser.add_argument("--device", type=str, default=None,
                        help="Input device name substring (mic)")
    parser.add_argument("--png-path", dest="png_path", type=str, default=None,
                        help="PNG export path (default saved/sgram_<ts>.png)")
    parser.add_argument("--csv-path", dest="csv_path", type=str, default=None,
                        help="CSV export path (default saved/sgram_<ts>.csv)")
    parser.add_argument("--preset", type=str, default=None,
                        help="Load settings from a JSON preset file")
    parser.add_argument("--save-preset", dest="save_preset", type=str, default=None,
                        help="Write the effective settings to a JSON preset file")
    parser.add_argument("--headless", action="store_true",
                        help="Process the input without the viewer and export the final history")
    parser.add_argument("--log-file", dest="log_file", nargs="?", const="",
                        default=None,
                        help="Write log output to a file while the viewer runs "
                             "(default sgram.log in the config directory)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------

def build_config(args) -> dict:
    """defaults ← settings file ← preset ← command line."""
    cli_overrides = {
        key: getattr(args, key)
        for key in default_config()
        if hasattr(args, key)
    }
    layers = [default_config(), settings.load_settings()]
    if args.preset:
        layers.append(load_preset(args.preset))
    layers.append(cli_overrides)
    config = apply_resolution_preset(merge_configs(*layers))
    validate_config(config)
    return config


def resolve_source(source: str | None, file: str | None,
                   device: str | None = None) -> InputSpec:
    if source is None:
        raise ConfigError(USAGE_HINT)
    kind = source.lower()
    if kind == "mic":
        return InputSpec.mic(device)
    if kind in ("wav", "file"):
        if not file:
            raise ConfigError(f"Missing FILE after '{source}'")
        path = file
    else:
        path = source
    if not path.lower().endswith(AUDIO_EXTENSIONS):
        log.warning("%s does not look like a WAV file", path)
    return InputSpec.file(path)


def setup_logging(verbose: bool, viewer: bool, log_file: str | None):
    """Route log records for this run.

    Returns a MemoryHandler to flush after the viewer exits, if one was
    installed.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    stderr_handler = RichHandler(console=err_console, show_path=verbose)

    if not viewer:
        root.addHandler(stderr_handler)
        return None
    if log_file is not None:
        path = log_file or settings.log_path()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(file_handler)
        return None
    # hold records until the screen is restored
    memory = logging.handlers.MemoryHandler(
        capacity=10000, flushLevel=logging.CRITICAL + 1, target=stderr_handler,
    )
    root.addHandler(memory)
    return memory


# ---------------------------------------------------------------------------
# Run modes
# ---------------------------------------------------------------------------

def run_headless(config: dict, source: InputSpec) -> int:
    event_bus = EventBus()
    errors: list[str] = []
    event_bus.subscribe(PIPELINE_ERROR, lambda message: errors.append(message))

    pipeline = Pipeline(PipelineConfig.from_config(config), source,
                        realtime=config["realtime"], event_bus=event_bus)
    session = Session(config, pipeline.channel,
                      pipeline_config=pipeline.config,
                      source_desc=source.describe())

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task_id = progress.add_task(f"[cyan]{source.describe()}", total=None)

        def on_start(source, samplerate, channels):
            progress.update(task_id, description=f"[cyan]{source} ({samplerate} Hz, {channels} ch)")

        def on_progress(samples_in, frames_total):
            progress.update(task_id, completed=samples_in, total=frames_total or None)

        event_bus.subscribe(PIPELINE_START, on_start)
        event_bus.subscribe(PIPELINE_PROGRESS, on_progress)

        pipeline.start()
        try:
            while True:
                if session.tick() == 0:
                    if session.finished:
                        break
                    time.sleep(0.005)
        except KeyboardInterrupt:
            console.print("[yellow]Interrupted[/]")
        finally:
            pipeline.stop()
            session.tick()

    if errors:
        console.print(f"[bold red]Error:[/] {errors[0]}")
        return 1

    table = Table(box=box.ROUNDED, title="Spectrogram", title_justify="left")
    table.add_column("Item", style="cyan")
    table.add_column("Value", justify="right", style="bold green")
    cfg = session.pipeline_config
    table.add_row("Source", source.describe())
    table.add_row("Rows produced", str(pipeline.rows_produced))
    table.add_row("Rows kept", str(len(session.history)))
    table.add_row("Audio processed", f"{session.total_seconds:.2f} s")
    table.add_row("Bins / resolution", f"{cfg.bin_count} / {cfg.bin_hz:.1f} Hz")

    csv_out = session.save_csv()
    table.add_row("CSV", csv_out)
    if config["png_path"]:
        try:
            png_out = session.save_png()
        except ImportError:
            console.print("[yellow]PNG export needs PySide6 (pip install sgram[gui])[/]")
        else:
            table.add_row("PNG", png_out or "(empty)")
    console.print(table)
    return 0


def run_viewer(config: dict, source: InputSpec) -> int:
    from sgramtui.app import Viewer

    pipeline = Pipeline(PipelineConfig.from_config(config), source,
                        realtime=config["realtime"])
    session = Session(config, pipeline.channel,
                      pipeline_config=pipeline.config,
                      source_desc=source.describe())
    pipeline.start()
    Viewer(session, pipeline, console=console).run()
    return 0


def main(argv=None) -> int:
    args = parse_arguments(argv)
    viewer = not args.headless and args.source is not None
    memory = setup_logging(args.verbose, viewer, args.log_file)
    try:
        return _run(args, viewer)
    finally:
        if memory is not None:
            memory.flush()
            logging.getLogger().removeHandler(memory)
            memory.close()


def _run(args, viewer: bool) -> int:
    try:
        config = build_config(args)
        if args.save_preset:
            save_preset(config, args.save_preset)
            console.print(f"[dim]Preset saved to: {args.save_preset}[/]")
            if args.source is None:
                return 0
        source = resolve_source(args.source, args.file, config["device"])
    except ConfigError as e:
        err_console.print(f"[bold red]Error:[/] {e}")
        return 2

    if viewer and not sys.stdin.isatty():
        err_console.print("[bold red]Error:[/] the viewer needs a terminal; use --headless")
        return 2

    if args.headless:
        cfg = PipelineConfig.from_config(config)
        console.print(Panel.fit(
            f"[bold]sgram[/] {__version__}\n"
            f"Input: [cyan]{source.describe()}[/]\n"
            f"FFT/Window/Hop: [cyan]{cfg.fft_size}/{cfg.frame_len}/{cfg.hop}[/] | "
            f"Rate: [cyan]{cfg.sample_rate} Hz[/]",
            title="Configuration",
        ))
        return run_headless(config, source)

    return run_viewer(config, source)


if __name__ == "__main__":
    sys.exit(main())
