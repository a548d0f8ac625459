"""Main application entry point for podrec."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.live import Live

from .config import RecorderConfig
from .errors import NoDestination, NotReady
from .services.recording_service import Recorder
from .audio.capture import list_input_devices
from .ui.level_display import LevelDisplay

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


class Server:

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        # Load configuration
        self.config = RecorderConfig(config_path)
        # Set up logging (override config with command line if specified)
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.console = Console()
        self.recorder: Optional[Recorder] = None

    async def init(self, device_id: Optional[int] = None, gain: Optional[float] = None) -> bool:
        logger.info("Initializing recorder...")
        self.recorder = Recorder.from_config(self.config)
        if gain is not None:
            self.recorder.set_input_gain(gain)

        audio_settings = self.recorder.constraints
        logger.info(f"Audio settings: {audio_settings.sample_rate}Hz, {audio_settings.channels} channel(s), "
                    f"{audio_settings.frames_per_buffer} frames/buffer")

        if not await self.recorder.initialize(device_id):
            self.console.print(f"Microphone unavailable: {self.recorder.last_error}", style="bold red")
            return False
        return True

    async def resolve_destination(self, output: Optional[str], choose: bool) -> bool:
        if output:
            self.recorder.set_destination(str(Path(output).expanduser()))
        elif choose:
            if not await self.recorder.select_save_location():
                self.console.print("No save location chosen", style="yellow")
                return False
        else:
            await self.recorder.resolve_default_destination()
        return True

    async def run(self, duration: int) -> None:
        display = LevelDisplay(self.recorder)
        try:
            self.recorder.start()
        except (NotReady, NoDestination) as e:
            logger.warning(f"Cannot start recording: {e}")
            self.console.print(f"Cannot start recording: {e}", style="bold red")
            display.shutdown()
            return

        try:
            with Live(display.render(), console=self.console, refresh_per_second=10) as live:
                loop = asyncio.get_running_loop()
                deadline = loop.time() + duration if duration else None
                while deadline is None or loop.time() < deadline:
                    live.update(display.render())
                    await asyncio.sleep(0.1)
        finally:
            display.shutdown()
            outcome = await self.recorder.stop()
            self.report(outcome)

    def report(self, outcome) -> None:
        if outcome is None:
            self.console.print("Nothing was saved", style="yellow")
        elif outcome.success:
            self.console.print(f"Saved to {outcome.path}", style="bold green")
        else:
            self.console.print(f"Save failed: {outcome.error}", style="bold red")
        stats = self.recorder.get_stats()
        if stats.last_error and (outcome is None or outcome.success):
            self.console.print(f"Warning: {stats.last_error}", style="yellow")

    async def cleanup(self) -> None:
        if self.recorder is not None:
            await self.recorder.close()


def setup_logging(config, level: str = "INFO") -> None:

    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'logs/podrec.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    # Set up handlers
    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Log startup
    logger = logging.getLogger(__name__)
    logger.info("="*50)
    logger.info("podrec starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("="*50)


def print_devices() -> None:
    console = Console()
    for device in list_input_devices():
        marker = "*" if device.is_default else " "
        console.print(f"{marker} [{device.device_id}] {device.label} "
                      f"({device.max_input_channels} ch, {device.default_sample_rate:.0f}Hz)")


async def _record(server: Server, args) -> int:
    try:
        if not await server.init(args.device, args.gain):
            return 1
        if not await server.resolve_destination(args.output, args.choose):
            return 1
        await server.run(args.duration)
        return 0
    finally:
        await server.cleanup()


def main() -> None:
    """Main entry point for podrec."""
    parser = argparse.ArgumentParser(
        description="podrec - crash-safe microphone recorder",
        epilog="Press Ctrl-C to stop recording; the take is saved on exit"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in settings)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, INFO)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Recording duration in seconds; 0 records until Ctrl-C (default: 0)"
    )

    parser.add_argument(
        "--output",
        type=str,
        help="Destination file (.wav or .mp3); default is a timestamped file on the Desktop"
    )

    parser.add_argument(
        "--choose",
        action="store_true",
        help="Prompt for the destination file before recording"
    )

    parser.add_argument(
        "--device",
        type=int,
        help="Input device index (see --list-devices)"
    )

    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List input devices and exit"
    )

    parser.add_argument(
        "--title",
        type=str,
        help="Recording title used in the default file name (overrides config)"
    )

    parser.add_argument(
        "--gain",
        type=float,
        help="Input gain multiplier (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"podrec v{__version__}"
    )

    args = parser.parse_args()

    if args.list_devices:
        print_devices()
        return

    server = Server(args.config, args.log_level)
    if args.title is not None:
        server.config.set('recording.title', args.title)
    try:
        sys.exit(asyncio.run(_record(server, args)))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    except Exception as e:
        print(f"Error: {e}")
        logging.error(f"Application error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
