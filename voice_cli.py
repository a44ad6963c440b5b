#!/usr/bin/env python3
"""
Command-line voice intake: dictate answers into intake form fields
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Optional

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from voice_intake.core.config import settings
from voice_intake.core.logging import get_logger, setup_logging
from voice_intake.voice import (
    AudioCapture,
    PyAudioInput,
    VoicePhase,
    VoiceSession,
    VoiceSessionController,
    build_transcription_client,
)

DEFAULT_FIELDS = ["chief_complaint", "allergies", "medications", "medical_history"]

console = Console()
logger = get_logger("voice_cli")

PHASE_STYLES = {
    VoicePhase.IDLE: "dim",
    VoicePhase.REQUESTING_PERMISSION: "yellow",
    VoicePhase.RECORDING: "red",
    VoicePhase.PROCESSING: "cyan",
    VoicePhase.ERROR: "bold red",
}


def _show_phase(session: VoiceSession):
    style = PHASE_STYLES.get(session.phase, "white")
    line = f"[{style}]{session.target_field_id}: {session.phase.value}"
    if session.phase is VoicePhase.ERROR and session.last_error:
        line += f" - {session.last_error}"
    console.print(line)


def _level_bars(level: float, width: int = 20) -> str:
    filled = int(min(max(level * 8, 0.0), 1.0) * width)
    return "█" * filled + "░" * (width - filled)


async def _wait_for_enter(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, input, prompt)


def show_form(form: Dict[str, str]):
    table = Table(title="Intake form")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in form.items():
        table.add_row(name, value or "[dim]-")
    console.print(table)


async def dictate(fields: List[str], preferred: Optional[str], device_index: Optional[int]) -> Dict[str, str]:
    """Record one answer per field and merge the transcripts into the form"""
    form = {name: "" for name in fields}

    audio_input = PyAudioInput(
        sample_rate=settings.voice.sample_rate,
        channels=settings.voice.channels,
        chunk_interval=settings.voice.chunk_interval,
        device_index=device_index if device_index is not None else settings.voice.device_index,
    )
    controller = VoiceSessionController(
        capture=AudioCapture(audio_input),
        transcriber=build_transcription_client(settings),
        form=form,
        preferred_provider=preferred or settings.voice.preferred_provider,
        auto_stop_seconds=settings.voice.auto_stop_seconds,
        error_clear_seconds=settings.voice.error_clear_seconds,
        on_phase_change=_show_phase,
    )

    try:
        if not await controller.test_microphone():
            console.print("[red]Microphone test failed. Please check your microphone and permissions.")
            return form

        for name in fields:
            answer = await _wait_for_enter(f"Press Enter to dictate '{name}' (s to skip, q to quit): ")
            if answer.strip().lower() == "q":
                break
            if answer.strip().lower() == "s":
                continue

            session = await controller.start(name)
            if session.phase is not VoicePhase.RECORDING:
                continue

            console.print(f"[red]Recording... press Enter to stop (auto-stop after {controller.auto_stop_seconds:.0f}s)")
            stop_request = asyncio.ensure_future(_wait_for_enter(""))
            while not stop_request.done() and session.phase is VoicePhase.RECORDING:
                console.print(f"\r{_level_bars(controller.capture.current_level())}", end="")
                await asyncio.sleep(0.1)
            console.print()

            if session.phase is VoicePhase.RECORDING:
                await controller.stop()
            elif not stop_request.done():
                # Auto-stop fired; the Enter press is still pending
                console.print("[dim]Auto-stopped, press Enter to continue")
                await stop_request

            while session.phase is VoicePhase.PROCESSING:
                await asyncio.sleep(0.1)

            if session.result is not None and session.result.is_success:
                confidence = session.result.confidence
                suffix = f" ({round(confidence * 100)}% confidence)" if confidence is not None else ""
                console.print(f"[green]✓ Transcribed successfully{suffix}")
    finally:
        await controller.close()

    return form


async def relay_message(base_url: str, message: str) -> int:
    """Send a text message through the relay"""
    async with httpx.AsyncClient(timeout=settings.relay.timeout) as client:
        try:
            response = await client.post(f"{base_url.rstrip('/')}/chat", json={"message": message})
        except httpx.HTTPError as e:
            console.print(f"[red]❌ Could not reach relay at {base_url}: {e}")
            return 1

    body = response.json()
    style = "green" if response.is_success else "red"
    console.print(Panel(body.get("response", ""), title=f"Relay ({response.status_code})", border_style=style))
    return 0 if response.is_success else 1


def show_devices() -> int:
    audio_input = PyAudioInput()
    try:
        devices = audio_input.get_audio_devices()
    finally:
        audio_input.close()

    table = Table(title="Audio input devices")
    table.add_column("Index", justify="right")
    table.add_column("Name")
    table.add_column("Channels", justify="right")
    table.add_column("Sample rate", justify="right")
    for device in devices:
        table.add_row(str(device['index']), device['name'], str(device['channels']), f"{device['sample_rate']:.0f}")
    console.print(table)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Voice intake from the command line")
    parser.add_argument("--log-level", default="WARNING", help="Log level for diagnostic output on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    dictate_parser = subparsers.add_parser("dictate", help="Dictate answers into intake fields")
    dictate_parser.add_argument("--fields", nargs="+", default=DEFAULT_FIELDS, help="Fields to fill in order")
    dictate_parser.add_argument("--provider", choices=["openai", "google", "relay"], help="Preferred transcription provider")
    dictate_parser.add_argument("--device", type=int, help="Audio input device index")

    relay_parser = subparsers.add_parser("relay", help="Send a message through the model relay")
    relay_parser.add_argument("message", help="Message text")
    relay_parser.add_argument("--url", default=f"http://localhost:{settings.port}", help="Relay base URL")

    subparsers.add_parser("devices", help="List audio input devices")

    args = parser.parse_args(argv)
    setup_logging(args.log_level, stream=sys.stderr)

    if args.command == "dictate":
        form = asyncio.run(dictate(args.fields, args.provider, args.device))
        show_form(form)
        return 0
    if args.command == "relay":
        return asyncio.run(relay_message(args.url, args.message))
    return show_devices()


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        console.print("\n[blue]👋 Goodbye![/blue]")
    except ImportError as e:
        logger.error(f"Missing dependency: {e}")
        console.print(f"[red]❌ {e}")
        sys.exit(1)
