from __future__ import annotations

import json
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from config.paths import get_paths
from contact_capture.display import SpectrumBoard
from contact_capture.event_writer import JsonlWriter
from contact_capture.pipeline import CapturePipeline
from contact_capture.remote import KinesisEventSource, make_session
from contact_capture.retry import RetryExecutor
from sdk.config import CUSTOMER_TRACK, OPERATOR_TRACK, CaptureConfig


app = typer.Typer(add_completion=False, no_args_is_help=True)

ENV = "CONNECT_CAPTURE_"


@app.command()
def run(
    stream_name: str = typer.Option(..., "--stream-name", "-s", envvar=ENV + "STREAM_NAME", help="Kinesis data stream carrying contact-flow events"),
    region: str = typer.Option(..., "--region", "-r", envvar=ENV + "REGION", help="AWS region, e.g. ap-northeast-1"),
    max_retry_count: int = typer.Option(3, envvar=ENV + "MAX_RETRY_COUNT", help="Retries after the first attempt of any AWS request"),
    retry_interval: float = typer.Option(1.0, envvar=ENV + "RETRY_INTERVAL", help="Seconds between retries"),
    poll_interval: float = typer.Option(1.0, envvar=ENV + "POLL_INTERVAL", help="Seconds between GetRecords calls"),
    audio_path: Optional[Path] = typer.Option(None, "--audio-path", envvar=ENV + "AUDIO_PATH", help="Output folder for .wav files"),
    timezone: str = typer.Option("UTC", envvar=ENV + "TIMEZONE", help="Timezone used in output file names"),
    customer_track: str = typer.Option(CUSTOMER_TRACK, help="Track name of the customer's audio"),
    operator_track: str = typer.Option(OPERATOR_TRACK, help="Track name of the operator's audio"),
    ui_port: Optional[int] = typer.Option(None, "--ui-port", help="Serve the live spectrum board on this port"),
    ui_host: str = typer.Option("127.0.0.1", "--ui-host"),
    echo_events: bool = typer.Option(False, "--echo-events", help="Mirror every event line to stderr"),
) -> None:
    """Capture contact audio for every contact announced on the stream."""

    paths = get_paths()
    try:
        cfg_kwargs = dict(
            region=region,
            stream_name=stream_name,
            max_retry_count=max_retry_count,
            retry_interval=retry_interval,
            poll_interval=poll_interval,
            timezone=timezone,
            customer_track=customer_track,
            operator_track=operator_track,
        )
        if audio_path is not None:
            cfg_kwargs["audio_path"] = audio_path
        cfg = CaptureConfig(**cfg_kwargs)
        cfg.tz()
    except (ValidationError, LookupError, ValueError) as exc:
        typer.echo(f"[capture] invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)

    writer = JsonlWriter(paths.events_log, flush_every=25, echo=echo_events)
    board = SpectrumBoard(maxsize=cfg.display_queue_size)
    board.start()
    ui_server = None
    if ui_port is not None:
        from apps.ui_api.main import UIServer, create_app

        ui_server = UIServer(create_app(board), ui_host, ui_port)
        ui_server.start()
        typer.echo(f"[capture] Spectrum board on http://{ui_host}:{ui_port}/contacts")

    stop_event = threading.Event()
    give_up = threading.Event()

    def _stop(*_object: object) -> None:
        # second signal stops waiting for in-flight captures
        if stop_event.is_set():
            give_up.set()
        stop_event.set()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}

    try:
        pipeline = CapturePipeline(cfg, events_writer=writer, display=board, stop_event=stop_event)
        typer.echo(f"[capture] Receiving contact events from '{cfg.stream_name}' → {cfg.audio_path}")
        typer.echo("Press Ctrl+C to stop.")
        state = pipeline.run()
        typer.echo(f"[capture] Stopped receiving contact events ({state.value})")
        if pipeline.sessions:
            typer.echo(f"[capture] Waiting for {len(pipeline.sessions)} capture(s); Ctrl+C again to abandon")
        pipeline.poller.join_workers(stop=give_up)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
        if ui_server is not None:
            ui_server.stop()
        board.stop()
        writer.close()


@app.command("send-event")
def send_event(
    event_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Contact-flow event JSON"),
    stream_name: str = typer.Option(..., "--stream-name", "-s", envvar=ENV + "STREAM_NAME"),
    region: str = typer.Option(..., "--region", "-r", envvar=ENV + "REGION"),
    max_retry_count: int = typer.Option(3, envvar=ENV + "MAX_RETRY_COUNT"),
    retry_interval: float = typer.Option(1.0, envvar=ENV + "RETRY_INTERVAL"),
) -> None:
    """Put a contact-flow event onto the stream, as the contact flow would."""

    try:
        event = json.loads(event_file.read_text(encoding="utf-8"))
    except ValueError as exc:
        typer.echo(f"[capture] {event_file} is not valid JSON: {exc}", err=True)
        raise typer.Exit(code=2)

    paths = get_paths()
    writer = JsonlWriter(paths.events_log, flush_every=1)
    try:
        source = KinesisEventSource.from_session(make_session(region), stream_name)
        executor = RetryExecutor(max_retry_count, retry_interval, events_writer=writer)
        result = executor.call(lambda: source.put_event(event), name="put_record", session=stream_name)
    finally:
        writer.close()
    if result is None:
        typer.echo("[capture] put_record failed; see the events log", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"[capture] Sent to shard {result.get('ShardId')} seq {result.get('SequenceNumber')}")


if __name__ == "__main__":
    app()
