#!/usr/bin/env python3
"""
ScreenContext CLI

Turns screen recordings of development issues into structured metadata
for code-solution generation.
"""

import asyncio
import json
import signal
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from config import AIProvider, PipelineConfig, SampleMode, VisionStrategy
from utils.errors import ConfigError, ScreenContextError
from utils.logger import PipelineLogger, set_logger
from utils.tracking import CostTracker, Timer

load_dotenv()

# Create Typer app
app = typer.Typer(
    name="screencontext",
    help="Turn screen recordings into structured context for AI code assistance",
    rich_markup_mode="rich",
)

console = Console()


ProviderOption = Annotated[
    Optional[AIProvider],
    typer.Option("-p", "--provider", help="AI provider (default: SCREENCONTEXT_PROVIDER or openai)"),
]
StrategyOption = Annotated[
    Optional[VisionStrategy],
    typer.Option("--vision", help="Vision strategy: local OCR or remote provider"),
]
MaxFramesOption = Annotated[
    Optional[int],
    typer.Option("--max-frames", help="Maximum number of frames to analyze"),
]
SampleModeOption = Annotated[
    Optional[SampleMode],
    typer.Option("--sample-mode", help="Key frames at fixed fractions, or one frame every N seconds"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("-v", "--verbose", help="Show per-frame progress bars"),
]


def _build_config(
    provider: AIProvider | None,
    vision: VisionStrategy | None,
    max_frames: int | None,
    sample_mode: SampleMode | None,
) -> PipelineConfig:
    """Build the pipeline config from the environment plus CLI overrides."""
    try:
        return PipelineConfig.from_env(
            provider=provider,
            vision_strategy=vision,
            max_frames=max_frames,
            sample_mode=sample_mode,
        )
    except ConfigError as e:
        console.print(f"[red]✗[/red] Invalid configuration: {e.reason}")
        raise typer.Exit(1)


def _build_pipeline(config: PipelineConfig, logger: PipelineLogger, cost_tracker: CostTracker, verbose: bool):
    from analyzer.pipeline import RecordingPipeline

    try:
        return RecordingPipeline(config, logger=logger, cost_tracker=cost_tracker, verbose=verbose)
    except ScreenContextError as e:
        logger.error(e.reason)
        raise typer.Exit(1)


def _print_costs(logger: PipelineLogger, cost_tracker: CostTracker) -> None:
    """Print the per-phase cost breakdown, if any remote call was made."""
    if cost_tracker.by_phase:
        logger.table(
            "Cost by Phase",
            ["Phase", "Model", "Calls", "Input", "Output", "Cost"],
            cost_tracker.get_phase_summary(),
        )
        logger.print()


def _default_output(video: Path, directory: str, suffix: str = "") -> Path:
    return Path(directory) / f"{video.stem}{suffix}"


def _print_metadata(logger: PipelineLogger, metadata) -> None:
    """Print the headline fields of processed metadata."""
    user = metadata.user_context
    technical = metadata.technical_context
    logger.info(f"Request type: [bold]{user.request_type}[/bold] (emotion: {user.user_emotion})")
    logger.info(f"Framework: {technical.detected_framework}")
    logger.info(f"Frames analyzed: {metadata.visual_context.frames_analyzed}")
    if technical.error_patterns:
        logger.info(f"Error patterns: {', '.join(technical.error_patterns)}")
    if technical.suggested_focus:
        logger.info(f"Suggested focus: {', '.join(technical.suggested_focus)}")
    logger.info(f"Transcript: [dim]{user.transcript[:120]}[/dim]")


@app.command()
def record(
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output path for metadata (.json or .yaml)"),
    ] = None,
    audio: Annotated[
        bool,
        typer.Option("--audio/--no-audio", help="Enable/disable audio recording"),
    ] = True,
    max_seconds: Annotated[
        Optional[float],
        typer.Option("--max-seconds", help="Stop automatically after this many seconds"),
    ] = None,
    provider: ProviderOption = None,
    vision: StrategyOption = None,
    max_frames: MaxFramesOption = None,
    sample_mode: SampleModeOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Record the screen (+ microphone) and process the recording.

    Press Ctrl+C to stop and process; send SIGTERM to cancel.
    """
    from datetime import datetime
    from recorder.capture import CaptureNegotiator, FFmpegCaptureBackend

    config = _build_config(provider, vision, max_frames, sample_mode)

    logger = PipelineLogger("record")
    set_logger(logger)
    cost_tracker = CostTracker()
    timer = Timer("Recording")

    try:
        timer.start()
        logger.header("Screen Recording")
        logger.info(f"Provider: [cyan]{config.provider}[/cyan] (vision: {config.vision_strategy})")
        logger.info(f"Audio: [{'green' if audio else 'red'}]{'enabled' if audio else 'disabled'}[/]")
        logger.print()
        logger.print("[red bold]🔴 Recording will start immediately.[/red bold]")
        logger.print("Press [bold]Ctrl+C[/bold] to stop recording.")
        logger.print()

        pipeline = _build_pipeline(config, logger, cost_tracker, verbose)
        negotiator = CaptureNegotiator(FFmpegCaptureBackend(), logger=logger)

        async def run():
            stop_event = asyncio.Event()
            cancel_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, stop_event.set)
            loop.add_signal_handler(signal.SIGTERM, cancel_event.set)
            if max_seconds:
                loop.call_later(max_seconds, stop_event.set)
            try:
                with logger.progress() as progress:
                    task = progress.add_task("Processing", total=1.0, visible=False)

                    def on_progress(fraction: float) -> None:
                        progress.update(task, completed=fraction, visible=True)

                    return await pipeline.record_and_process(
                        negotiator,
                        stop_event,
                        cancel_event=cancel_event,
                        on_progress=on_progress,
                        with_audio=audio,
                    )
            finally:
                loop.remove_signal_handler(signal.SIGINT)
                loop.remove_signal_handler(signal.SIGTERM)

        try:
            metadata = asyncio.run(run())
        except ScreenContextError as e:
            logger.error(e.reason)
            raise typer.Exit(1)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = metadata.save(output or Path("./metadata") / f"recording_{timestamp}.json")
        timer.stop()

        logger.header("Recording Summary")
        _print_metadata(logger, metadata)
        logger.print()
        _print_costs(logger, cost_tracker)
        logger.summary("Recording Processed", {
            "Status": "[green]Completed[/green]",
            "Duration": timer.elapsed_str,
            "Metadata": str(output_path),
            **cost_tracker.get_summary(),
            "Log File": str(logger.log_file),
        })
        logger.print()
        logger.info("To generate a code solution, run:")
        logger.print(f"  [dim]python main.py solve {output_path}[/dim]")

    finally:
        logger.close()


@app.command()
def process(
    video: Annotated[
        Path,
        typer.Argument(help="Path to video file (.webm, .mkv, .mov, .mp4, ...)"),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output path for metadata (.json or .yaml)"),
    ] = None,
    provider: ProviderOption = None,
    vision: StrategyOption = None,
    max_frames: MaxFramesOption = None,
    sample_mode: SampleModeOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Process an existing recording into metadata."""
    if not video.exists():
        console.print(f"[red]✗[/red] Video file not found: {video}")
        raise typer.Exit(1)

    config = _build_config(provider, vision, max_frames, sample_mode)

    logger = PipelineLogger("process")
    set_logger(logger)
    cost_tracker = CostTracker()
    timer = Timer("Processing")

    try:
        timer.start()
        logger.header("Recording Analysis")
        logger.info(f"Video: [cyan]{video}[/cyan]")
        logger.info(f"Provider: [cyan]{config.provider}[/cyan] (vision: {config.vision_strategy})")

        pipeline = _build_pipeline(config, logger, cost_tracker, verbose)

        try:
            with logger.progress() as progress:
                task = progress.add_task("Processing", total=1.0)
                metadata = asyncio.run(pipeline.process(
                    video.read_bytes(),
                    on_progress=lambda fraction: progress.update(task, completed=fraction),
                    suffix=video.suffix or ".webm",
                ))
        except ScreenContextError as e:
            logger.error(e.reason)
            raise typer.Exit(1)

        output_path = metadata.save(output or _default_output(video, "./metadata", ".json"))
        timer.stop()

        logger.header("Analysis Summary")
        _print_metadata(logger, metadata)
        logger.print()
        _print_costs(logger, cost_tracker)
        logger.summary("Analysis Complete", {
            "Status": "[green]Completed[/green]",
            "Duration": timer.elapsed_str,
            "Metadata": str(output_path),
            **cost_tracker.get_summary(),
            "Log File": str(logger.log_file),
        })

    finally:
        logger.close()


@app.command()
def export(
    video: Annotated[
        Path,
        typer.Argument(help="Path to video file"),
    ],
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Output directory for frames and instructions"),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Also write bundle.json with frames as data URLs"),
    ] = False,
    provider: ProviderOption = None,
    max_frames: MaxFramesOption = None,
    sample_mode: SampleModeOption = None,
) -> None:
    """Export frames, transcript and instructions for an external coding agent."""
    if not video.exists():
        console.print(f"[red]✗[/red] Video file not found: {video}")
        raise typer.Exit(1)

    config = _build_config(provider, None, max_frames, sample_mode)

    logger = PipelineLogger("export")
    set_logger(logger)
    cost_tracker = CostTracker()

    try:
        logger.header("Agent Export")
        logger.info(f"Video: [cyan]{video}[/cyan]")

        pipeline = _build_pipeline(config, logger, cost_tracker, verbose=False)

        try:
            with logger.progress() as progress:
                task = progress.add_task("Exporting", total=1.0)
                bundle = asyncio.run(pipeline.export_for_external_agent(
                    video.read_bytes(),
                    on_progress=lambda fraction: progress.update(task, completed=fraction),
                    suffix=video.suffix or ".webm",
                ))
        except ScreenContextError as e:
            logger.error(e.reason)
            raise typer.Exit(1)

        output_dir = bundle.save(output or _default_output(video, "./exports"))
        if as_json:
            (output_dir / "bundle.json").write_text(json.dumps(bundle.to_dict(), indent=2), encoding="utf-8")

        logger.success(f"Export saved: [cyan]{output_dir}[/cyan]")
        logger.info(f"Frames: {len(bundle.frames)}")

    finally:
        logger.close()


@app.command()
def solve(
    metadata_path: Annotated[
        Path,
        typer.Argument(help="Path to metadata file (.json or .yaml)"),
    ],
    provider: ProviderOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("-o", "--output", help="Write the solution to a Markdown file"),
    ] = None,
) -> None:
    """Generate a code solution from processed metadata."""
    from rich.markdown import Markdown
    from analyzer.schema import ProcessedMetadata
    from prompts.solution_prompts import generate_follow_up_questions
    from utils.providers import ProviderClient

    if not metadata_path.exists():
        console.print(f"[red]✗[/red] Metadata not found: {metadata_path}")
        raise typer.Exit(1)

    config = _build_config(provider, None, None, None)
    metadata = ProcessedMetadata.load(metadata_path)

    logger = PipelineLogger("solve")
    set_logger(logger)
    cost_tracker = CostTracker()

    try:
        logger.header("Code Solution")
        logger.info(f"Model: [cyan]{config.models.chat}[/cyan]")

        client = ProviderClient(config, cost_tracker=cost_tracker, logger=logger)
        try:
            solution = client.generate_code_solution(metadata)
        except ScreenContextError as e:
            logger.error(e.reason)
            raise typer.Exit(1)

        logger.print(Markdown(solution))
        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(solution, encoding="utf-8")
            logger.success(f"Solution saved: [cyan]{output}[/cyan]")

        questions = generate_follow_up_questions(metadata)
        if questions:
            logger.print()
            logger.print("[bold]Follow-up questions:[/bold]")
            for question in questions:
                logger.print(f"  • {question}")

        logger.print()
        logger.summary("Solution Generated", cost_tracker.get_summary())

    finally:
        logger.close()


@app.command("test-connection")
def test_connection(
    provider: Annotated[
        AIProvider,
        typer.Argument(help="Provider to test"),
    ],
) -> None:
    """Check that the API key for a provider works."""
    from utils.providers import ProviderClient

    config = _build_config(provider, None, None, None)
    client = ProviderClient(config)

    with console.status(f"Testing {provider}..."):
        ok = client.test_connection()

    if ok:
        console.print(f"[green]✓[/green] {provider} connection OK ({config.models.chat})")
    else:
        console.print(f"[red]✗[/red] {provider} connection failed. Check your API key.")
        raise typer.Exit(1)


def main() -> None:
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
