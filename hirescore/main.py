"""HireScore CLI - AI screening of CVs against a job description."""

import asyncio
import json
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from hirescore.config import (
    BATCH_CHUNK_SIZE,
    BATCH_MAX_CONCURRENT_CHUNKS,
    GROQ_MODEL,
    SCORING_MAX_ATTEMPTS,
)
from hirescore.cv.extractor import (
    DocumentExtractor,
    EXTENSION_KINDS,
    UnsupportedDocumentError,
    load_document,
)
from hirescore.cv.validator import validate_cv_content
from hirescore.jobs.fetcher import JobFetchError, fetch_job_description
from hirescore.schemas.batch import BatchCandidate, CandidateOutcome
from hirescore.scoring.client import ScoringClient
from hirescore.scoring.models import ModelCatalog
from hirescore.services import BatchOrchestrator, BatchSettings, BatchSetupError, screen_candidate
from hirescore.utils import LLMConfigurationError, check_llm_configured

app = typer.Typer(help="HireScore - AI-powered CV screening against a job description")
console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

RECOMMENDATION_STYLES = {"interview": "green", "maybe": "yellow", "pass": "red"}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show progress logs"),
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
        force=True,
    )


@app.command()
def extract(
    cv: Path = typer.Option(..., "--cv", "-c", help="Path to CV file"),
    preview: int = typer.Option(500, "--preview", help="Characters of text to show"),
) -> None:
    """Extract text from a CV and show how it would be validated."""
    try:
        document = load_document(cv)
    except (FileNotFoundError, UnsupportedDocumentError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    extraction = asyncio.run(DocumentExtractor.from_config().extract(document))
    verdict = validate_cv_content(extraction.text, document.filename)

    table = Table(title=f"Extraction: {document.filename}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Method", extraction.method.value)
    table.add_row("Pages", str(extraction.page_count) if extraction.page_count else "-")
    table.add_row("Characters", str(len(extraction.text)))
    table.add_row("Failed", "Yes" if extraction.failed else "No")
    table.add_row("Valid CV", "Yes" if verdict.valid else "No")
    if verdict.reason:
        table.add_row("Reason", escape(verdict.reason))
    if verdict.warning:
        table.add_row("Warning", escape(verdict.warning))
    console.print(table)

    text = extraction.text[:preview]
    if len(extraction.text) > preview:
        text += "..."
    console.print(Panel(renderable=escape(text), title="Text preview", border_style="blue"))


@app.command()
def screen(
    cv: Path = typer.Option(..., "--cv", "-c", help="Path to CV file"),
    jd: Path | None = typer.Option(None, "--jd", "-j", help="Path to job description text file"),
    jd_url: str | None = typer.Option(None, "--jd-url", help="URL of a job posting"),
    model: str = typer.Option(GROQ_MODEL, "--model", "-m", help="Provider model id"),
    output_json: bool = typer.Option(
        False, "--json", help="Output result as JSON instead of pretty format"
    ),
) -> None:
    """Screen a single CV against a job description."""
    job_description = _load_job_description(jd, jd_url)
    _require_llm()

    try:
        document = load_document(cv)
    except (FileNotFoundError, UnsupportedDocumentError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    candidate = BatchCandidate(candidate_id="1", name=document.filename, document=document)
    if not output_json:
        console.print(f"[bold cyan]Screening {document.filename} with {model}...[/bold cyan]")

    outcome = asyncio.run(
        screen_candidate(
            candidate,
            job_description,
            ScoringClient(),
            DocumentExtractor.from_config(),
            model=model,
        )
    )

    if output_json:
        _output_json([outcome])
    else:
        _output_pretty([outcome])

    if not outcome.success:
        raise typer.Exit(1)


@app.command()
def batch(
    cvs: list[Path] = typer.Option(
        ..., "--cvs", help="CV files or directories (repeat for several)"
    ),
    jd: Path | None = typer.Option(None, "--jd", "-j", help="Path to job description text file"),
    jd_url: str | None = typer.Option(None, "--jd-url", help="URL of a job posting"),
    model: str = typer.Option(GROQ_MODEL, "--model", "-m", help="Provider model id"),
    chunk_size: int = typer.Option(BATCH_CHUNK_SIZE, "--chunk-size", min=1, help="Candidates per chunk"),
    concurrency: int = typer.Option(
        BATCH_MAX_CONCURRENT_CHUNKS, "--concurrency", min=1, help="Chunks in flight at once"
    ),
    max_attempts: int = typer.Option(
        SCORING_MAX_ATTEMPTS, "--max-attempts", min=1, help="Scoring attempts per candidate"
    ),
    no_aggregate: bool = typer.Option(
        False, "--no-aggregate", help="Score every candidate with its own request"
    ),
    output_json: bool = typer.Option(
        False, "--json", help="Output results as JSON instead of pretty format"
    ),
) -> None:
    """Screen many CVs against one job description."""
    job_description = _load_job_description(jd, jd_url)
    _require_llm()

    candidates = []
    for path in _expand_paths(cvs):
        try:
            document = load_document(path)
        except (FileNotFoundError, UnsupportedDocumentError) as e:
            console.print(f"[yellow]Skipping {path}: {e}[/yellow]")
            continue
        candidates.append(
            BatchCandidate(
                candidate_id=str(len(candidates) + 1),
                name=document.filename,
                document=document,
            )
        )

    settings = BatchSettings(
        chunk_size=chunk_size,
        max_concurrent_chunks=concurrency,
        max_attempts=max_attempts,
        aggregate_chunks=not no_aggregate,
        model=model,
    )
    orchestrator = BatchOrchestrator(ScoringClient(), settings=settings)

    try:
        with Progress(
            TextColumn("[bold cyan]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            disable=output_json,
        ) as progress:
            task_id = progress.add_task("Screening", total=len(candidates))

            def on_progress(completed: int, total: int, status: str | None) -> None:
                progress.update(task_id, completed=completed, description=status or "Screening")

            result = asyncio.run(
                orchestrator.run(job_description, candidates, on_progress=on_progress)
            )
    except BatchSetupError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if output_json:
        json.dump(obj=result.model_dump(mode="json"), fp=sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    ranked = sorted(result.results, key=lambda o: o.result.score, reverse=True)
    _output_table(ranked)
    summary = result.summary
    console.print(
        f"\n[bold green]Screened {summary.processed}/{summary.total} candidates[/bold green] "
        f"({summary.failed} failed) in {summary.elapsed_ms / 1000:.1f}s, "
        f"avg {summary.avg_ms_per_candidate}ms per CV"
    )


@app.command()
def models(
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the cached model list"),
    output_json: bool = typer.Option(False, "--json", help="Output models as JSON"),
) -> None:
    """List provider models available for screening."""
    catalog = ModelCatalog()
    available, cached = catalog.get_models(force_refresh=refresh)

    if output_json:
        output = {
            "models": [m.model_dump(mode="json") for m in available],
            "cached": cached,
            "source": catalog.source,
        }
        json.dump(obj=output, fp=sys.stdout, indent=2)
        sys.stdout.write("\n")
        return

    table = Table(title=f"Available Models ({catalog.source})")
    table.add_column("Model", style="cyan")
    table.add_column("Owner", style="dim")
    table.add_column("Context", justify="right")
    table.add_column("Recommended", style="green")

    for model in available:
        table.add_row(
            model.id,
            model.owned_by or "-",
            f"{model.context_length:,}" if model.context_length else "-",
            "Yes" if model.recommended else "",
        )
    console.print(table)


def _require_llm() -> None:
    try:
        check_llm_configured()
    except LLMConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _load_job_description(jd: Path | None, jd_url: str | None) -> str:
    """Read the job description from a file or a URL."""
    if (jd is None) == (jd_url is None):
        console.print("[red]Error: Provide exactly one of --jd or --jd-url[/red]")
        raise typer.Exit(1)

    if jd_url is not None:
        try:
            return fetch_job_description(jd_url)
        except JobFetchError as e:
            console.print(f"[red]Error fetching job description: {e}[/red]")
            raise typer.Exit(1)

    if not jd.exists():
        console.print(f"[red]Error: Job description file not found: {jd}[/red]")
        raise typer.Exit(1)
    text = jd.read_text(encoding="utf-8", errors="replace").strip()
    if not text:
        console.print(f"[red]Error: Job description file is empty: {jd}[/red]")
        raise typer.Exit(1)
    return text


def _expand_paths(paths: list[Path]) -> list[Path]:
    """Expand directories to the supported files they contain."""
    expanded = []
    for path in paths:
        if path.is_dir():
            expanded.extend(
                sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() in EXTENSION_KINDS)
            )
        else:
            expanded.append(path)
    return expanded


def _output_json(outcomes: list[CandidateOutcome]) -> None:
    """Output outcomes as JSON to stdout."""
    output = [outcome.model_dump(mode="json") for outcome in outcomes]
    json.dump(obj=output, fp=sys.stdout, indent=2)
    sys.stdout.write("\n")


def _output_table(outcomes: list[CandidateOutcome]) -> None:
    table = Table(title="Screening Results")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Candidate", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Recommendation")
    table.add_column("Status")
    table.add_column("Summary", overflow="fold")

    for i, outcome in enumerate(iterable=outcomes, start=1):
        result = outcome.result
        style = RECOMMENDATION_STYLES[result.recommendation.value]
        table.add_row(
            str(i),
            escape(outcome.name),
            str(result.score),
            f"[{style}]{result.recommendation.value}[/{style}]",
            outcome.status.value if outcome.success else f"[red]{outcome.status.value}[/red]",
            escape(outcome.error or result.summary),
        )
    console.print(table)


def _output_pretty(outcomes: list[CandidateOutcome]) -> None:
    """Output outcomes in pretty console format."""
    for outcome in outcomes:
        result = outcome.result
        style = RECOMMENDATION_STYLES[result.recommendation.value]
        header = f"[bold]{escape(outcome.name)}[/bold] - {result.score}/100 ({result.recommendation.value})"

        content = [f"[cyan]Summary:[/cyan] {escape(result.summary)}"]

        if outcome.error:
            content.append(f"[red]Error:[/red] {escape(outcome.error)}")
        if result.validation_warning:
            content.append(f"[yellow]Warning:[/yellow] {escape(result.validation_warning)}")
        if result.gating_applied:
            content.append(
                f"[yellow]Score capped from {result.raw_score} "
                f"({len(result.missing_skills)} required skills missing)[/yellow]"
            )

        if result.matched_skills:
            content.append(f"\n[cyan]Matched skills:[/cyan] {', '.join(result.matched_skills)}")
        if result.missing_skills:
            content.append(f"[cyan]Missing skills:[/cyan] {', '.join(result.missing_skills)}")

        if result.strengths:
            content.append("\n[cyan]Strengths:[/cyan]")
            for point in result.strengths:
                content.append(f"  • {point}")

        if result.concerns:
            content.append("\n[cyan]Concerns:[/cyan]")
            for point in result.concerns:
                content.append(f"  • {point}")

        if result.interview_questions:
            content.append("\n[yellow]Interview questions:[/yellow]")
            for question in result.interview_questions:
                content.append(f"  • {question}")

        if result.confidence is not None:
            content.append(f"\n[dim]Confidence: {result.confidence:.0%}[/dim]")

        panel = Panel(renderable="\n".join(content), title=header, border_style=style)
        console.print(panel)
        console.print()


if __name__ == "__main__":
    app()
