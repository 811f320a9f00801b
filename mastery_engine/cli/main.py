"""
Typer CLI for the mastery engine.

Commands:
    mastery init-db              - Create database tables
    mastery import-content PATH  - Load a YAML topic graph into the content tables
    mastery topics               - List topics by domain
    mastery frontier -u ID       - Show a learner's knowledge frontier
    mastery progress -u ID       - Show a learner's mastery records
    mastery diagnose -u ID       - Run (or resume) an interactive placement diagnostic
    mastery schedule TOPIC -u ID - Record a review and schedule the next one
    mastery practice TOPIC -u ID - Blend a practice round into mastery and reschedule
    mastery reviews -u ID        - Show due reviews
    mastery optimal -u ID        - Show the compressed review set
    mastery serve                - Run the HTTP API

Usage:
    mastery --help
    mastery --content content/topics.yaml topics
    mastery diagnose --session abc123
    mastery schedule fractions -u alice --mastery 85 --accuracy 90
"""

from __future__ import annotations

import sys
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from mastery_engine.adaptive.placement import Placement
from mastery_engine.adaptive.session_store import DiagnosticSessionStore
from mastery_engine.config import get_settings
from mastery_engine.core.errors import MasteryEngineError
from mastery_engine.core.mastery import MasteryLevel, format_progress_bar
from mastery_engine.core.models import AnswerKind, LearnerRef
from mastery_engine.db.database import configure_database, init_db, session_scope
from mastery_engine.engine import MasteryEngine, load_engine_graph
from mastery_engine.graph.loader import import_topic_graph, load_topic_graph
from mastery_engine.store.memory import InMemoryMasteryStore
from mastery_engine.store.sql import SqlMasteryStore

app = typer.Typer(
    name="mastery",
    help="Adaptive mastery engine: placement diagnostics, frontier and FIRe review scheduling",
    no_args_is_help=True,
)

console = Console()

ANSWER_CHOICES = {
    "c": AnswerKind.CORRECT,
    "i": AnswerKind.INCORRECT,
    "?": AnswerKind.IDONTKNOW,
}


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    The engine is built lazily so commands like init-db never need a graph.
    """

    def __init__(
        self,
        database_url: str | None = None,
        content_path: str | None = None,
        memory: bool = False,
    ):
        self.settings = get_settings()
        self.content_path = Path(content_path or self.settings.content_path)
        self.memory = memory
        self._engine: MasteryEngine | None = None
        if database_url:
            configure_database(database_url)

    @property
    def engine(self) -> MasteryEngine:
        if self._engine is None:
            graph = load_engine_graph(self.content_path, sync_to_db=not self.memory)
            store = InMemoryMasteryStore() if self.memory else SqlMasteryStore()
            self._engine = MasteryEngine(graph, store, settings=self.settings)
        return self._engine

    def session_store(self) -> DiagnosticSessionStore:
        return DiagnosticSessionStore(
            self.settings.diagnostic_session_dir,
            expiry_hours=self.settings.diagnostic_session_expiry_hours,
        )


def _context(ctx: typer.Context) -> CLIContext:
    return ctx.obj


def _learner(user: str | None, session: str | None) -> LearnerRef:
    try:
        return LearnerRef(user_id=user, session_id=session)
    except MasteryEngineError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=2)


@contextmanager
def _engine_errors() -> Generator[None, None, None]:
    """Print engine errors and exit non-zero."""
    try:
        yield
    except MasteryEngineError as e:
        logger.debug(f"Command failed: {e!r}")
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


UserOption = typer.Option(None, "--user", "-u", help="Authenticated user ID")
SessionOption = typer.Option(None, "--session", "-s", help="Anonymous session ID")


@app.callback()
def main_callback(
    ctx: typer.Context,
    database_url: str | None = typer.Option(
        None, "--database-url", envvar="MASTERY_DATABASE_URL", help="Database connection string"
    ),
    content: str | None = typer.Option(None, "--content", help="YAML topic graph file"),
    memory: bool = typer.Option(
        False, "--memory", help="Use a throwaway in-memory mastery store"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR"),
):
    """Adaptive mastery engine CLI."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=(log_level or settings.log_level).upper(),
        format="<level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB", retention="7 days")

    ctx.obj = CLIContext(database_url=database_url, content_path=content, memory=memory)


# ========================================
# DATABASE & CONTENT COMMANDS
# ========================================


@app.command("init-db")
def init_db_command() -> None:
    """Create the content and mastery tables."""
    init_db()
    rprint("[green]Database tables initialized[/green]")


@app.command("import-content")
def import_content(
    path: Path = typer.Argument(..., help="YAML content file"),
    replace: bool = typer.Option(True, "--replace/--merge", help="Replace existing edges"),
) -> None:
    """Validate a topic graph file and load it into the database."""
    with _engine_errors():
        try:
            graph = load_topic_graph(path)
        except FileNotFoundError as e:
            rprint(f"[red]Error:[/red] {e}")
            raise typer.Exit(code=1)

        init_db()
        with session_scope() as session:
            counts = import_topic_graph(session, graph, replace=replace)

    rprint(
        f"[green]Imported[/green] {counts['topics']} topics, "
        f"{counts['prerequisites']} prerequisites, {counts['encompassings']} encompassings"
    )


@app.command("topics")
def list_topics(
    ctx: typer.Context,
    domain: str | None = typer.Option(None, "--domain", "-d", help="Only this domain"),
) -> None:
    """List topics grouped by domain."""
    with _engine_errors():
        graph = _context(ctx).engine.graph
        hierarchy = graph.hierarchy()
        if domain:
            hierarchy = {domain: graph.topics_by_domain(domain)}

    table = Table(title="Topics")
    table.add_column("Domain", style="cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Difficulty", justify="right")
    table.add_column("Prerequisites", style="dim")

    for domain_name, topics in hierarchy.items():
        for topic in topics:
            prereqs = ", ".join(p.id for p in graph.prerequisites(topic.id)) or "-"
            table.add_row(domain_name, topic.id, topic.name, str(topic.difficulty), prereqs)

    console.print(table)


# ========================================
# LEARNER COMMANDS
# ========================================


@app.command("frontier")
def show_frontier(
    ctx: typer.Context,
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Show the topics a learner is ready to learn next."""
    learner = _learner(user, session)
    with _engine_errors():
        engine = _context(ctx).engine
        frontier = engine.get_frontier(learner)
        records = engine.store.get_map(learner)

    if not frontier:
        rprint("[green]Nothing left on the frontier - every topic is mastered.[/green]")
        return

    table = Table(title=f"Knowledge frontier for {learner}")
    table.add_column("Topic")
    table.add_column("Domain", style="cyan")
    table.add_column("Difficulty", justify="right")
    table.add_column("Mastery")

    for topic in frontier:
        record = records.get(topic.id)
        score = record.mastery_level if record else 0.0
        level = MasteryLevel.from_score(record.mastery_level if record else None)
        table.add_row(
            topic.name,
            topic.domain,
            str(topic.difficulty),
            f"[{level.color}]{format_progress_bar(score)} {score:.0f}%[/{level.color}]",
        )

    console.print(table)


@app.command("progress")
def show_progress(
    ctx: typer.Context,
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Show every mastery record for a learner."""
    learner = _learner(user, session)
    with _engine_errors():
        engine = _context(ctx).engine
        records = engine.get_all_mastery(learner)

    if not records:
        rprint(f"[yellow]No mastery recorded for {learner} yet.[/yellow]")
        return

    table = Table(title=f"Mastery for {learner}")
    table.add_column("", width=2)
    table.add_column("Topic")
    table.add_column("Mastery")
    table.add_column("Level")
    table.add_column("Next review", style="dim")

    for record in sorted(records, key=lambda r: r.topic_id):
        level = MasteryLevel.from_score(record.mastery_level)
        name = engine.graph.topic(record.topic_id).name if record.topic_id in engine.graph else record.topic_id
        table.add_row(
            level.emoji,
            name,
            f"{format_progress_bar(record.mastery_level)} {record.mastery_level:.0f}%",
            f"[{level.color}]{level.display_name}[/{level.color}]",
            record.next_review.strftime("%Y-%m-%d") if record.next_review else "-",
        )

    console.print(table)


# ========================================
# DIAGNOSTIC
# ========================================


def _print_placement(placement: Placement) -> None:
    summary = placement.summary
    lines = [
        f"Topics tested: [bold]{summary.total_topics_tested}[/bold]",
        f"Strong understanding: [green]{summary.topics_with_strong_understanding}[/green]",
        f"In progress: [yellow]{summary.topics_in_progress}[/yellow]",
        f"Unknown: [red]{summary.topics_unknown}[/red]",
        f"Frontier topics: [cyan]{summary.frontier_topics}[/cyan]",
    ]
    if placement.recommended_topic is not None:
        lines.append(
            f"\nStart with: [bold cyan]{placement.recommended_topic.name}[/bold cyan] "
            f"({placement.recommended_mastery:.0f}% mastery)"
        )
    console.print(Panel("\n".join(lines), title="[bold]Placement[/bold]", border_style="green"))


@app.command("diagnose")
def diagnose(
    ctx: typer.Context,
    user: str | None = UserOption,
    session: str | None = SessionOption,
    resume: bool = typer.Option(True, "--resume/--new", help="Resume an unfinished diagnostic"),
) -> None:
    """
    Run an adaptive placement diagnostic.

    For each topic answer c (correct), i (incorrect), ? (don't know),
    or q to save and quit.
    """
    learner = _learner(user, session)
    cli = _context(ctx)
    store = cli.session_store()
    store.cleanup_expired()

    with _engine_errors():
        engine = cli.engine
        state = store.get_latest(learner.key) if resume else None
        if state is not None:
            rprint(
                f"[cyan]Resuming diagnostic {state.session_id}[/cyan] "
                f"({state.questions_asked} answered)"
            )
        else:
            state = engine.start_diagnostic(learner).state

        while not state.is_complete and state.current_topic_id is not None:
            topic = engine.graph.topic(state.current_topic_id)
            body = f"[bold]{topic.name}[/bold]  [dim]({topic.domain}, difficulty {topic.difficulty})[/dim]"
            if topic.description:
                body += f"\n\n{topic.description}"
            console.print(
                Panel(
                    body,
                    title=f"Question {state.questions_asked + 1} of up to {state.max_questions}",
                    border_style="blue",
                )
            )
            choice = Prompt.ask(
                "Your answer [c]orrect / [i]ncorrect / [?] don't know / [q]uit",
                choices=[*ANSWER_CHOICES, "q"],
                show_choices=False,
            )
            if choice == "q":
                path = store.save(state)
                rprint(f"[yellow]Saved progress to {path}[/yellow]")
                raise typer.Exit()

            step = engine.submit_diagnostic_answer(state, topic.id, ANSWER_CHOICES[choice])
            state = step.state
            store.save(state)

        placement = engine.complete_diagnostic(learner, state.results)
        store.delete(state.session_id)

    _print_placement(placement)


# ========================================
# REVIEW COMMANDS
# ========================================


@app.command("schedule")
def schedule(
    ctx: typer.Context,
    topic_id: str = typer.Argument(..., help="Reviewed topic"),
    mastery: float = typer.Option(..., "--mastery", "-m", help="Mastery after review (0-100)"),
    accuracy: float = typer.Option(..., "--accuracy", "-a", help="Review accuracy (0-100)"),
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Record a review and schedule the next one."""
    learner = _learner(user, session)
    with _engine_errors():
        result = _context(ctx).engine.schedule_review(learner, topic_id, mastery, accuracy)

    rprint(
        f"[green]Next review of {topic_id}[/green] in [bold]{result.interval_days}[/bold] days "
        f"({result.next_review:%Y-%m-%d})"
    )
    for update in result.implicit_updates:
        rprint(
            f"  [dim]+{update.extension_days}d[/dim] {update.topic_name}: "
            f"{update.old_next_review:%Y-%m-%d} -> {update.new_next_review:%Y-%m-%d}"
        )


@app.command("practice")
def practice(
    ctx: typer.Context,
    topic_id: str = typer.Argument(..., help="Practised topic"),
    correct: int = typer.Option(..., "--correct", "-c", help="Questions answered correctly"),
    total: int = typer.Option(..., "--total", "-t", help="Questions attempted"),
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Record a practice round: blend its accuracy into mastery and reschedule."""
    learner = _learner(user, session)
    if total < 1 or not 0 <= correct <= total:
        rprint("[red]Error:[/red] need 0 <= correct <= total and total >= 1")
        raise typer.Exit(code=1)

    answers = [{"topic_id": topic_id, "is_correct": i < correct} for i in range(total)]
    with _engine_errors():
        summary = _context(ctx).engine.record_practice(learner, answers)

    update = summary.mastery_updates[0]
    rprint(
        f"[green]{update.topic_name}[/green]: {update.old_mastery:.0f}% -> "
        f"[bold]{update.new_mastery:.0f}%[/bold] "
        f"{format_progress_bar(update.new_mastery)}"
    )
    rprint(
        f"Next review in [bold]{update.schedule.interval_days}[/bold] days "
        f"({update.schedule.next_review:%Y-%m-%d})"
    )


@app.command("reviews")
def reviews(
    ctx: typer.Context,
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Show topics due for review."""
    learner = _learner(user, session)
    with _engine_errors():
        due = _context(ctx).engine.get_due_reviews(learner)

    if not due:
        rprint("[green]No reviews due - all caught up![/green]")
        return

    table = Table(title=f"Due reviews for {learner}")
    table.add_column("Topic")
    table.add_column("Mastery", justify="right")
    table.add_column("Due", style="dim")
    table.add_column("Overdue", justify="right", style="red")

    for review in due:
        table.add_row(
            review.topic_name,
            f"{review.mastery_level:.0f}%",
            review.next_review.strftime("%Y-%m-%d"),
            f"{-review.days_until_due}d",
        )

    console.print(table)


@app.command("optimal")
def optimal(
    ctx: typer.Context,
    user: str | None = UserOption,
    session: str | None = SessionOption,
) -> None:
    """Show the smallest review set covering the most due topics."""
    learner = _learner(user, session)
    with _engine_errors():
        review_set = _context(ctx).engine.get_optimal_review_set(learner)

    if not review_set.topics:
        rprint("[green]No reviews due - all caught up![/green]")
        return

    table = Table(title=f"Optimal review set ({review_set.total_due} due)")
    table.add_column("Topic")
    table.add_column("Covers", justify="right")
    table.add_column("Also reviews", style="dim")

    for candidate in review_set.topics:
        table.add_row(
            candidate.topic.name,
            str(candidate.compression_score),
            ", ".join(candidate.encompassed_due) or "-",
        )

    console.print(table)
    rprint(f"Compression ratio: [bold]{review_set.compression_ratio:.2f}[/bold]")


# ========================================
# SERVER
# ========================================


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "mastery_engine.api.main:create_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
