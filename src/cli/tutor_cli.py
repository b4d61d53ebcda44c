"""
Tutor CLI - train and drive the adaptive SQL tutor from the terminal.

Usage:
    tutor generate            # Write a synthetic historical dataset
    tutor pretrain            # Offline-train the estimator and save it
    tutor simulate            # Run simulated learners through the online loop
    tutor play                # Interactive SQL practice session
    tutor serve               # Start the HTTP API
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

# Local imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))
from config import get_settings
from src.agent.orchestrator import TrainingOrchestrator
from src.core.exceptions import ConfigurationError, TutorError
from src.data.transition_loader import load_transitions_from_csv, save_transitions_to_csv
from src.environment.mastery_env import RewardPolicy
from src.practice.catalog import ConceptCatalog
from src.practice.query_runner import PracticeDatabase
from src.practice.result_compare import compare_rows
from src.simulation.simulated_learner import (
    SimulatedLearner,
    generate_transitions,
    run_simulated_session,
)

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="tutor",
    help="Adaptive SQL tutor - reinforcement-learning concept selection",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _mastery_bar(mastery: list[float]) -> str:
    return " ".join(f"{m:.2f}" for m in mastery)


def _build_orchestrator(pretrain: bool) -> TrainingOrchestrator:
    settings = get_settings()
    orchestrator = TrainingOrchestrator.from_settings(settings)
    orchestrator.pretrain_on_setup = False

    model_path = Path(settings.model_path)
    loaded = False
    if model_path.exists():
        try:
            orchestrator.load_estimator(settings.num_concepts, model_path)
            console.print(f"[dim]Loaded model from {model_path}[/]")
            loaded = True
        except ConfigurationError as e:
            logger.warning(f"Ignoring saved model {model_path}: {e}")
            console.print(f"[yellow]Ignoring saved model {model_path}: {e}[/]")

    if not loaded and pretrain and Path(settings.dataset_path).exists():
        transitions = load_transitions_from_csv(
            settings.dataset_path, settings.num_concepts, settings.done_threshold
        )
        orchestrator.pretrain(settings.num_concepts, transitions)
    return orchestrator


# =============================================================================
# Training Commands
# =============================================================================


@app.command()
def generate(
    episodes: Annotated[
        int, typer.Option("--episodes", "-e", help="Simulated learner episodes")
    ] = 50,
    steps: Annotated[
        int, typer.Option("--steps", "-s", help="Maximum steps per episode")
    ] = 40,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="CSV path (defaults to DATASET_PATH)")
    ] = None,
    seed: Annotated[int | None, typer.Option("--seed", help="Random seed")] = None,
) -> None:
    """Generate a historical transition dataset from simulated learners."""
    settings = get_settings()
    transitions = generate_transitions(
        settings.num_concepts,
        episodes=episodes,
        steps_per_episode=steps,
        policy=RewardPolicy(**settings.get_reward_config()),
        seed=seed,
    )
    path = save_transitions_to_csv(transitions, output or settings.dataset_path)
    console.print(f"[green]✓ Wrote {len(transitions)} transitions to {path}[/]")


@app.command()
def pretrain(
    dataset: Annotated[
        Path | None, typer.Option("--dataset", "-d", help="CSV dataset (defaults to DATASET_PATH)")
    ] = None,
    epochs: Annotated[
        int | None, typer.Option("--epochs", "-n", help="Training epochs (defaults to OFFLINE_EPOCHS)")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Model path (defaults to MODEL_PATH)")
    ] = None,
) -> None:
    """Offline-train the policy estimator on a historical dataset and save it."""
    settings = get_settings()
    dataset = dataset or Path(settings.dataset_path)
    if not dataset.exists():
        console.print(f"[red]Dataset not found: {dataset}. Run 'tutor generate' first.[/]")
        raise typer.Exit(1)

    transitions = load_transitions_from_csv(dataset, settings.num_concepts, settings.done_threshold)
    if not transitions:
        console.print("[yellow]Dataset contains no usable transitions[/]")
        raise typer.Exit(1)

    orchestrator = TrainingOrchestrator.from_settings(settings)
    losses = orchestrator.pretrain(settings.num_concepts, transitions, epochs)
    path = orchestrator.save_estimator(settings.num_concepts, output or settings.model_path)

    table = Table(title="Offline Training")
    table.add_column("Epoch", style="cyan")
    table.add_column("Loss", style="green")
    for i, loss in enumerate(losses, start=1):
        table.add_row(str(i), f"{loss:.4f}")
    console.print(table)
    console.print(f"[green]✓ Saved model to {path}[/]")


# =============================================================================
# Session Commands
# =============================================================================


@app.command()
def simulate(
    learners: Annotated[
        int, typer.Option("--learners", "-l", help="Number of simulated learners")
    ] = 3,
    max_steps: Annotated[
        int, typer.Option("--max-steps", "-m", help="Maximum attempts per learner")
    ] = 60,
    seed: Annotated[int | None, typer.Option("--seed", help="Random seed")] = None,
    no_pretrain: Annotated[
        bool, typer.Option("--no-pretrain", help="Skip offline pretraining")
    ] = False,
) -> None:
    """Run simulated learners through the online training loop."""
    settings = get_settings()
    orchestrator = _build_orchestrator(pretrain=not no_pretrain)

    table = Table(title="Simulated Sessions")
    table.add_column("Learner", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Total reward", justify="right", style="green")
    table.add_column("Done", justify="center")
    table.add_column("Final mastery", style="dim")

    for i in range(learners):
        learner_seed = None if seed is None else seed + i
        learner = SimulatedLearner(settings.num_concepts, seed=learner_seed)
        results = run_simulated_session(orchestrator, learner, max_steps=max_steps)
        if not results:
            continue
        accuracy = sum(r.correct for r in results) / len(results)
        table.add_row(
            str(i + 1),
            str(len(results)),
            f"{accuracy:.0%}",
            f"{sum(r.reward for r in results):+.2f}",
            "✓" if results[-1].done else "✗",
            _mastery_bar(results[-1].mastery),
        )

    console.print(table)


@app.command()
def play(
    no_pretrain: Annotated[
        bool, typer.Option("--no-pretrain", help="Skip offline pretraining")
    ] = False,
) -> None:
    """
    Interactive practice session.

    The agent picks a concept, you type a SQL query, and the result is
    graded against the practice database. Type 'quit' to stop.
    """
    settings = get_settings()
    catalog = ConceptCatalog()
    try:
        catalog.check_size(settings.num_concepts)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    database = PracticeDatabase(settings.practice_database_url)
    orchestrator = _build_orchestrator(pretrain=not no_pretrain)
    session = orchestrator.init_session(settings.num_concepts)

    console.print(
        Panel(
            "[bold cyan]SQL PRACTICE SESSION[/]\n"
            "Tables: departments(id, name, location), "
            "employees(id, name, department_id, salary, hire_year, manager_id), "
            "projects(id, name, department_id, budget)",
            border_style="cyan",
        )
    )

    try:
        while True:
            action = session.current_action
            item = catalog.item(action)
            console.print(f"\n[bold yellow]{item.concept}[/]: {item.prompt}")
            query = Prompt.ask("[cyan]SQL[/]")
            if query.strip().lower() in ("quit", "exit", "q"):
                break

            result = database.run_query(query)
            if not result.ok:
                console.print(f"[red]Query error:[/] {result.error}")
            correct = result.ok and compare_rows(result.rows, catalog.expected_rows(action, database))

            try:
                attempt = orchestrator.process_attempt(session.session_id, action, correct)
            except TutorError as e:
                console.print(f"[red]{e}[/]")
                continue

            verdict = "[green]✓ Correct[/]" if attempt.correct else "[red]✗ Not quite[/]"
            console.print(f"{verdict}  reward={attempt.reward:+.2f}  mastery={_mastery_bar(attempt.mastery)}")
            if attempt.done:
                console.print("[bold green]All concepts mastered! 🎉[/]")
                break
    finally:
        orchestrator.end_session(session.session_id)
        database.dispose()


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind host")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Start the HTTP API (uvicorn)."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


@app.callback()
def main(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Verbose (debug) logging")
    ] = False,
) -> None:
    """
    Adaptive SQL tutor.

    \b
    Quick Start:
      tutor generate            # Synthetic dataset
      tutor pretrain            # Warm-start the estimator
      tutor simulate            # Watch the agent teach simulated learners
      tutor play                # Practise SQL yourself
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else get_settings().log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
