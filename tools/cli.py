import click
from pathlib import Path

from decision import available_providers
from scenarios import SCENARIO_PRESETS
from main import run_batch, run_optimization, run_single, validate_layout_file  # reuse existing functions

provider_choice = click.Choice(available_providers())


@click.group()
def cli():
    pass


@cli.command()
def list_scenarios():
    for k in sorted(SCENARIO_PRESETS.keys()):
        click.echo(k)


def _check_scenario(scenario):
    if scenario not in SCENARIO_PRESETS:
        raise click.BadParameter(
            f"unknown scenario '{scenario}' (choose from {', '.join(sorted(SCENARIO_PRESETS))})",
            param_hint="SCENARIO",
        )


@cli.command()
@click.argument("scenario")
@click.option("--layout", "layout_path", type=click.Path())
@click.option("--max-time", type=float, help="Simulated seconds.")
@click.option("--target-completed", type=int)
@click.option("--provider", type=provider_choice)
@click.option("--seed", type=int)
@click.option("--plots", is_flag=True)
@click.option("--out-dir", type=click.Path(), default="out_run")
def run(scenario, layout_path, max_time, target_completed, provider, seed, plots, out_dir):
    _check_scenario(scenario)
    try:
        res = run_single(scenario, layout_path=layout_path, max_time=max_time,
                         target_completed=target_completed, out_dir=out_dir,
                         provider_name=provider, seed=seed, plots=plots)
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e))
    click.echo(res)


@cli.command()
@click.argument("scenario")
@click.option("--trials", default=5, type=int)
@click.option("--workers", default=2, type=int)
@click.option("--layout", "layout_path", type=click.Path())
@click.option("--max-time", type=float)
@click.option("--target-completed", type=int)
@click.option("--provider", type=provider_choice)
@click.option("--seed", type=int)
@click.option("--out-dir", type=click.Path(), default="out_batch")
def batch(scenario, trials, workers, layout_path, max_time, target_completed, provider, seed, out_dir):
    _check_scenario(scenario)
    try:
        run_batch(scenario, trials=trials, workers=workers, layout_path=layout_path,
                  max_time=max_time, target_completed=target_completed, out_dir=out_dir,
                  provider_name=provider, seed=seed)
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e))


@cli.command()
@click.option("--layout", "layout_path", type=click.Path())
@click.option("--scenario", default="normal")
@click.option("--generations", type=int)
@click.option("--population", type=int)
@click.option("--workers", type=int)
@click.option("--provider", type=provider_choice)
@click.option("--seed", type=int)
@click.option("--plots", is_flag=True)
@click.option("--out-dir", type=click.Path(), default="out_optimize")
def optimize(layout_path, scenario, generations, population, workers, provider, seed, plots, out_dir):
    _check_scenario(scenario)
    try:
        run_optimization(layout_path=layout_path, generations=generations, population=population,
                         workers=workers, scenario_name=scenario, out_dir=out_dir,
                         provider_name=provider, seed=seed, plots=plots)
    except (FileNotFoundError, ValueError) as e:
        raise click.UsageError(str(e))


@cli.command()
@click.argument("layout_file", type=click.Path())
def validate(layout_file):
    if not Path(layout_file).exists():
        raise click.BadParameter(f"no such file: {layout_file}", param_hint="LAYOUT_FILE")
    try:
        problems = validate_layout_file(layout_file)
    except ValueError as e:
        raise click.UsageError(f"malformed layout: {e}")

    if problems:
        for p in problems:
            click.echo(f"- {p}")
        raise SystemExit(1)
    click.echo(f"{layout_file}: OK")


if __name__ == "__main__":
    cli()
