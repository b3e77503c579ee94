"""Command-line interface for fitlog."""

import asyncio
import sys
from typing import Callable, Optional

import click

from .config import REPORTER_TYPES, TIMEFRAMES, ConfigManager, TrackerConfig
from .editing import add_exercise, add_set, delete_exercise, delete_set, new_workout, rename_workout
from .exceptions import AuthenticationError, TrackerError
from .gateway import SqlGateway
from .identity import LocalIdentityProvider
from .models import Workout, is_weight_metric, parse_iso_date, today_iso
from .progress import TqdmReporter, create_reporter
from .store import AppStore
from .trends import build_trend


# ========================================================================================
# HELPERS
# ========================================================================================

def _config(ctx) -> TrackerConfig:
    return ctx.obj['config']


def _identity(ctx) -> LocalIdentityProvider:
    """Open the gateway and identity provider for auth commands."""
    config = _config(ctx)
    gateway = SqlGateway.from_config(config)
    ctx.call_on_close(gateway.close)
    return LocalIdentityProvider(gateway, config.session_file)


def _run_store(ctx, action: Callable[[AppStore], object]):
    """Load the signed-in user's data, run ``action`` and flush remote writes."""
    config = _config(ctx)

    async def run():
        gateway = SqlGateway.from_config(config)
        reporter = create_reporter(config.progress_reporter, name="fitlog")
        try:
            user = LocalIdentityProvider(gateway, config.session_file).current_user()
            if user is None:
                click.echo("❌ Not signed in. Run 'fitlog auth login EMAIL' first.", err=True)
                sys.exit(1)

            store = AppStore(gateway, config, reporter)
            if not await store.set_identity(user.id):
                click.echo("❌ Failed to load your data", err=True)
                sys.exit(1)

            result = action(store)
            if asyncio.iscoroutine(result):
                result = await result

            if not await store.flush():
                click.echo("⚠️  Some changes could not be saved", err=True)
            return result
        finally:
            if isinstance(reporter, TqdmReporter):
                reporter.close()
            gateway.close()

    return asyncio.run(run())


def _date_arg(value: Optional[str]) -> str:
    if value is None or value == 'today':
        return today_iso()
    try:
        parse_iso_date(value)
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a YYYY-MM-DD date")
    return value


def _match(items, prefix: str, kind: str):
    """Resolve an id or unique id prefix."""
    matches = [item for item in items if item.id == prefix] or \
              [item for item in items if item.id.startswith(prefix)]
    if not matches:
        click.echo(f"❌ {kind} {prefix} not found", err=True)
        sys.exit(1)
    if len(matches) > 1:
        click.echo(f"❌ {kind} id {prefix} is ambiguous", err=True)
        sys.exit(1)
    return matches[0]


def _format_value(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, float) and value.is_integer():
        return f"{int(value):,}"
    return f"{value:,}" if isinstance(value, int) else str(value)


def _echo_workout(workout: Workout, verbose: bool = True):
    title = workout.name or "Workout"
    click.echo(f"🏋️  {title} [{workout.id[:8]}] on {workout.date}")
    if not verbose:
        return
    if not workout.exercises:
        click.echo("  (no exercises)")
    for exercise in workout.exercises:
        click.echo(f"  • {exercise.name or '(unnamed)'} [{exercise.id[:8]}]")
        for index, workout_set in enumerate(exercise.sets, start=1):
            click.echo(f"      {index}. {workout_set.note} [{workout_set.id[:8]}]")


# ========================================================================================
# ROOT GROUP
# ========================================================================================

@click.group()
@click.option('--db-path', default=None, help='Database path (default: ~/.fitlog/fitlog.db)')
@click.option('--session-path', default=None, help='Session file (default: ~/.fitlog/session.json)')
@click.option('--config', 'config_path', default=None, help='JSON configuration file')
@click.option('--progress', type=click.Choice(REPORTER_TYPES), default=None,
              help='How remote writes are reported')
@click.pass_context
def cli(ctx, db_path, session_path, config_path, progress):
    """fitlog - daily body metrics and workout log."""
    config = ConfigManager().get_config(config_path)
    overrides = {}
    if db_path is not None:
        overrides['database_path'] = db_path
    if session_path is not None:
        overrides['session_path'] = session_path
    if progress is not None:
        overrides['progress_reporter'] = progress
    if overrides:
        config = config.update(**overrides)

    ctx.ensure_object(dict)
    ctx.obj['config'] = config


# ========================================================================================
# AUTH
# ========================================================================================

@cli.group()
@click.pass_context
def auth(ctx):
    """Account and session commands."""
    pass


@auth.command()
@click.argument('email')
@click.password_option()
@click.pass_context
def signup(ctx, email, password):
    """Create an account."""
    result = _identity(ctx).sign_up(email, password)
    if not result.ok:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)
    click.echo(f"✅ Account created for {result.user.email}")
    click.echo(f"📧 Confirm it with: fitlog auth confirm {result.token}")


@auth.command()
@click.argument('token')
@click.pass_context
def confirm(ctx, token):
    """Confirm an account and sign in."""
    result = _identity(ctx).confirm(token)
    if not result.ok:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)
    click.echo(f"✅ Confirmed, signed in as {result.user.email}")


@auth.command()
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True)
@click.pass_context
def login(ctx, email, password):
    """Sign in with email and password."""
    try:
        result = _identity(ctx).sign_in_with_password(email, password).raise_for_error(email)
    except AuthenticationError as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)
    click.echo(f"✅ Signed in as {result.user.email}")


@auth.command('magic-link')
@click.argument('email')
@click.pass_context
def magic_link(ctx, email):
    """Request a passwordless sign-in link."""
    result = _identity(ctx).sign_in_with_magic_link(email)
    if not result.ok:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)
    click.echo("📧 Check your email for the login link!")
    click.echo(f"🔗 fitlog auth verify {email} {result.token}")


@auth.command()
@click.argument('email')
@click.argument('token')
@click.pass_context
def verify(ctx, email, token):
    """Complete a magic-link sign-in."""
    result = _identity(ctx).verify_magic_link(email, token)
    if not result.ok:
        click.echo(f"❌ {result.error}", err=True)
        sys.exit(1)
    click.echo(f"✅ Signed in as {result.user.email}")


@auth.command()
@click.pass_context
def logout(ctx):
    """Sign out."""
    _identity(ctx).sign_out()
    click.echo("👋 Signed out")


@auth.command()
@click.pass_context
def whoami(ctx):
    """Show the signed-in account."""
    user = _identity(ctx).current_user()
    if user is None:
        click.echo("Not signed in")
        return
    click.echo(f"👤 {user.email} ({user.id})")


# ========================================================================================
# DAILY METRICS
# ========================================================================================

@cli.command()
@click.argument('day', required=False)
@click.option('--weight', type=float, help='Body weight in your display unit')
@click.option('--steps', type=float, help='Step count')
@click.option('--metric', 'metrics', multiple=True, metavar='NAME=VALUE', help='Custom metric value')
@click.pass_context
def log(ctx, day, weight, steps, metrics):
    """Log metrics for a date (default: today)."""
    day = _date_arg(day)
    custom = {}
    for item in metrics:
        name, sep, raw = item.partition('=')
        if not sep:
            raise click.BadParameter(f"{item!r} is not NAME=VALUE", param_hint='--metric')
        try:
            custom[name.strip()] = float(raw) if raw.strip() else None
        except ValueError:
            raise click.BadParameter(f"{raw!r} is not a number", param_hint='--metric')

    def action(store: AppStore):
        partial = {}
        if weight is not None:
            partial['weight'] = weight
        if steps is not None:
            partial['steps'] = steps
        if custom:
            resolved = {}
            for name, value in custom.items():
                definition = store.state.find_definition_by_name(name)
                if definition is None:
                    click.echo(f"❌ Unknown metric '{name}'. Add it with 'fitlog metric add'.", err=True)
                    sys.exit(1)
                resolved[definition.name] = value
            partial['custom_metrics'] = resolved
        if not partial:
            click.echo("Nothing to log")
            return
        store.update_daily_metrics(day, partial)
        click.echo(f"✅ Logged {len(partial)} field(s) for {day}")

    _run_store(ctx, action)


@cli.command()
@click.argument('day', required=False)
@click.pass_context
def show(ctx, day):
    """Show metrics and workouts for a date (default: today)."""
    day = _date_arg(day)

    def action(store: AppStore):
        state = store.state
        entry = state.entry_for(day)
        unit = state.settings.weight_unit_label
        click.echo(f"📅 {day}")
        click.echo(f"⚖️  Weight: {_format_value(entry.weight if entry else None)} {unit}")
        click.echo(f"👣 Steps: {_format_value(entry.steps if entry else None)}")
        for definition in state.metric_definitions:
            value = entry.custom_metrics.get(definition.name) if entry else None
            click.echo(f"📈 {definition.name}: {_format_value(value)}")
        for workout in state.workouts_on(day):
            _echo_workout(workout)

    _run_store(ctx, action)


# ========================================================================================
# METRIC DEFINITIONS
# ========================================================================================

@cli.group()
@click.pass_context
def metric(ctx):
    """Custom metric commands."""
    pass


@metric.command('add')
@click.argument('name')
@click.pass_context
def metric_add(ctx, name):
    """Add a custom metric."""
    def action(store: AppStore):
        if is_weight_metric(name):
            click.echo("❌ Weight is built in", err=True)
            sys.exit(1)
        if store.add_metric_definition(name) is None:
            click.echo(f"❌ Metric '{name}' already exists or the name is empty", err=True)
            sys.exit(1)
        click.echo(f"✅ Metric '{name.strip()}' added")

    _run_store(ctx, action)


@metric.command('list')
@click.pass_context
def metric_list(ctx):
    """List custom metrics."""
    def action(store: AppStore):
        definitions = store.state.metric_definitions
        if not definitions:
            click.echo("No custom metrics")
            return
        for definition in definitions:
            marker = "" if definition.is_active else " (inactive)"
            click.echo(f"  {definition.order_index}. {definition.name}{marker}")

    _run_store(ctx, action)


@metric.command('remove')
@click.argument('name')
@click.option('--yes', is_flag=True, help='Delete recorded values without asking')
@click.pass_context
def metric_remove(ctx, name, yes):
    """Remove a custom metric and its recorded values."""
    def action(store: AppStore):
        definition = store.state.find_definition_by_name(name)
        if definition is None:
            click.echo(f"❌ Metric '{name}' not found", err=True)
            sys.exit(1)
        if store.has_metric_data(definition.name) and not yes:
            if not click.confirm(f"'{definition.name}' has recorded values. Delete them all?"):
                click.echo("Cancelled")
                return
        store.remove_metric_definition(definition.id)
        click.echo(f"🗑️  Metric '{definition.name}' removed")

    _run_store(ctx, action)


# ========================================================================================
# WORKOUTS
# ========================================================================================

@cli.group()
@click.pass_context
def workout(ctx):
    """Workout commands."""
    pass


@workout.command('new')
@click.argument('day', required=False)
@click.option('--name', help='Workout name')
@click.pass_context
def workout_new(ctx, day, name):
    """Create an empty workout (default: today)."""
    day = _date_arg(day)

    def action(store: AppStore):
        created = new_workout(day, name)
        store.add_workout(created)
        click.echo(f"✅ Workout {created.id[:8]} created on {day}")

    _run_store(ctx, action)


@workout.command('list')
@click.option('--date', 'day', help='Only workouts on this date')
@click.pass_context
def workout_list(ctx, day):
    """List workouts."""
    def action(store: AppStore):
        workouts = store.state.workouts_on(_date_arg(day)) if day else store.state.workouts
        if not workouts:
            click.echo("No workouts")
            return
        for item in sorted(workouts, key=lambda w: w.date, reverse=True):
            _echo_workout(item, verbose=False)

    _run_store(ctx, action)


@workout.command('show')
@click.argument('workout_id')
@click.pass_context
def workout_show(ctx, workout_id):
    """Show a workout with its exercises and sets."""
    _run_store(ctx, lambda store: _echo_workout(_match(store.state.workouts, workout_id, "Workout")))


def _edit_workout(ctx, workout_id: str, edit: Callable[[Workout], Workout], message: str):
    def action(store: AppStore):
        current = _match(store.state.workouts, workout_id, "Workout")
        try:
            edited = edit(current)
        except KeyError as e:
            click.echo(f"❌ {e.args[0]}", err=True)
            sys.exit(1)
        store.update_workout(edited)
        click.echo(f"✅ {message}")

    _run_store(ctx, action)


def _exercise_id(workout: Workout, prefix: str) -> str:
    return _match(workout.exercises, prefix, "Exercise").id


@workout.command('rename')
@click.argument('workout_id')
@click.argument('name')
@click.pass_context
def workout_rename(ctx, workout_id, name):
    """Rename a workout."""
    _edit_workout(ctx, workout_id, lambda w: rename_workout(w, name), f"Workout renamed to '{name}'")


@workout.command('add-exercise')
@click.argument('workout_id')
@click.argument('name')
@click.pass_context
def workout_add_exercise(ctx, workout_id, name):
    """Add an exercise to a workout."""
    _edit_workout(ctx, workout_id, lambda w: add_exercise(w, name), f"Exercise '{name}' added")


@workout.command('delete-exercise')
@click.argument('workout_id')
@click.argument('exercise_id')
@click.pass_context
def workout_delete_exercise(ctx, workout_id, exercise_id):
    """Delete an exercise and its sets."""
    _edit_workout(ctx, workout_id, lambda w: delete_exercise(w, _exercise_id(w, exercise_id)),
                  "Exercise deleted")


@workout.command('add-set')
@click.argument('workout_id')
@click.argument('exercise_id')
@click.argument('note')
@click.pass_context
def workout_add_set(ctx, workout_id, exercise_id, note):
    """Add a set (e.g. "8 x 135") to an exercise."""
    _edit_workout(ctx, workout_id, lambda w: add_set(w, _exercise_id(w, exercise_id), note),
                  f"Set '{note}' added")


@workout.command('delete-set')
@click.argument('workout_id')
@click.argument('exercise_id')
@click.argument('set_id')
@click.pass_context
def workout_delete_set(ctx, workout_id, exercise_id, set_id):
    """Delete a set."""
    def edit(w: Workout) -> Workout:
        exercise = w.find_exercise(_exercise_id(w, exercise_id))
        return delete_set(w, exercise.id, _match(exercise.sets, set_id, "Set").id)

    _edit_workout(ctx, workout_id, edit, "Set deleted")


@workout.command('delete')
@click.argument('workout_id')
@click.pass_context
def workout_delete(ctx, workout_id):
    """Delete a workout with all its exercises and sets."""
    def action(store: AppStore):
        target = _match(store.state.workouts, workout_id, "Workout")
        store.delete_workout(target.id)
        click.echo(f"🗑️  Workout {target.id[:8]} deleted")

    _run_store(ctx, action)


# ========================================================================================
# TRENDS AND SETTINGS
# ========================================================================================

@cli.command()
@click.argument('name', default='Weight')
@click.option('--timeframe', type=click.Choice(TIMEFRAMES), default=None,
              help='Days to include, or "all"')
@click.pass_context
def trends(ctx, name, timeframe):
    """Show trend data for a metric."""
    timeframe = timeframe or _config(ctx).default_timeframe

    def action(store: AppStore):
        metric_name = name
        if not is_weight_metric(name):
            definition = store.state.find_definition_by_name(name)
            if definition is None:
                click.echo(f"❌ Metric '{name}' not found", err=True)
                sys.exit(1)
            metric_name = definition.name

        trend = build_trend(store.state, metric_name, timeframe)
        label = "all time" if timeframe == 'all' else f"last {timeframe} days"
        click.echo(f"📈 {trend['title']} - {label}")
        if not trend['has_data']:
            click.echo("No data for this timeframe")
            return
        for point in trend['points']:
            if point['value'] is not None:
                click.echo(f"  {point['date']}: {_format_value(point['value'])}")
        summary = trend['summary']
        click.echo(f"📊 min {_format_value(summary['min'])}, max {_format_value(summary['max'])}, "
                   f"avg {summary['mean']:.1f}, change {summary['change']:+.1f}")

    _run_store(ctx, action)


@cli.group()
@click.pass_context
def settings(ctx):
    """Display settings."""
    pass


@settings.command()
@click.argument('label', type=click.Choice(['kg', 'lb']))
@click.pass_context
def unit(ctx, label):
    """Set the weight display unit (no conversion of stored values)."""
    def action(store: AppStore):
        store.update_settings({'weight_unit_label': label})
        click.echo(f"✅ Weight unit set to {label}")

    _run_store(ctx, action)


def main():
    """Entry point for fitlog command."""
    try:
        cli()
    except TrackerError as e:
        click.echo(f"❌ {e.message}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
