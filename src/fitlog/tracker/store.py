"""Application state store with optimistic updates mirrored to the remote gateway.

Every mutation computes the new snapshot synchronously and publishes it to
subscribers before any remote call is made. The remote write runs as an
asyncio task, which the mutation returns so callers may await it; callers
that do not care can ignore it and use ``flush()`` before shutting down.

Failures of remote writes are logged and reported to the progress reporter.
Only metric definition creation is rolled back; every other divergence lasts
until the next ``reload()``.
"""

import asyncio
import copy
import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from .config import TrackerConfig
from .exceptions import GatewayError, NotSignedInError
from .gateway import GatewayResult, RemoteGateway, Row
from .models import (
    AppState, DailyMetricsEntry, Exercise, MetricDefinition, Settings, WeightUnit, Workout,
    WorkoutSet, is_weight_metric, parse_iso_date
)
from .progress import ProgressReporter, create_reporter
from .reconcile import reconcile_children

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"

DAILY_METRIC_FIELDS = ('weight', 'steps', 'custom_metrics')
SETTINGS_FIELDS = ('weight_unit_label',)

Listener = Callable[[AppState], None]


class PromotionState(Enum):
    """Lifecycle of an entity created with a temporary identifier."""
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


@dataclass
class PendingCreation:
    """Tracks one temporary id until the server assigns the permanent one."""
    temp_id: str
    state: PromotionState = PromotionState.PENDING
    server_id: Optional[str] = None
    task: Optional["asyncio.Task"] = None

    @property
    def resolved_id(self) -> Optional[str]:
        """Server id once committed, None while pending or after failure."""
        return self.server_id if self.state is PromotionState.COMMITTED else None


def is_temporary_id(identifier: str) -> bool:
    return identifier.startswith(TEMP_ID_PREFIX)


def _exercise_row(workout_id: str) -> Callable[[Exercise, int], Row]:
    def to_row(exercise: Exercise, index: int) -> Row:
        return {'id': exercise.id, 'workout_id': workout_id, 'name': exercise.name, 'order_index': index}
    return to_row


def _set_row(exercise_id: str) -> Callable[[WorkoutSet, int], Row]:
    def to_row(workout_set: WorkoutSet, index: int) -> Row:
        return {'id': workout_set.id, 'exercise_id': exercise_id, 'note': workout_set.note, 'order_index': index}
    return to_row


class AppStore:
    """Single in-memory source of truth for the signed-in user's data."""

    def __init__(self,
                 gateway: RemoteGateway,
                 config: Optional[TrackerConfig] = None,
                 reporter: Optional[ProgressReporter] = None):
        """Initialize the store.

        Args:
            gateway: Remote data gateway used for loads and writes
            config: Tracker configuration (default: TrackerConfig())
            reporter: Progress reporter for remote writes (default: from config)
        """
        self.gateway = gateway
        self.config = config if config is not None else TrackerConfig()
        self.progress = reporter or create_reporter(self.config.progress_reporter, name="fitlog")

        self._state = AppState()
        self._user_id: Optional[str] = None
        self._loading = False
        self._listeners: List[Listener] = []
        self._tasks: Set[asyncio.Task] = set()
        self._creations: Dict[str, PendingCreation] = {}
        # Bumped on every identity change or reload; older loads are discarded.
        self._generation = 0
        # Bumped on identity changes only; late writes of a previous session are dropped.
        self._epoch = 0

    # ========================================================================================
    # SNAPSHOT AND SUBSCRIPTIONS
    # ========================================================================================

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def pending_writes(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(state)`` after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def creation_status(self, temp_id: str) -> Optional[PendingCreation]:
        """Promotion record for a temporary id issued in this session."""
        return self._creations.get(temp_id)

    def _publish(self, state: AppState):
        self._state = state
        self._notify()

    def _notify(self):
        for listener in list(self._listeners):
            listener(self._state)

    # ========================================================================================
    # IDENTITY AND LOADING
    # ========================================================================================

    def set_identity(self, user_id: Optional[str]) -> Optional[asyncio.Task]:
        """Switch to a user identity.

        ``None`` resets to the default state synchronously without any remote
        call. Otherwise the state is reset and a bulk load is started; the
        returned task resolves to True when the load succeeded.
        """
        self._generation += 1
        self._epoch += 1
        self._creations.clear()

        if user_id is None:
            logger.info("Signed out, resetting state")
            self._user_id = None
            self._loading = False
            self._publish(AppState())
            return None

        changed = user_id != self._user_id
        self._user_id = user_id
        self._loading = True
        if changed:
            self._state = AppState()
        self._notify()
        return self._spawn(self._load(self._generation, user_id))

    def bind_identity(self, provider) -> Callable[[], None]:
        """Follow an identity provider's auth state; returns an unbind function."""
        def on_change(user):
            self.set_identity(user.id if user is not None else None)

        unbind = provider.on_auth_state_change(on_change)
        current = provider.current_user()
        if (current.id if current else None) != self._user_id:
            on_change(current)
        return unbind

    def reload(self) -> Optional[asyncio.Task]:
        """Refetch everything for the current user, keeping the snapshot until it lands."""
        if self._user_id is None:
            return None
        self._generation += 1
        self._loading = True
        self._notify()
        return self._spawn(self._load(self._generation, self._user_id))

    async def _load(self, generation: int, user_id: str) -> bool:
        self.progress.load_start(user_id)
        try:
            state = await self._fetch_state(user_id)
        except Exception as e:
            logger.error(f"Failed to load data for {user_id}: {e}")
            self.progress.load_end(success=False)
            if generation == self._generation:
                self._loading = False
                self._notify()
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale load for {user_id}")
            self.progress.load_end(success=False)
            return False

        pending = [
            d for d in self._state.metric_definitions
            if d.id in self._creations and self._creations[d.id].state == PromotionState.PENDING
        ]
        if pending:
            state = replace(state, metric_definitions=[*state.metric_definitions, *pending])

        self._loading = False
        self._publish(state)
        self.progress.load_end(
            success=True,
            daily_metrics=len(state.daily_metrics),
            metric_definitions=len(state.metric_definitions),
            workouts=len(state.workouts),
        )
        return True

    async def _fetch_state(self, user_id: str) -> AppState:
        gw = self.gateway
        profile = (await gw.select('profiles', {'id': user_id})).raise_for_error().first
        daily_rows = (await gw.select('daily_metrics', {'user_id': user_id},
                                      order_by=['date'])).raise_for_error().data
        definition_rows = (await gw.select('metric_definitions', {'user_id': user_id},
                                           order_by=['order_index', 'created_at'])).raise_for_error().data
        workout_rows = (await gw.select('workouts', {'user_id': user_id},
                                        order_by=['date', 'created_at'])).raise_for_error().data

        workout_ids = [row['id'] for row in workout_rows]
        exercise_rows = []
        if workout_ids:
            exercise_rows = (await gw.select('exercises', {'workout_id': workout_ids},
                                             order_by=['order_index'])).raise_for_error().data
        exercise_ids = [row['id'] for row in exercise_rows]
        set_rows = []
        if exercise_ids:
            set_rows = (await gw.select('workout_sets', {'exercise_id': exercise_ids},
                                        order_by=['order_index'])).raise_for_error().data

        sets_by_exercise: Dict[str, List[WorkoutSet]] = {}
        for row in set_rows:
            sets_by_exercise.setdefault(row['exercise_id'], []).append(
                WorkoutSet(id=row['id'], note=row.get('note') or ""))

        exercises_by_workout: Dict[str, List[Exercise]] = {}
        for row in exercise_rows:
            exercises_by_workout.setdefault(row['workout_id'], []).append(
                Exercise(id=row['id'], name=row.get('name') or "", sets=sets_by_exercise.get(row['id'], [])))

        unit = (profile or {}).get('weight_unit') or WeightUnit.LB.value
        return AppState(
            daily_metrics={row['date']: DailyMetricsEntry.from_row(row) for row in daily_rows},
            metric_definitions=[MetricDefinition.from_row(row) for row in definition_rows],
            workouts=[
                Workout(id=row['id'], date=row['date'], name=row.get('name'),
                        exercises=exercises_by_workout.get(row['id'], []))
                for row in workout_rows
            ],
            settings=Settings(weight_unit_label=unit),
        )

    # ========================================================================================
    # MUTATIONS
    # ========================================================================================

    def update_daily_metrics(self, day: str, partial: Dict[str, Any]) -> asyncio.Task:
        """Merge ``partial`` into the entry for ``day``; custom metrics merge key by key."""
        user_id = self._require_user("update_daily_metrics")
        parse_iso_date(day)
        unknown = set(partial) - set(DAILY_METRIC_FIELDS)
        if unknown:
            raise ValueError(f"Unknown daily metric fields: {sorted(unknown)}")

        current = self._state.entry_for(day) or DailyMetricsEntry(date=day)
        custom_metrics = dict(current.custom_metrics)
        custom_metrics.update(partial.get('custom_metrics') or {})
        entry = DailyMetricsEntry(
            date=day,
            weight=partial['weight'] if 'weight' in partial else current.weight,
            steps=partial['steps'] if 'steps' in partial else current.steps,
            custom_metrics=custom_metrics,
        )
        self._publish(replace(self._state, daily_metrics={**self._state.daily_metrics, day: entry}))

        row = {
            'user_id': user_id,
            'date': day,
            'weight': entry.weight,
            'steps': entry.steps,
            'custom_metrics': dict(entry.custom_metrics),
        }
        return self._spawn(self._remote(
            f"daily metrics {day}",
            lambda: self.gateway.upsert('daily_metrics', [row], on_conflict=['user_id', 'date'])
        ))

    def add_workout(self, workout: Workout) -> asyncio.Task:
        """Append a workout locally and insert its row remotely."""
        user_id = self._require_user("add_workout")
        parse_iso_date(workout.date)
        if self._state.find_workout(workout.id) is not None:
            raise ValueError(f"Workout {workout.id} already exists")

        workout = copy.deepcopy(workout)
        self._publish(replace(self._state, workouts=[*self._state.workouts, workout]))

        async def write():
            row = {'id': workout.id, 'user_id': user_id, 'date': workout.date, 'name': workout.name}
            (await self.gateway.insert('workouts', row)).raise_for_error()
            if workout.exercises:
                await self._write_children(workout)

        return self._spawn(self._remote(f"add workout {workout.date}", write))

    def update_workout(self, workout: Workout) -> Optional[asyncio.Task]:
        """Replace a workout by id and reconcile its exercises and sets remotely."""
        user_id = self._require_user("update_workout")
        if self._state.find_workout(workout.id) is None:
            logger.warning(f"Ignoring update for unknown workout {workout.id}")
            return None

        workout = copy.deepcopy(workout)
        self._publish(replace(self._state, workouts=[
            workout if w.id == workout.id else w for w in self._state.workouts
        ]))

        async def write():
            (await self.gateway.update('workouts', {'name': workout.name},
                                       {'id': workout.id, 'user_id': user_id})).raise_for_error()
            await self._write_children(workout)

        return self._spawn(self._remote(f"update workout {workout.id}", write))

    async def _write_children(self, workout: Workout):
        await reconcile_children(self.gateway, 'exercises', 'workout_id', workout.id,
                                 workout.exercises, _exercise_row(workout.id))
        for exercise in workout.exercises:
            await reconcile_children(self.gateway, 'workout_sets', 'exercise_id', exercise.id,
                                     exercise.sets, _set_row(exercise.id))

    def delete_workout(self, workout_id: str) -> Optional[asyncio.Task]:
        """Remove a workout; exercises and sets go with it through the remote cascade."""
        user_id = self._require_user("delete_workout")
        if self._state.find_workout(workout_id) is None:
            logger.debug(f"Workout {workout_id} not found, nothing to delete")
            return None

        self._publish(replace(self._state, workouts=[
            w for w in self._state.workouts if w.id != workout_id
        ]))
        return self._spawn(self._remote(
            f"delete workout {workout_id}",
            lambda: self.gateway.delete('workouts', {'id': workout_id, 'user_id': user_id})
        ))

    def update_settings(self, partial: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Merge settings; a weight unit change is written to the profile record."""
        user_id = self._require_user("update_settings")
        unknown = set(partial) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")

        label = partial.get('weight_unit_label')
        if 'weight_unit_label' in partial:
            valid = [unit.value for unit in WeightUnit]
            if label not in valid:
                raise ValueError(f"weight_unit_label must be one of {valid}, got {label!r}")

        self._publish(replace(self._state, settings=replace(self._state.settings, **partial)))

        if 'weight_unit_label' not in partial:
            return None
        return self._spawn(self._remote(
            f"weight unit {label}",
            lambda: self.gateway.upsert('profiles', [{'id': user_id, 'weight_unit': label}], on_conflict=['id'])
        ))

    def add_metric_definition(self, name: str) -> Optional[asyncio.Task]:
        """Append a custom metric under a temporary id, promoted once the insert lands.

        Empty names and case-insensitive duplicates are ignored without any
        remote call. The returned task resolves to True when the definition
        was committed.
        """
        user_id = self._require_user("add_metric_definition")
        name = name.strip()
        if not name:
            logger.debug("Ignoring metric definition with empty name")
            return None
        if self._state.find_definition_by_name(name) is not None:
            logger.debug(f"Metric definition '{name}' already exists")
            return None

        definitions = self._state.metric_definitions
        definition = MetricDefinition(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4()}",
            name=name,
            order_index=len(definitions),
            is_active=True,
        )
        self._publish(replace(self._state, metric_definitions=[*definitions, definition]))

        creation = PendingCreation(temp_id=definition.id)
        self._creations[definition.id] = creation
        creation.task = self._spawn(self._create_definition(self._epoch, user_id, definition, creation))
        return creation.task

    async def _create_definition(self, epoch: int, user_id: str,
                                 definition: MetricDefinition, creation: PendingCreation) -> bool:
        async def insert():
            row = {
                'user_id': user_id,
                'name': definition.name,
                'order_index': definition.order_index,
                'is_active': definition.is_active,
            }
            result = (await self.gateway.insert('metric_definitions', row)).raise_for_error()
            if result.first is None:
                raise GatewayError("Insert returned no row", operation="insert", table='metric_definitions')
            creation.server_id = result.first['id']

        ok = await self._remote(f"add metric {definition.name}", insert)
        creation.state = PromotionState.COMMITTED if ok else PromotionState.FAILED

        if epoch != self._epoch:
            return ok

        if ok:
            logger.debug(f"Promoted metric definition {creation.temp_id} to {creation.server_id}")
            definitions = self._state.metric_definitions
            if self._state.find_definition(creation.server_id) is not None:
                # a reload already fetched the committed row
                definitions = [d for d in definitions if d.id != creation.temp_id]
            else:
                definitions = [
                    replace(d, id=creation.server_id) if d.id == creation.temp_id else d
                    for d in definitions
                ]
            self._publish(replace(self._state, metric_definitions=definitions))
        else:
            logger.warning(f"Rolling back metric definition '{definition.name}'")
            self._publish(replace(self._state, metric_definitions=[
                d for d in self._state.metric_definitions if d.id != creation.temp_id
            ]))
        return ok

    def remove_metric_definition(self, definition_id: str) -> Optional[asyncio.Task]:
        """Delete a custom metric and strip its values from every daily entry."""
        user_id = self._require_user("remove_metric_definition")
        definition = self._state.find_definition(definition_id)
        if definition is None:
            logger.debug(f"Metric definition {definition_id} not found")
            return None

        name = definition.name
        daily_metrics = dict(self._state.daily_metrics)
        stripped: Dict[str, Dict[str, Optional[float]]] = {}
        for day, entry in self._state.daily_metrics.items():
            if name in entry.custom_metrics:
                custom_metrics = {k: v for k, v in entry.custom_metrics.items() if k != name}
                daily_metrics[day] = replace(entry, custom_metrics=custom_metrics)
                stripped[day] = custom_metrics

        self._publish(replace(
            self._state,
            metric_definitions=[d for d in self._state.metric_definitions if d.id != definition_id],
            daily_metrics=daily_metrics,
        ))
        creation = self._creations.get(definition_id)
        return self._spawn(self._remove_definition(user_id, definition, creation, stripped))

    async def _remove_definition(self, user_id: str, definition: MetricDefinition,
                                 creation: Optional[PendingCreation],
                                 stripped: Dict[str, Dict[str, Optional[float]]]) -> bool:
        server_id = definition.id
        if creation is not None:
            if creation.state is PromotionState.PENDING and creation.task is not None:
                await creation.task
            server_id = creation.resolved_id

        ok = True
        if server_id is not None:
            ok = await self._remote(
                f"delete metric {definition.name}",
                lambda: self.gateway.delete('metric_definitions', {'id': server_id, 'user_id': user_id})
            )

        for day, custom_metrics in stripped.items():
            written = await self._remote(
                f"strip {definition.name} from {day}",
                lambda day=day, custom_metrics=custom_metrics: self.gateway.update(
                    'daily_metrics', {'custom_metrics': custom_metrics}, {'user_id': user_id, 'date': day})
            )
            ok = ok and written
        return ok

    # ========================================================================================
    # QUERIES
    # ========================================================================================

    def has_metric_data(self, name: str) -> bool:
        """Check whether any date holds a value for the named metric."""
        entries = self._state.daily_metrics.values()
        if is_weight_metric(name):
            return any(entry.weight is not None for entry in entries)
        return any(entry.custom_metrics.get(name) is not None for entry in entries)

    # ========================================================================================
    # REMOTE WRITES
    # ========================================================================================

    async def flush(self) -> bool:
        """Wait for every in-flight remote write and load; True when all succeeded."""
        ok = True
        while self._tasks:
            results = await asyncio.gather(*list(self._tasks))
            ok = ok and all(results)
        return ok

    def _spawn(self, coro: Awaitable[bool]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _remote(self, description: str, operation: Callable[[], Awaitable[Any]]) -> bool:
        """Run one remote write with optional retries; failures are logged, not raised."""
        self.progress.write_start(description)
        attempts = self.config.max_retries + 1

        for attempt in range(attempts):
            try:
                result = await operation()
                if isinstance(result, GatewayResult):
                    result.raise_for_error()
                self.progress.write_complete(description)
                return True
            except Exception as e:
                if attempt == attempts - 1:
                    logger.error(f"Remote write failed ({description}): {e}")
                    self.progress.write_failed(description, str(e))
                    return False
                wait_time = self.config.retry_delay * self.config.retry_exponential_base ** attempt
                self.progress.write_retry(description, attempt + 1, wait_time)
                await asyncio.sleep(wait_time)

        return False

    def _require_user(self, operation: str) -> str:
        if self._user_id is None:
            raise NotSignedInError(operation=operation)
        return self._user_id
