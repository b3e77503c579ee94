"""Workout editing helpers.

Each helper returns a new Workout and leaves its input untouched, so the
result can be handed straight to ``AppStore.update_workout``. Exercises and
sets get client-generated UUIDs; their order is their list position.
"""

import copy
import uuid
from typing import List, Optional

from .models import Exercise, Workout, WorkoutSet, parse_iso_date


def new_id() -> str:
    return str(uuid.uuid4())


def new_workout(day: str, name: Optional[str] = None) -> Workout:
    """Create an empty workout for ``day``."""
    parse_iso_date(day)
    return Workout(id=new_id(), date=day, name=name, exercises=[])


def rename_workout(workout: Workout, name: Optional[str]) -> Workout:
    result = copy.deepcopy(workout)
    result.name = name.strip() if name and name.strip() else None
    return result


def add_exercise(workout: Workout, name: str = "") -> Workout:
    result = copy.deepcopy(workout)
    result.exercises.append(Exercise(id=new_id(), name=name, sets=[]))
    return result


def rename_exercise(workout: Workout, exercise_id: str, name: str) -> Workout:
    result = copy.deepcopy(workout)
    _exercise(result, exercise_id).name = name
    return result


def delete_exercise(workout: Workout, exercise_id: str) -> Workout:
    _exercise(workout, exercise_id)
    result = copy.deepcopy(workout)
    result.exercises = [e for e in result.exercises if e.id != exercise_id]
    return result


def move_exercise(workout: Workout, exercise_id: str, new_index: int) -> Workout:
    """Move an exercise to ``new_index`` (clamped to the list bounds)."""
    result = copy.deepcopy(workout)
    result.exercises = _move(result.exercises, _exercise(result, exercise_id), new_index)
    return result


def add_set(workout: Workout, exercise_id: str, note: str = "") -> Workout:
    result = copy.deepcopy(workout)
    _exercise(result, exercise_id).sets.append(WorkoutSet(id=new_id(), note=note))
    return result


def update_set(workout: Workout, exercise_id: str, set_id: str, note: str) -> Workout:
    result = copy.deepcopy(workout)
    _set(_exercise(result, exercise_id), set_id).note = note
    return result


def delete_set(workout: Workout, exercise_id: str, set_id: str) -> Workout:
    result = copy.deepcopy(workout)
    exercise = _exercise(result, exercise_id)
    _set(exercise, set_id)
    exercise.sets = [s for s in exercise.sets if s.id != set_id]
    return result


def move_set(workout: Workout, exercise_id: str, set_id: str, new_index: int) -> Workout:
    """Move a set within its exercise to ``new_index`` (clamped to the list bounds)."""
    result = copy.deepcopy(workout)
    exercise = _exercise(result, exercise_id)
    exercise.sets = _move(exercise.sets, _set(exercise, set_id), new_index)
    return result


def _exercise(workout: Workout, exercise_id: str) -> Exercise:
    exercise = workout.find_exercise(exercise_id)
    if exercise is None:
        raise KeyError(f"Exercise {exercise_id} not in workout {workout.id}")
    return exercise


def _set(exercise: Exercise, set_id: str) -> WorkoutSet:
    for workout_set in exercise.sets:
        if workout_set.id == set_id:
            return workout_set
    raise KeyError(f"Set {set_id} not in exercise {exercise.id}")


def _move(items: List, item, new_index: int) -> List:
    remaining = [i for i in items if i is not item]
    new_index = max(0, min(new_index, len(remaining)))
    return remaining[:new_index] + [item] + remaining[new_index:]
