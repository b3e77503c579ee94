"""Tests for workout editing helpers."""

import pytest

from fitlog.tracker import editing


@pytest.fixture
def workout():
    """Workout with one exercise holding three sets."""
    w = editing.add_exercise(editing.new_workout("2025-06-01", "Push"), "Bench Press")
    exercise_id = w.exercises[0].id
    for note in ("8 x 135", "6 x 155", "4 x 175"):
        w = editing.add_set(w, exercise_id, note)
    return w


class TestWorkoutEditing:
    """Test pure editing helpers."""

    def test_new_workout_is_empty(self):
        """Test a new workout has an id and no exercises."""
        w = editing.new_workout("2025-06-01")
        assert w.id
        assert w.name is None
        assert w.exercises == []

    def test_new_workout_rejects_bad_date(self):
        """Test dates must be ISO."""
        with pytest.raises(ValueError):
            editing.new_workout("June 1")

    def test_inputs_are_not_mutated(self, workout):
        """Test helpers return new values."""
        exercise_id = workout.exercises[0].id
        edited = editing.add_set(workout, exercise_id, "2 x 195")
        assert len(workout.exercises[0].sets) == 3
        assert len(edited.exercises[0].sets) == 4

    def test_rename_workout_blank_clears(self, workout):
        """Test a blank name clears the workout name."""
        assert editing.rename_workout(workout, "  ").name is None
        assert editing.rename_workout(workout, " Legs ").name == "Legs"

    def test_rename_and_delete_exercise(self, workout):
        """Test exercise rename and deletion."""
        exercise_id = workout.exercises[0].id
        renamed = editing.rename_exercise(workout, exercise_id, "Incline Bench")
        assert renamed.exercises[0].name == "Incline Bench"
        assert editing.delete_exercise(renamed, exercise_id).exercises == []

    def test_update_and_delete_set(self, workout):
        """Test set note update and deletion keep the other sets in order."""
        exercise = workout.exercises[0]
        first, second, third = exercise.sets
        edited = editing.update_set(workout, exercise.id, second.id, "6 x 160")
        edited = editing.delete_set(edited, exercise.id, first.id)
        assert [s.note for s in edited.exercises[0].sets] == ["6 x 160", "4 x 175"]

    def test_move_set_clamps(self, workout):
        """Test moving a set beyond the end puts it last."""
        exercise = workout.exercises[0]
        first = exercise.sets[0]
        moved = editing.move_set(workout, exercise.id, first.id, 99)
        assert [s.note for s in moved.exercises[0].sets] == ["6 x 155", "4 x 175", "8 x 135"]
        assert moved.exercises[0].sets[-1].id == first.id

    def test_move_exercise(self, workout):
        """Test exercise reordering."""
        w = editing.add_exercise(workout, "Dips")
        dips = w.exercises[1]
        moved = editing.move_exercise(w, dips.id, 0)
        assert [e.name for e in moved.exercises] == ["Dips", "Bench Press"]

    def test_unknown_ids_raise(self, workout):
        """Test unknown exercise or set ids raise KeyError."""
        with pytest.raises(KeyError):
            editing.add_set(workout, "missing", "1 x 1")
        with pytest.raises(KeyError):
            editing.delete_set(workout, workout.exercises[0].id, "missing")
