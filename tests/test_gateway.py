"""Tests for the SQL gateway."""

import pytest

from fitlog.tracker.exceptions import GatewayError
from fitlog.tracker.gateway import GatewayResult, SqlGateway
from fitlog.tracker.schema import get_schema_info, get_table_names

from conftest import USER_ID


class TestGatewayResult:
    """Test the result wrapper."""

    def test_ok_and_first(self):
        """Test ok/first on a successful result."""
        result = GatewayResult(data=[{'id': 'a'}, {'id': 'b'}])
        assert result.ok
        assert result.first == {'id': 'a'}
        assert result.raise_for_error() is result

    def test_raise_for_error(self):
        """Test the carried error is raised."""
        result = GatewayResult(error=GatewayError("boom", operation="select", table="workouts"))
        assert not result.ok
        assert result.first is None
        with pytest.raises(GatewayError):
            result.raise_for_error()


class TestSqlGateway:
    """Test row-level operations against SQLite."""

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, gateway):
        """Test rows without an id get a server-assigned one."""
        result = await gateway.insert('metric_definitions', {'user_id': USER_ID, 'name': 'HR', 'order_index': 0})
        assert result.ok
        assert result.first['id']
        assert result.first['is_active'] is True

    @pytest.mark.asyncio
    async def test_insert_keeps_client_id(self, gateway):
        """Test a provided id is used as-is."""
        result = await gateway.insert('workouts', {'id': 'w1', 'user_id': USER_ID, 'date': '2025-06-01'})
        assert result.first['id'] == 'w1'
        assert result.first['name'] is None

    @pytest.mark.asyncio
    async def test_select_filters_and_order(self, gateway):
        """Test equality, membership and descending order."""
        for index, name in enumerate(['A', 'B', 'C']):
            await gateway.insert('metric_definitions', {'user_id': USER_ID, 'name': name, 'order_index': index})
        await gateway.insert('metric_definitions', {'user_id': 'other', 'name': 'X', 'order_index': 0})

        result = await gateway.select('metric_definitions', {'user_id': USER_ID, 'name': ['A', 'C']},
                                      order_by=['-order_index'])
        assert [row['name'] for row in result.data] == ['C', 'A']

    @pytest.mark.asyncio
    async def test_update_echoes_rows(self, gateway):
        """Test updates return the updated rows and stamp updated_at."""
        inserted = (await gateway.insert('workouts', {'id': 'w1', 'user_id': USER_ID, 'date': '2025-06-01'})).first
        result = await gateway.update('workouts', {'name': 'Legs'}, {'id': 'w1'})
        assert result.first['name'] == 'Legs'
        assert result.first['updated_at'] >= inserted['updated_at']

    @pytest.mark.asyncio
    async def test_upsert_on_conflict_key(self, gateway):
        """Test upsert inserts once and then updates by the conflict key."""
        row = {'user_id': USER_ID, 'date': '2025-06-01', 'steps': 100, 'custom_metrics': {}}
        first = await gateway.upsert('daily_metrics', [row], on_conflict=['user_id', 'date'])
        second = await gateway.upsert('daily_metrics', [{**row, 'steps': 200}], on_conflict=['user_id', 'date'])

        assert first.first['id'] == second.first['id']
        rows = (await gateway.select('daily_metrics', {'user_id': USER_ID})).data
        assert len(rows) == 1
        assert rows[0]['steps'] == 200

    @pytest.mark.asyncio
    async def test_upsert_requires_conflict_columns(self, gateway):
        """Test rows lacking the conflict key are rejected."""
        result = await gateway.upsert('daily_metrics', [{'user_id': USER_ID}], on_conflict=['user_id', 'date'])
        assert isinstance(result.error, GatewayError)

    @pytest.mark.asyncio
    async def test_unique_constraint_violation_is_an_error(self, gateway):
        """Test database errors come back as a result error."""
        row = {'user_id': USER_ID, 'date': '2025-06-01'}
        assert (await gateway.insert('daily_metrics', row)).ok
        result = await gateway.insert('daily_metrics', row)
        assert not result.ok
        assert result.error.details['operation'] == 'insert'

    @pytest.mark.asyncio
    async def test_batch_delete_by_ids(self, gateway):
        """Test deleting a set of ids returns the removed rows."""
        for workout_id in ('w1', 'w2', 'w3'):
            await gateway.insert('workouts', {'id': workout_id, 'user_id': USER_ID, 'date': '2025-06-01'})

        result = await gateway.delete('workouts', {'id': ['w1', 'w3']})

        assert sorted(row['id'] for row in result.data) == ['w1', 'w3']
        remaining = (await gateway.select('workouts', {'user_id': USER_ID})).data
        assert [row['id'] for row in remaining] == ['w2']

    @pytest.mark.asyncio
    async def test_delete_cascades_to_children(self, gateway):
        """Test exercises and sets go with their workout."""
        await gateway.insert('workouts', {'id': 'w1', 'user_id': USER_ID, 'date': '2025-06-01'})
        await gateway.insert('exercises', {'id': 'e1', 'workout_id': 'w1', 'name': 'Bench', 'order_index': 0})
        await gateway.insert('workout_sets', {'id': 's1', 'exercise_id': 'e1', 'note': '5 x 5', 'order_index': 0})

        assert (await gateway.delete('workouts', {'id': 'w1'})).ok

        assert (await gateway.select('exercises', {'id': 'e1'})).data == []
        assert (await gateway.select('workout_sets', {'id': 's1'})).data == []

    @pytest.mark.asyncio
    async def test_refuses_unfiltered_writes(self, gateway):
        """Test update and delete without filters are errors."""
        assert not (await gateway.delete('workouts', {})).ok
        assert not (await gateway.update('workouts', {'name': 'x'}, {})).ok

    @pytest.mark.asyncio
    async def test_unknown_table_and_column(self, gateway):
        """Test unknown names are reported as errors."""
        assert not (await gateway.select('users', {})).ok
        assert not (await gateway.select('nope', {})).ok
        assert not (await gateway.select('workouts', {'colour': 'red'})).ok

    def test_from_config_creates_directories(self, temp_dir, config):
        """Test the database directory is created on demand."""
        nested = config.update(database_path=str(temp_dir / "nested" / "dir" / "fitlog.db"))
        gateway = SqlGateway.from_config(nested)
        try:
            assert (temp_dir / "nested" / "dir").is_dir()
        finally:
            gateway.close()


class TestSchemaInfo:
    """Test schema helpers."""

    def test_table_names(self):
        """Test all tables are registered."""
        names = set(get_table_names())
        assert {'users', 'profiles', 'daily_metrics', 'metric_definitions',
                'workouts', 'exercises', 'workout_sets'} <= names

    def test_schema_info(self):
        """Test schema info describes columns and keys."""
        info = get_schema_info()
        assert info['version'] == "1.0.0"
        assert 'order_index' in info['tables']['workout_sets']['columns']
        assert info['tables']['daily_metrics']['primary_key'] == ['id']
