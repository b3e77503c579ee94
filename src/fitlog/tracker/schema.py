"""
Tracker Database Schema Definition

This module contains the relational schema served by the SQL gateway:
profiles, daily metrics, metric definitions, workouts, exercises and sets,
plus the users table used by the local identity provider.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class SchemaVersion(Enum):
    """Database schema versions for migration support."""
    V1_0_0 = "1.0.0"
    CURRENT = V1_0_0


def new_id() -> str:
    """Server-side identifier generator."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ========================================================================================
# TABLE DEFINITIONS
# ========================================================================================

class UserRecord(Base):
    __tablename__ = 'users'
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    password_salt = Column(String(64), nullable=False)
    confirmed = Column(Boolean, nullable=False, default=False)
    confirmation_token = Column(String(64), nullable=True)
    magic_link_token = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    weight_unit = Column(String(8), nullable=False, default='lb')
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class DailyMetrics(Base):
    __tablename__ = 'daily_metrics'
    __table_args__ = (UniqueConstraint('user_id', 'date', name='uq_daily_metrics_user_date'),)
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    weight = Column(Float, nullable=True)
    steps = Column(Float, nullable=True)
    custom_metrics = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class MetricDefinitionRecord(Base):
    __tablename__ = 'metric_definitions'
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    order_index = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class WorkoutRecord(Base):
    __tablename__ = 'workouts'
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    name = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow)


class ExerciseRecord(Base):
    __tablename__ = 'exercises'
    id = Column(String(36), primary_key=True, default=new_id)
    workout_id = Column(String(36), ForeignKey('workouts.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False, default='')
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class WorkoutSetRecord(Base):
    __tablename__ = 'workout_sets'
    id = Column(String(36), primary_key=True, default=new_id)
    exercise_id = Column(String(36), ForeignKey('exercises.id', ondelete='CASCADE'), nullable=False, index=True)
    note = Column(Text, nullable=False, default='')
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)


# Tables reachable through the data gateway; users belongs to the identity provider.
GATEWAY_TABLES = (
    'profiles', 'daily_metrics', 'metric_definitions', 'workouts', 'exercises', 'workout_sets',
)

TABLE_DESCRIPTIONS = {
    'users': "Local identity provider accounts",
    'profiles': "Per-user profile and display settings",
    'daily_metrics': "One row per user and date with weight, steps and custom metrics",
    'metric_definitions': "User-configured custom metrics in display order",
    'workouts': "Workout sessions by date",
    'exercises': "Exercises of a workout, ordered by order_index",
    'workout_sets': "Sets of an exercise, ordered by order_index",
}


# ========================================================================================
# SCHEMA UTILITIES
# ========================================================================================

def get_table_names() -> List[str]:
    """Get list of all table names in the schema."""
    return list(Base.metadata.tables.keys())


def get_schema_info() -> Dict[str, Any]:
    """Get comprehensive schema information."""
    tables = Base.metadata.tables
    return {
        "version": SchemaVersion.CURRENT.value,
        "tables": {
            name: {
                "description": TABLE_DESCRIPTIONS.get(name, ""),
                "columns": [column.name for column in table.columns],
                "primary_key": [column.name for column in table.primary_key.columns],
            }
            for name, table in tables.items()
        },
        "total_tables": len(tables),
    }
