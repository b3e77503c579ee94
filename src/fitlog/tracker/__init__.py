"""Tracker - optimistic application state store for daily metrics and workouts."""

from .config import TrackerConfig
from .exceptions import (
    AuthenticationError, ConfigurationError, GatewayError, NotSignedInError, TrackerError, ValidationError
)
from .gateway import GatewayResult, RemoteGateway, SqlGateway
from .identity import AuthResult, AuthUser, IdentityProvider, LocalIdentityProvider
from .models import (
    AppState, DailyMetricsEntry, Exercise, MetricDefinition, Settings, WeightUnit, Workout, WorkoutSet
)
from .store import AppStore, PromotionState

__all__ = [
    'AppStore', 'PromotionState', 'TrackerConfig',
    'RemoteGateway', 'SqlGateway', 'GatewayResult',
    'IdentityProvider', 'LocalIdentityProvider', 'AuthUser', 'AuthResult',
    'AppState', 'DailyMetricsEntry', 'MetricDefinition', 'Workout', 'Exercise', 'WorkoutSet',
    'Settings', 'WeightUnit',
    'TrackerError', 'GatewayError', 'AuthenticationError', 'NotSignedInError',
    'ConfigurationError', 'ValidationError',
]
__version__ = '1.0.0'
