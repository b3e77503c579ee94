"""fitlog - personal fitness tracker with optimistic state sync."""

__version__ = '1.0.0'
