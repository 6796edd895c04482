"""Sync layer.

Modules:
    state       — Idle / Syncing / Success / Failure and the StateFlow cell
    repository  — remote → store sync of workouts, templates and routines
    coordinator — cooldown, reachability gating, observable state
    scheduler   — periodic and reconnect-triggered background sync
"""
