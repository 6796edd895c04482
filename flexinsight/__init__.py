"""FlexInsight sync core.

Mirrors a remote workout log into a local store, keeps it fresh with
cooldown-gated background sync, and derives training statistics from it.

Subpackages:
    core/      — ApiError classification and the network reachability oracle
    api/       — Retrying request executor and the remote API client
    models/    — Pydantic wire models and their mapping to store records
    store/     — WorkoutStore interface, in-memory and Postgres stores
    cache/     — Read-time-TTL cache and its key families
    analytics/ — Pure statistics calculator and the cached stats service
    sync/      — Sync state, remote sync repository, coordinator, scheduler

Core modules:
    config        — Environment settings and logging setup
    policy_loader — Load/validate/reload sync_policy.yaml

Usage::

    from flexinsight.api.client import WorkoutApiClient
    from flexinsight.cache import TTLCache
    from flexinsight.core.network import NetworkMonitor
    from flexinsight.store.memory import InMemoryWorkoutStore
    from flexinsight.sync.coordinator import SyncCoordinator
    from flexinsight.sync.repository import WorkoutSyncRepository

    cache, store, network = TTLCache(), InMemoryWorkoutStore(), NetworkMonitor.from_settings()
    async with WorkoutApiClient() as client:
        repository = WorkoutSyncRepository(client, store, cache, network=network)
        result = await SyncCoordinator(repository, network, cache).sync_manually()
"""

__version__ = "0.1.0"
