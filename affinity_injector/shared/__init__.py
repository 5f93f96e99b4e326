"""
affinity_injector/shared — typed models, label conventions and settings.

Public API:
    models   — Dataset, StorageClaim, TieredLocalityPolicy, NodeAffinitySpec, ...
    labels   — well-known label / attribute keys and pod label readers
    config   — InjectorSettings, get_settings(), configure_logging()
"""
