"""Settings and component factories.

Guardrails:
    ❌ Parsing env vars ad-hoc in each module
    ✅ ``get_settings().batch_size`` from the cached singleton
    ❌ Constructing engines and stores with raw ``create_engine()``
    ✅ ``create_orchestrator(settings)`` via the factory layer
"""

from warmspine.core.config.factory import (
    create_cache_store,
    create_cutover_controller,
    create_gate,
    create_job,
    create_orchestrator,
    create_repository,
    create_source_reader,
)
from warmspine.core.config.settings import (
    WarmSettings,
    clear_settings_cache,
    get_settings,
    load_settings,
)

__all__ = [
    "WarmSettings",
    "get_settings",
    "load_settings",
    "clear_settings_cache",
    "create_cache_store",
    "create_source_reader",
    "create_repository",
    "create_job",
    "create_orchestrator",
    "create_gate",
    "create_cutover_controller",
]
