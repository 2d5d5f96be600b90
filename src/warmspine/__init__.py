"""warmspine: cache warming and cutover validation.

Pre-populates a key-value cache from a relational source before a
deployment takes traffic, and gates the traffic switch on measured
warm-cache health.

Quick start::

    from warmspine.core.config import get_settings, create_orchestrator, create_gate
    from warmspine.core.config.factory import create_job

    settings = get_settings()
    report = create_orchestrator(settings).run(create_job(settings))
    decision = create_gate(settings).validate(report)
"""

__version__ = "0.1.0"
