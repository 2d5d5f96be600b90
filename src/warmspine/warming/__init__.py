"""Warming pipeline.

Architecture::

    source.py        SourceReader protocol, SqlSourceReader, RowBatch
    transform.py     row models + RecordTransformer
    ttl.py           TTLPolicy + TTLPolicyCalculator
    writer.py        CacheWriter (retry with backoff)
    warmer.py        CategoryWarmer (one category, sequential batches)
    orchestrator.py  WarmingOrchestrator (bounded thread pool, report)
"""

from warmspine.warming.orchestrator import WarmingOrchestrator
from warmspine.warming.source import RowBatch, SourceReader, SqlSourceReader
from warmspine.warming.transform import RecordTransformer
from warmspine.warming.ttl import DEFAULT_TTL_POLICIES, TTLPolicy, TTLPolicyCalculator
from warmspine.warming.warmer import CategoryWarmer, WarmerState
from warmspine.warming.writer import CacheWriter, WriteOutcome

__all__ = [
    "SourceReader",
    "SqlSourceReader",
    "RowBatch",
    "RecordTransformer",
    "TTLPolicy",
    "TTLPolicyCalculator",
    "DEFAULT_TTL_POLICIES",
    "CacheWriter",
    "WriteOutcome",
    "CategoryWarmer",
    "WarmerState",
    "WarmingOrchestrator",
]
