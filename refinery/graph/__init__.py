"""
Stateful flow around the active dataset.

The session owns the dataset epoch and usage counters; the cleaning orchestrator
and the query executor share them so late collaborator responses are recognised.
"""

from refinery.graph.epoch import DatasetEpoch, StaleResponse
from refinery.graph.cleaning_orchestrator import CleaningOrchestrator, OrchestratorStateError
from refinery.graph.query_executor import QueryExecutor
from refinery.graph.session import RefinerySession, dataset_from_table

__all__ = [
    "DatasetEpoch",
    "StaleResponse",
    "CleaningOrchestrator",
    "OrchestratorStateError",
    "QueryExecutor",
    "RefinerySession",
    "dataset_from_table",
]
