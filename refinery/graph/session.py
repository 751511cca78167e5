"""
One user session: a single active dataset, its cleaning flow and its query surface.

The session owns the dataset epoch and the usage counters and hands both to the
orchestrator and the query executor, so every component agrees on which dataset
is active and what has been spent.
"""

import logging
import os
import uuid
from typing import Optional

from refinery.agents.analyst import AnalystAgent
from refinery.agents.auditor import AuditAgent
from refinery.agents.cleaner import CleanerAgent
from refinery.connectors import CsvConnector, ParsedTable, TabularConnector
from refinery.graph.cleaning_orchestrator import CleaningOrchestrator
from refinery.graph.epoch import DatasetEpoch
from refinery.graph.query_executor import QueryExecutor
from refinery.utils.llm_fallback import ReasoningClient, build_reasoning_client
from refinery.utils.llm_gateway import ResilientGateway
from refinery.utils.models import Dataset, QueryMode, QueryResult
from refinery.utils.run_logger import init_session_log
from refinery.utils.settings import RefinerySettings
from refinery.utils.type_inference import profile_columns
from refinery.utils.usage import UsageTracker

logger = logging.getLogger(__name__)


def dataset_from_table(name: str, table: ParsedTable, source_type: str = "csv") -> Dataset:
    return Dataset(
        name=name,
        headers=tuple(table.headers),
        records=tuple(table.rows),
        column_stats=tuple(profile_columns(table.headers, table.rows)),
        source_type=source_type,
    )


class RefinerySession:
    def __init__(
        self,
        gateway: ResilientGateway,
        *,
        usage: Optional[UsageTracker] = None,
        connector: Optional[TabularConnector] = None,
        audit_sample_size: int = 30,
        clean_sample_size: int = 200,
        query_sample_size: int = 50,
        chart_max_rows: int = 50,
        session_id: Optional[str] = None,
        log_dir: Optional[str] = None,
    ):
        self.gateway = gateway
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.log_dir = log_dir
        self.epoch = DatasetEpoch()
        self.usage = usage or UsageTracker()
        self.connector = connector or CsvConnector()
        self.orchestrator = CleaningOrchestrator(
            AuditAgent(gateway),
            CleanerAgent(gateway),
            epoch=self.epoch,
            usage=self.usage,
            audit_sample_size=audit_sample_size,
            clean_sample_size=clean_sample_size,
            session_id=self.session_id,
            log_dir=log_dir,
        )
        self.query_executor = QueryExecutor(
            AnalystAgent(gateway),
            epoch=self.epoch,
            usage=self.usage,
            sample_size=query_sample_size,
            chart_max_rows=chart_max_rows,
        )
        if log_dir:
            init_session_log(
                self.session_id,
                metadata={
                    "audit_sample_size": audit_sample_size,
                    "clean_sample_size": clean_sample_size,
                    "query_sample_size": query_sample_size,
                },
                log_dir=log_dir,
            )

    @classmethod
    def from_settings(
        cls,
        settings: RefinerySettings,
        client: Optional[ReasoningClient] = None,
        **kwargs,
    ) -> "RefinerySession":
        gateway = ResilientGateway(
            client or build_reasoning_client(settings),
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            attempt_timeout=settings.timeout_seconds,
        )
        return cls(
            gateway,
            audit_sample_size=settings.audit_sample_size,
            clean_sample_size=settings.clean_sample_size,
            query_sample_size=settings.query_sample_size,
            chart_max_rows=settings.chart_max_rows,
            log_dir=settings.log_dir,
            **kwargs,
        )

    @property
    def active_dataset(self) -> Optional[Dataset]:
        return self.orchestrator.committed

    def _load(self, name: str, table: ParsedTable) -> Optional[Dataset]:
        if not table.rows:
            logger.warning("Ignoring '%s': no data rows under the header.", name)
            return None
        dataset = dataset_from_table(name, table, source_type=self.connector.source_type)
        self.usage.record_ingestion(dataset.row_count)
        self.orchestrator.load_dataset(dataset)
        logger.info("Loaded '%s' (%d rows, %d columns).", name, dataset.row_count, len(dataset.headers))
        return dataset

    def ingest_text(self, text: str, name: str = "dataset") -> Optional[Dataset]:
        """Parses and profiles `text`; MalformedInputError leaves the active dataset untouched."""
        return self._load(name, self.connector.parse_text(text))

    def ingest_file(self, path: str, name: Optional[str] = None) -> Optional[Dataset]:
        return self._load(name or os.path.basename(path), self.connector.read_file(path))

    async def query(self, query_text: str, mode: QueryMode = "natural_language") -> Optional[QueryResult]:
        dataset = self.active_dataset
        if dataset is None:
            raise ValueError("No dataset loaded.")
        return await self.query_executor.run(dataset, query_text, mode)
