import logging
from typing import List, Optional

from refinery.agents.analyst import AnalystAgent
from refinery.graph.epoch import DatasetEpoch, StaleResponse
from refinery.utils.models import KPI, ChartSpec, Dataset, QueryMode, QueryResult
from refinery.utils.usage import UsageTracker

logger = logging.getLogger(__name__)

_QUERY_MODES = ("natural_language", "sql")


class QueryExecutor:
    """
    Answers questions about the active dataset from a bounded row sample.

    Every call captures the dataset epoch at launch; a result that arrives after
    another dataset was loaded is discarded and the call returns None.
    """

    def __init__(
        self,
        analyst: AnalystAgent,
        *,
        epoch: Optional[DatasetEpoch] = None,
        usage: Optional[UsageTracker] = None,
        sample_size: int = 50,
        chart_max_rows: int = 50,
    ):
        self.analyst = analyst
        self.epoch = epoch or DatasetEpoch()
        self.usage = usage or UsageTracker()
        self.sample_size = sample_size
        self.chart_max_rows = chart_max_rows

    def _sample(self, dataset: Dataset):
        return dataset.records[: self.sample_size]

    async def run(
        self,
        dataset: Dataset,
        query_text: str,
        mode: QueryMode = "natural_language",
    ) -> Optional[QueryResult]:
        if mode not in _QUERY_MODES:
            raise ValueError(f"Unsupported query mode: {mode}")
        query_text = (query_text or "").strip()
        if not query_text:
            raise ValueError("Query text must not be empty.")

        tag = self.epoch.current
        sample = self._sample(dataset)
        try:
            rows = await self.epoch.settle(
                tag, "query", self.analyst.query_rows(sample, query_text, mode, usage=self.usage)
            )
            chart: Optional[ChartSpec] = None
            if 0 < len(rows) <= self.chart_max_rows:
                chart = await self.epoch.settle(
                    tag, "chart_suggestion", self.analyst.suggest_chart(rows, usage=self.usage)
                )
        except StaleResponse as stale:
            logger.debug("Discarding query result: %s", stale)
            return None

        return QueryResult(records=tuple(rows), mode=mode, sampled_rows=len(sample), chart=chart)

    async def ask(self, dataset: Dataset, question: str) -> Optional[str]:
        question = (question or "").strip()
        if not question:
            raise ValueError("Question must not be empty.")
        tag = self.epoch.current
        try:
            return await self.epoch.settle(
                tag, "answer", self.analyst.answer_question(self._sample(dataset), question, usage=self.usage)
            )
        except StaleResponse as stale:
            logger.debug("Discarding answer: %s", stale)
            return None

    async def report(self, dataset: Dataset, focus: Optional[str] = None) -> Optional[str]:
        tag = self.epoch.current
        try:
            return await self.epoch.settle(
                tag,
                "report",
                self.analyst.generate_report(
                    dataset.name, dataset.headers, dataset.column_stats, focus=focus, usage=self.usage
                ),
            )
        except StaleResponse as stale:
            logger.debug("Discarding report: %s", stale)
            return None

    async def kpis(self, dataset: Dataset) -> Optional[List[KPI]]:
        tag = self.epoch.current
        try:
            return await self.epoch.settle(
                tag, "kpis", self.analyst.extract_kpis(dataset.headers, self._sample(dataset), usage=self.usage)
            )
        except StaleResponse as stale:
            logger.debug("Discarding KPIs: %s", stale)
            return None

    async def dashboard(self, dataset: Dataset, goal: Optional[str] = None) -> Optional[List[ChartSpec]]:
        tag = self.epoch.current
        try:
            charts = await self.epoch.settle(
                tag,
                "dashboard",
                self.analyst.suggest_dashboard(dataset.headers, dataset.column_stats, goal=goal, usage=self.usage),
            )
        except StaleResponse as stale:
            logger.debug("Discarding dashboard: %s", stale)
            return None
        known = set(dataset.headers)
        kept = [chart for chart in charts if chart.x_axis in known]
        if len(kept) < len(charts):
            logger.info("Dropped %d dashboard chart(s) referencing unknown columns.", len(charts) - len(kept))
        return kept
