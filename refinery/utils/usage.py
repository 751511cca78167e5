from typing import Dict


class UsageTracker:
    """
    Session usage counters consumed by billing/quota displays.

    rows_processed grows once per successful ingestion; ai_calls grows once per
    gateway invocation (retries of the same invocation are not counted).
    """

    def __init__(self, rows_processed: int = 0, ai_calls: int = 0):
        self.rows_processed = rows_processed
        self.ai_calls = ai_calls

    def record_ingestion(self, row_count: int) -> None:
        self.rows_processed += int(row_count)

    def record_ai_call(self) -> None:
        self.ai_calls += 1

    def snapshot(self) -> Dict[str, int]:
        return {"rows_processed": self.rows_processed, "ai_calls": self.ai_calls}
