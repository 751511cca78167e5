"""
Cleaning orchestration for one active dataset.

The orchestrator is the only writer of the committed Dataset and of the working
copy. Actions move pending -> applied | rejected and nothing else; a failed or
unusable clean call leaves both the action and the working copy as they were.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from refinery.agents.auditor import AuditAgent
from refinery.agents.cleaner import CleanerAgent
from refinery.graph.epoch import DatasetEpoch, StaleResponse
from refinery.utils.cells import Row
from refinery.utils.llm_gateway import GatewayError
from refinery.utils.models import AnalysisInsight, CleaningAction, Dataset, ValidationRule
from refinery.utils.run_logger import log_session_event
from refinery.utils.type_inference import profile_columns
from refinery.utils.usage import UsageTracker

logger = logging.getLogger(__name__)

IDLE = "idle"
AUDITING = "auditing"
REVIEWING = "reviewing"

SMART_CLEAN_ID = "smart-clean"
SMART_CLEAN_INSTRUCTION = (
    "Perform a comprehensive data cleaning: normalise formatting in every column, "
    "handle missing values, fix inconsistent categories and remove obvious duplicates."
)


class OrchestratorStateError(RuntimeError):
    """Raised when an operation is not legal in the current orchestrator state."""


class CleaningOrchestrator:
    def __init__(
        self,
        auditor: AuditAgent,
        cleaner: CleanerAgent,
        *,
        epoch: Optional[DatasetEpoch] = None,
        usage: Optional[UsageTracker] = None,
        audit_sample_size: int = 30,
        clean_sample_size: int = 200,
        session_id: Optional[str] = None,
        log_dir: Optional[str] = None,
    ):
        self.auditor = auditor
        self.cleaner = cleaner
        self.epoch = epoch or DatasetEpoch()
        self.usage = usage or UsageTracker()
        self.audit_sample_size = audit_sample_size
        self.clean_sample_size = clean_sample_size
        self.session_id = session_id
        self.log_dir = log_dir

        self.committed: Optional[Dataset] = None
        self.working: Tuple[Row, ...] = ()
        self.phase = IDLE
        self.actions: List[CleaningAction] = []
        self.insights: List[AnalysisInsight] = []
        self.rules: List[ValidationRule] = []
        self.last_error: Optional[GatewayError] = None
        self._applied_since_commit: List[CleaningAction] = []
        self._clean_lock = asyncio.Lock()

    # -- state helpers -----------------------------------------------------

    def _log_event(self, event: str, payload: dict) -> None:
        if self.session_id and self.log_dir:
            log_session_event(self.session_id, event, payload, log_dir=self.log_dir)

    def _require_dataset(self) -> Dataset:
        if self.committed is None:
            raise OrchestratorStateError("No dataset loaded.")
        return self.committed

    def _require_reviewing(self) -> Dataset:
        dataset = self._require_dataset()
        if self.phase != REVIEWING:
            raise OrchestratorStateError(f"Cleaning requires a completed audit (phase is '{self.phase}').")
        return dataset

    def _find_action(self, action_id: str) -> int:
        for index, action in enumerate(self.actions):
            if action.id == action_id:
                return index
        raise KeyError(action_id)

    def _pending_action(self, action_id: str) -> CleaningAction:
        action = self.actions[self._find_action(action_id)]
        if action.status != "pending":
            raise OrchestratorStateError(f"Action {action_id} is already {action.status}.")
        return action

    def _set_status(self, action_ids: Sequence[str], status: str) -> List[CleaningAction]:
        wanted = set(action_ids)
        changed: List[CleaningAction] = []
        for index, action in enumerate(self.actions):
            if action.id in wanted and action.status == "pending":
                updated = action.model_copy(update={"status": status})
                self.actions[index] = updated
                changed.append(updated)
        return changed

    @property
    def has_changes(self) -> bool:
        return self.committed is not None and self.working != self.committed.records

    @property
    def pending_actions(self) -> List[CleaningAction]:
        return [action for action in self.actions if action.status == "pending"]

    # -- lifecycle ---------------------------------------------------------

    def load_dataset(self, dataset: Dataset) -> int:
        """Makes `dataset` the active one; responses for the previous dataset become stale."""
        tag = self.epoch.advance()
        self.committed = dataset
        self.working = dataset.records
        self.phase = IDLE
        self.actions = []
        self.insights = []
        self.rules = []
        self.last_error = None
        self._applied_since_commit = []
        self._log_event(
            "dataset_loaded",
            {"name": dataset.name, "rows": dataset.row_count, "columns": len(dataset.headers), "epoch": tag},
        )
        return tag

    async def audit(self) -> Optional[Tuple[List[CleaningAction], List[AnalysisInsight]]]:
        dataset = self._require_dataset()
        tag = self.epoch.current
        self.phase = AUDITING
        self.last_error = None
        sample = dataset.records[: self.audit_sample_size]
        try:
            actions, insights = await self.epoch.settle(
                tag,
                "audit",
                self.auditor.audit(
                    dataset.name,
                    dataset.headers,
                    dataset.column_stats,
                    sample,
                    dataset.row_count,
                    usage=self.usage,
                ),
            )
        except StaleResponse as stale:
            logger.debug("Discarding audit result: %s", stale)
            return None
        except GatewayError as err:
            self.actions = []
            self.insights = []
            self.phase = REVIEWING
            self.last_error = err
            self._log_event("gateway_error", {"operation": "audit", "error": str(err)})
            raise

        self.actions = actions
        self.insights = insights
        self.phase = REVIEWING
        self._log_event("audit_completed", {"actions": len(actions), "insights": len(insights)})
        return actions, insights

    async def suggest_validation_rules(self) -> Optional[List[ValidationRule]]:
        dataset = self._require_dataset()
        tag = self.epoch.current
        try:
            rules = await self.epoch.settle(
                tag,
                "validation_rules",
                self.auditor.suggest_validation_rules(dataset.headers, dataset.column_stats, usage=self.usage),
            )
        except StaleResponse as stale:
            logger.debug("Discarding validation rules: %s", stale)
            return None
        except GatewayError as err:
            self.last_error = err
            self._log_event("gateway_error", {"operation": "validation_rules", "error": str(err)})
            raise
        self.rules = rules
        return rules

    def toggle_rule(self, rule_id: str) -> ValidationRule:
        for index, rule in enumerate(self.rules):
            if rule.id == rule_id:
                updated = rule.model_copy(update={"active": not rule.active})
                self.rules[index] = updated
                return updated
        raise KeyError(rule_id)

    async def _run_clean(self, instructions: Sequence[str], operation: str) -> bool:
        """
        Sends the sample window of the working copy for cleaning and re-attaches the
        rows beyond it unchanged. Returns False when nothing was changed.
        """
        dataset = self._require_dataset()
        tag = self.epoch.current
        base = self.working
        window = base[: self.clean_sample_size]
        tail = base[self.clean_sample_size :]
        try:
            cleaned = await self.epoch.settle(
                tag,
                operation,
                self.cleaner.clean_rows(window, dataset.headers, instructions, usage=self.usage),
            )
        except StaleResponse as stale:
            logger.debug("Discarding clean result: %s", stale)
            return False
        except GatewayError as err:
            self.last_error = err
            self._log_event("gateway_error", {"operation": operation, "error": str(err)})
            raise
        if cleaned is None or (window and not cleaned):
            logger.warning("%s returned no usable rows; working copy unchanged.", operation)
            return False
        self.working = tuple(cleaned) + tail
        self.last_error = None
        return True

    async def apply_action(self, action_id: str) -> Optional[CleaningAction]:
        self._require_reviewing()
        self._pending_action(action_id)
        tag = self.epoch.current
        async with self._clean_lock:
            if not self.epoch.is_current(tag):
                logger.debug("Discarding queued apply of %s: dataset replaced.", action_id)
                return None
            # Re-read after the lock: a queued apply may have settled this action.
            action = self._pending_action(action_id)
            if not await self._run_clean([action.suggested_transform], "apply_action"):
                return None
            applied = self._set_status([action.id], "applied")
        self._applied_since_commit.extend(applied)
        self._log_event("action_applied", {"id": action.id, "kind": action.kind, "rows": len(self.working)})
        return applied[0] if applied else None

    async def apply_all(self) -> Optional[List[CleaningAction]]:
        """Smart clean: one comprehensive instruction, then every pending action is marked applied."""
        self._require_reviewing()
        tag = self.epoch.current
        async with self._clean_lock:
            if not self.epoch.is_current(tag):
                logger.debug("Discarding queued smart clean: dataset replaced.")
                return None
            pending = self.pending_actions
            instruction = SMART_CLEAN_INSTRUCTION
            if pending:
                instruction += " Also address: " + " | ".join(a.suggested_transform for a in pending)
            smart = CleaningAction(
                id=SMART_CLEAN_ID,
                kind="smart_clean",
                title="Complete smart cleaning",
                description="Applies all suggested improvements in a single pass.",
                affected_row_count=len(self.working),
                status="pending",
                suggested_transform=instruction,
            )
            if not await self._run_clean([instruction], "apply_all"):
                return None
            applied = self._set_status([a.id for a in pending], "applied")
        self._applied_since_commit.append(smart.model_copy(update={"status": "applied"}))
        self._applied_since_commit.extend(applied)
        self._log_event("action_applied", {"id": SMART_CLEAN_ID, "marked": len(applied), "rows": len(self.working)})
        return applied

    def reject_action(self, action_id: str) -> CleaningAction:
        self._require_dataset()
        self._pending_action(action_id)
        rejected = self._set_status([action_id], "rejected")[0]
        self._log_event("action_rejected", {"id": action_id})
        return rejected

    def commit(self) -> Dataset:
        """
        Promotes the working copy to a new committed Dataset with fresh stats.
        With no differences this is a no-op and returns the current Dataset.
        """
        dataset = self._require_dataset()
        if not self.has_changes:
            return dataset
        records = self.working
        committed = Dataset(
            name=dataset.name,
            headers=dataset.headers,
            records=records,
            column_stats=tuple(profile_columns(dataset.headers, records)),
            source_type=dataset.source_type,
            last_cleaned=datetime.now(timezone.utc),
            cleaning_history=dataset.cleaning_history + tuple(self._applied_since_commit),
        )
        self.committed = committed
        self.working = committed.records
        self._applied_since_commit = []
        self._log_event("dataset_committed", {"name": committed.name, "rows": committed.row_count})
        return committed
