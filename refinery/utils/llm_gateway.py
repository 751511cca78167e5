"""
Resilient gateway in front of the reasoning collaborator.

Two failure modes stay distinct:
- GatewayError: the collaborator could not be reached usefully (non-retryable
  failure, or retryable failures exhausted the attempt budget). Raised.
- SchemaMismatch: the collaborator answered but the payload does not fit the
  operation's shape. Logged, and the operation's default value is returned.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict

from refinery.utils.llm_fallback import ReasoningClient
from refinery.utils.response_schemas import ResponseSpec, SchemaMismatch
from refinery.utils.retries import plan_retry
from refinery.utils.usage import UsageTracker

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    def __init__(self, operation: str, attempts: int, retryable: bool, message: str):
        super().__init__(f"{operation} failed after {attempts} attempt(s): {message}")
        self.operation = operation
        self.attempts = attempts
        self.retryable = retryable


class GatewayRequest(BaseModel):
    operation: str
    prompt: str
    model_config = ConfigDict(frozen=True)


class ResilientGateway:
    def __init__(
        self,
        client: ReasoningClient,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
        attempt_timeout: Optional[float] = 120.0,
        jitter: float = 0.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.attempt_timeout = attempt_timeout
        self.jitter = jitter
        self._sleep = sleep

    async def _call_once(self, request: GatewayRequest, spec: ResponseSpec) -> str:
        call = self.client.generate(
            request.prompt,
            json_mode=spec.json_mode,
            response_schema=spec.schema_hint(),
        )
        if self.attempt_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.attempt_timeout)

    def _parse_or_default(self, request: GatewayRequest, spec: ResponseSpec, raw_text: str) -> Any:
        try:
            return spec.parse(raw_text)
        except SchemaMismatch as err:
            logger.warning(
                "GATEWAY_SCHEMA_MISMATCH operation=%s spec=%s chars=%d detail=%s",
                request.operation,
                spec.name,
                len(raw_text or ""),
                str(err)[:200],
            )
            return spec.default()

    async def execute(
        self,
        request: GatewayRequest,
        spec: ResponseSpec,
        *,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        usage: Optional[UsageTracker] = None,
    ) -> Any:
        budget = self.max_retries if max_retries is None else max_retries
        delay_base = self.base_delay if base_delay is None else base_delay
        if usage is not None:
            usage.record_ai_call()

        attempt = 0
        while True:
            try:
                raw_text = await self._call_once(request, spec)
            except Exception as err:
                decision = plan_retry(
                    attempt,
                    err,
                    max_retries=budget,
                    base_delay=delay_base,
                    jitter=self.jitter,
                )
                if not decision.retry:
                    logger.error(
                        "GATEWAY_FAILED operation=%s attempts=%d retryable=%s error=%s",
                        request.operation,
                        attempt + 1,
                        decision.retryable,
                        type(err).__name__,
                    )
                    raise GatewayError(
                        request.operation,
                        attempt + 1,
                        decision.retryable,
                        str(err)[:300] or type(err).__name__,
                    ) from err
                logger.warning(
                    "GATEWAY_RETRY operation=%s attempt=%d/%d delay=%.2fs error=%s",
                    request.operation,
                    attempt + 1,
                    budget,
                    decision.delay,
                    str(err)[:200],
                )
                await self._sleep(decision.delay)
                attempt += 1
                continue
            return self._parse_or_default(request, spec, raw_text)
