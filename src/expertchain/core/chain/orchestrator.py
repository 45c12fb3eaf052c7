from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import ValidationError

from expertchain.core.cache.ttl import ResultCache, make_cache_key
from expertchain.core.evaluation.base import EvaluationInput, Evaluator
from expertchain.core.experts.base import Expert
from expertchain.core.experts.registry import ExpertRegistry
from expertchain.core.infra.breaker_manager import BreakerManager
from expertchain.core.logging.context import log_context
from expertchain.core.observability.trace import STATUS_ERROR, STATUS_OK, RecordingTracer, SpanHandle, TraceHandle, TracingSink

from .context import SharedContext
from .errors import ExpertError, ExpertTimeoutError
from .retry import RetryPolicy
from .schemas import (
    EXPERT_OUTPUT_KEY,
    ChainInput,
    ChainOptions,
    ChainResult,
    ExecutionMode,
    ExpertOutput,
    IntermediateResult,
    TokenUsage,
)

logger = logging.getLogger("expertchain.chain")

NO_EXPERTS_ERROR = "No experts provided in the chain."

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class _Outcome:
    expert_name: str
    expert_type: str
    index: int
    input: dict[str, Any]
    output: ExpertOutput
    attempts: int
    cached: bool
    duration_ms: float
    timestamp: str

    def to_intermediate(self) -> IntermediateResult:
        return IntermediateResult(
            expert_name=self.expert_name,
            expert_type=self.expert_type,
            expert_index=self.index,
            input=self.input,
            output=dict(self.output),
            timestamp=self.timestamp,
            duration_ms=self.duration_ms,
            attempts=self.attempts,
            cached=self.cached,
        )


class ChainOrchestrator:
    def __init__(
        self,
        registry: ExpertRegistry,
        tracer: TracingSink | None = None,
        cache: ResultCache | None = None,
        breakers: BreakerManager | None = None,
        evaluators: Sequence[Evaluator] = (),
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.tracer = tracer or RecordingTracer()
        self.cache = cache
        self.breakers = breakers
        self.evaluators = list(evaluators)
        self._sleep = sleep
        registry.add_change_listener(self._on_registry_change)

    def _on_registry_change(self, event: str, name: str) -> None:
        # Cached outputs and breaker history belong to the instance that was swapped out.
        if self.cache is not None:
            self.cache.invalidate(name)
        if self.breakers is not None:
            self.breakers.reset(name)

    async def process(
        self,
        expert_names: Sequence[str],
        input: ChainInput,
        context: SharedContext,
        user_id: str | None = None,
        session_id: str | None = None,
        options: ChainOptions | None = None,
    ) -> ChainResult:
        options = options or ChainOptions()
        names = list(expert_names)
        if not names:
            logger.warning("chain_rejected", extra={"extra_fields": {"reason": "no_experts"}})
            return ChainResult(result=None, success=False, error=NO_EXPERTS_ERROR)

        user_id = user_id or context.user_id
        session_id = session_id or context.session_id
        mode = options.execution_mode
        started = time.perf_counter()

        with log_context(trace_id=context.trace_id, user_id=user_id, session_id=session_id):
            trace = self.tracer.start_trace(
                f"chain-of-experts-{mode.value}",
                {
                    "user_id": user_id,
                    "session_id": session_id,
                    "context_trace_id": context.trace_id,
                    "input_type": input.get("type"),
                    "execution_mode": mode.value,
                    "expert_names": names,
                    "use_cache": options.use_cache,
                },
            )
            logger.info(
                "chain_started",
                extra={"extra_fields": {"execution_mode": mode.value, "expert_count": len(names)}},
            )
            try:
                if mode is ExecutionMode.PARALLEL:
                    result = await self._run_parallel(names, input, context, trace, options)
                else:
                    result = await self._run_sequential(names, input, context, trace, options)
            except Exception as exc:
                logger.exception("chain_failed")
                result = ChainResult(result=None, success=False, error=str(exc) or exc.__class__.__name__)
            except BaseException:
                logger.warning("chain_cancelled")
                trace.update(STATUS_ERROR, {"error": "cancelled"})
                trace.end()
                raise

            result.duration_ms = round((time.perf_counter() - started) * 1000, 3)
            trace.update(
                STATUS_OK if result.success else STATUS_ERROR,
                {
                    "error": result.error,
                    "intermediate_results_count": len(result.intermediate_results),
                    "duration_ms": result.duration_ms,
                },
            )
            trace.end()
            logger.info(
                "chain_completed",
                extra={"extra_fields": {"success": result.success, "duration_ms": result.duration_ms}},
            )
        return result

    async def _run_sequential(
        self,
        names: list[str],
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle,
        options: ChainOptions,
    ) -> ChainResult:
        current_input: dict[str, Any] = dict(input)
        intermediate: list[IntermediateResult] = []
        output: ExpertOutput | None = None

        for index, name in enumerate(names):
            try:
                outcome = await self._invoke(name, index, current_input, context, trace, options)
            except ExpertError as exc:
                logger.error(
                    "chain_aborted",
                    extra={"extra_fields": {"expert": name, "expert_index": index, "attempts": exc.attempts}},
                )
                return ChainResult(
                    result=None,
                    success=False,
                    error=str(exc),
                    intermediate_results=intermediate,
                    token_usage=_extract_token_usage(None, intermediate),
                )
            intermediate.append(self._record(outcome, options))
            output = outcome.output
            current_input = {**current_input, EXPERT_OUTPUT_KEY: output}

        return ChainResult(
            result=output,
            success=True,
            intermediate_results=intermediate,
            token_usage=_extract_token_usage(output, intermediate),
        )

    async def _run_parallel(
        self,
        names: list[str],
        input: ChainInput,
        context: SharedContext,
        trace: TraceHandle,
        options: ChainOptions,
    ) -> ChainResult:
        limit = options.max_concurrency or len(names)
        semaphore = asyncio.Semaphore(limit)
        base_input = dict(input)

        async def branch(index: int, name: str) -> _Outcome | ExpertError:
            async with semaphore:
                try:
                    return await self._invoke(name, index, base_input, context, trace, options)
                except ExpertError as exc:
                    return exc

        outcomes = await asyncio.gather(*(branch(index, name) for index, name in enumerate(names)))

        results: dict[str, Any] = {}
        intermediate: list[IntermediateResult] = []
        failed: list[str] = []
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, ExpertError):
                results[name] = {"error": str(outcome)}
                failed.append(name)
                continue
            results[name] = outcome.output
            intermediate.append(self._record(outcome, options))

        if failed:
            logger.warning("parallel_branches_failed", extra={"extra_fields": {"failed_experts": failed}})

        return ChainResult(
            result=results,
            success=True,
            intermediate_results=intermediate,
            token_usage=_extract_token_usage(None, intermediate),
        )

    async def _invoke(
        self,
        name: str,
        index: int,
        input: dict[str, Any],
        context: SharedContext,
        trace: TraceHandle,
        options: ChainOptions,
    ) -> _Outcome:
        """Run one expert under its retry policy inside a single span."""
        retry = RetryPolicy.from_options(options.retry_for(name))
        timeout_s = options.timeout_for(name)
        span = trace.start_span(
            f"{name}-processing",
            {"expert_name": name, "expert_index": index, "max_attempts": retry.max_attempts},
        )
        attempts = 0
        expert_type = "unknown"
        cached = False
        started = time.perf_counter()
        try:
            with log_context(expert=name):
                while True:
                    attempts += 1
                    try:
                        expert = self._prepare(name, options)
                        expert_type = expert.get_type()
                        output, cached = await self._attempt(expert, name, input, context, trace, options, timeout_s)
                        break
                    except Exception as exc:
                        if not retry.should_retry(attempts, exc):
                            logger.error(
                                "expert_failed",
                                extra={"extra_fields": {"attempts": attempts, "error": str(exc)}},
                            )
                            raise ExpertError(str(exc) or exc.__class__.__name__, name, attempts, cause=exc) from exc
                        delay = retry.delay_for(attempts)
                        logger.warning(
                            "expert_attempt_failed",
                            extra={"extra_fields": {"attempt": attempts, "retry_in_s": delay, "error": str(exc)}},
                        )
                        await self._sleep(delay)
                await self._score(span, expert, name, input, output, context, cached)
            span.update(STATUS_OK, None, {"attempts": attempts, "expert_type": expert_type, "cached": cached})
        except ExpertError as exc:
            span.update(
                STATUS_ERROR,
                exc.reason,
                {"attempts": attempts, "expert_type": expert_type, "error_type": type(exc.cause).__name__},
            )
            raise
        except BaseException:
            span.update(STATUS_ERROR, "cancelled", {"attempts": attempts, "expert_type": expert_type})
            raise
        finally:
            span.end()

        return _Outcome(
            expert_name=name,
            expert_type=expert_type,
            index=index,
            input=dict(input),
            output=output,
            attempts=attempts,
            cached=cached,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def _prepare(self, name: str, options: ChainOptions) -> Expert:
        expert = self.registry.resolve(name)
        parameters = options.expert_parameters.get(name)
        if parameters:
            # Request-scoped overrides never touch the registered instance.
            expert = copy.copy(expert)
            expert.set_parameters(parameters)
        return expert

    async def _score(
        self,
        span: SpanHandle,
        expert: Expert,
        name: str,
        input: dict[str, Any],
        output: ExpertOutput,
        context: SharedContext,
        cached: bool,
    ) -> None:
        span.score("cache-hit", 1.0 if cached else 0.0)
        if cached:
            return

        score_output = getattr(expert, "score_output", None)
        if callable(score_output):
            try:
                for item in score_output(output):
                    span.score(item.name, item.value, item.comment)
            except Exception as exc:
                logger.warning("expert_scoring_failed", extra={"extra_fields": {"error": str(exc)}})
                span.update(STATUS_OK, None, {"scoring_error": str(exc)})

        if not self.evaluators:
            return
        evaluation = EvaluationInput(
            expert_name=name,
            expert_type=expert.get_type(),
            input=dict(input),
            output=copy.deepcopy(output),
            context=context,
            expert_parameters=expert.get_parameters(),
        )
        for evaluator in self.evaluators:
            try:
                scores = await evaluator.evaluate(evaluation)
            except Exception as exc:
                logger.exception("evaluation_failed", extra={"extra_fields": {"evaluator": evaluator.name}})
                span.update(STATUS_OK, None, {"evaluation_error": f"{evaluator.name}: {exc}"})
                continue
            for item in scores:
                span.score(item.name, item.value, item.comment)

    async def _attempt(
        self,
        expert: Expert,
        name: str,
        input: dict[str, Any],
        context: SharedContext,
        trace: TraceHandle,
        options: ChainOptions,
        timeout_s: float | None,
    ) -> tuple[ExpertOutput, bool]:
        cache_key: str | None = None
        if options.use_cache and self.cache is not None:
            cache_key = make_cache_key(name, input, expert.get_parameters())
            hit = self.cache.get(cache_key)
            if hit is not None:
                logger.debug("expert_cache_hit")
                return copy.deepcopy(hit), True

        if self.breakers is not None:
            self.breakers.check(name)

        try:
            output = await self._call(expert, name, input, context, trace, timeout_s)
        except Exception as exc:
            if self.breakers is not None:
                self.breakers.record_failure(name, exc)
            raise
        except BaseException:
            if self.breakers is not None:
                self.breakers.release(name)
            raise
        if self.breakers is not None:
            self.breakers.record_success(name)

        if cache_key is not None and self.cache is not None:
            self.cache.set(cache_key, copy.deepcopy(output))
        return output, False

    async def _call(
        self,
        expert: Expert,
        name: str,
        input: dict[str, Any],
        context: SharedContext,
        trace: TraceHandle,
        timeout_s: float | None,
    ) -> ExpertOutput:
        pending = expert.process(dict(input), context, trace)
        if timeout_s is None:
            output = await pending
        else:
            try:
                output = await asyncio.wait_for(pending, timeout_s)
            except asyncio.TimeoutError as exc:
                raise ExpertTimeoutError(name, timeout_s) from exc
        if not isinstance(output, Mapping):
            raise TypeError(f"expert returned {type(output).__name__}, expected a mapping")
        return dict(output)

    def _record(self, outcome: _Outcome, options: ChainOptions) -> IntermediateResult:
        item = outcome.to_intermediate()
        if options.on_intermediate_result is not None:
            try:
                options.on_intermediate_result(item)
            except Exception:
                logger.exception("intermediate_callback_failed", extra={"extra_fields": {"expert": outcome.expert_name}})
        return item


def _extract_token_usage(output: ExpertOutput | None, intermediate: list[IntermediateResult]) -> TokenUsage | None:
    candidates: list[Any] = []
    if isinstance(output, Mapping):
        candidates.append(output.get("token_usage"))
    candidates.extend(item.output.get("token_usage") for item in intermediate)
    for candidate in candidates:
        if candidate is None:
            continue
        if isinstance(candidate, TokenUsage):
            return candidate
        try:
            return TokenUsage.model_validate(candidate)
        except ValidationError:
            logger.debug("token_usage_unparseable")
    return None
