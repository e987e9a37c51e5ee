"""
LLM call metrics.

Metrics live in an explicitly owned, size-bounded buffer. The app lifespan
(or the worker) creates one and hands it to the extractor and classifier.
"""
import logging
import time
import uuid
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)


# USD per 1K tokens; unknown models are priced as gpt-4o
MODEL_PRICING: Dict[str, Dict[str, float]] = {
    "gpt-4o": {"prompt": 0.0025, "completion": 0.01},
    "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
    "gpt-4.1": {"prompt": 0.002, "completion": 0.008},
    "gpt-4.1-mini": {"prompt": 0.0004, "completion": 0.0016},
    "gpt-4-turbo": {"prompt": 0.01, "completion": 0.03},
    "gpt-3.5-turbo": {"prompt": 0.0005, "completion": 0.0015},
}
DEFAULT_PRICING_MODEL = "gpt-4o"


def calculate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Estimate the cost of a call from its token usage."""
    pricing = MODEL_PRICING.get(model, MODEL_PRICING[DEFAULT_PRICING_MODEL])
    return (
        (prompt_tokens / 1000) * pricing["prompt"]
        + (completion_tokens / 1000) * pricing["completion"]
    )


@dataclass
class LLMMetrics:
    """One tracked model call."""
    request_id: str
    name: str
    model: str
    latency_ms: float
    timestamp: datetime
    success: bool = True
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CallTracker:
    """Mutable handle yielded by ``LLMMetricsBuffer.track`` to attach usage."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    def record_usage(self, usage: Any) -> None:
        """Copy token counts from an OpenAI ``usage`` object (may be None)."""
        if usage is None:
            return
        self.prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        self.completion_tokens = getattr(usage, "completion_tokens", 0) or 0


class LLMMetricsBuffer:
    """Ring buffer of the most recent LLM call metrics."""

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._metrics: deque[LLMMetrics] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._metrics)

    def record(self, metrics: LLMMetrics) -> None:
        self._metrics.append(metrics)

    def clear(self) -> None:
        self._metrics.clear()

    @asynccontextmanager
    async def track(self, name: str, model: str, url: Optional[str] = None) -> AsyncIterator[CallTracker]:
        """
        Time a model call and record it on exit, successful or not.

        Exceptions raised inside the block are recorded and re-raised.
        """
        tracker = CallTracker()
        started = time.perf_counter()
        timestamp = datetime.utcnow()
        request_id = f"req_{uuid.uuid4().hex[:12]}"
        error: Optional[str] = None
        try:
            yield tracker
        except BaseException as e:
            error = f"{type(e).__name__}: {e}"
            raise
        finally:
            latency_ms = (time.perf_counter() - started) * 1000
            total = tracker.prompt_tokens + tracker.completion_tokens
            self.record(
                LLMMetrics(
                    request_id=request_id,
                    name=name,
                    model=model,
                    latency_ms=latency_ms,
                    timestamp=timestamp,
                    success=error is None,
                    prompt_tokens=tracker.prompt_tokens,
                    completion_tokens=tracker.completion_tokens,
                    total_tokens=total,
                    cost=calculate_cost(model, tracker.prompt_tokens, tracker.completion_tokens),
                    url=url,
                    error=error,
                )
            )
            if error:
                logger.error(f"LLM call failed: {name} ({model}) after {latency_ms:.0f}ms: {error}")
            else:
                logger.debug(f"LLM call completed: {name} ({model}) tokens={total} latency={latency_ms:.0f}ms")

    def recent(self, limit: int = 100) -> List[LLMMetrics]:
        """Return up to ``limit`` most recent metrics, oldest first."""
        if limit <= 0:
            return []
        return list(self._metrics)[-limit:]

    def summary(self) -> Dict[str, Any]:
        """Aggregate totals and a per-model breakdown."""
        metrics = list(self._metrics)
        model_breakdown: Dict[str, Dict[str, float]] = {}
        total_tokens = 0
        total_cost = 0.0
        total_latency = 0.0
        failed = 0

        for metric in metrics:
            total_tokens += metric.total_tokens
            total_cost += metric.cost
            total_latency += metric.latency_ms
            if not metric.success:
                failed += 1
            breakdown = model_breakdown.setdefault(
                metric.model, {"calls": 0, "tokens": 0, "cost": 0.0}
            )
            breakdown["calls"] += 1
            breakdown["tokens"] += metric.total_tokens
            breakdown["cost"] += metric.cost

        return {
            "total_calls": len(metrics),
            "failed_calls": failed,
            "total_tokens": total_tokens,
            "total_cost": total_cost,
            "average_latency_ms": total_latency / len(metrics) if metrics else 0.0,
            "model_breakdown": model_breakdown,
        }
