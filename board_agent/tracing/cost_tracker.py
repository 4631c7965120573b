import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

# Pricing per token by model
MODEL_PRICING = {
    # OpenAI, fast bucket
    "gpt-4o": {"input": 2.50 / 1_000_000, "output": 10.00 / 1_000_000},
    # Anthropic, creative bucket
    "claude-sonnet-4-6": {"input": 3.00 / 1_000_000, "output": 15.00 / 1_000_000},
    # Refused before reaching a model
    "filtered": {"input": 0.0, "output": 0.0},
}


@dataclass
class CostRecord:
    timestamp: str
    model: str
    task_kind: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    trace_id: str
    operation: str


@dataclass
class CostTracker:
    records: deque = field(default_factory=lambda: deque(maxlen=10000))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(
        self,
        model: str,
        task_kind: str,
        input_tokens: int,
        output_tokens: int,
        trace_id: str,
        operation: str,
    ) -> float:
        pricing = MODEL_PRICING.get(model, {"input": 0, "output": 0})
        cost = input_tokens * pricing["input"] + output_tokens * pricing["output"]
        with self._lock:
            self.records.append(
                CostRecord(
                    timestamp=datetime.now(timezone.utc).isoformat(),
                    model=model,
                    task_kind=task_kind,
                    input_tokens=input_tokens,
                    output_tokens=output_tokens,
                    cost_usd=cost,
                    trace_id=trace_id,
                    operation=operation,
                )
            )
        return cost

    def get_summary(self) -> dict:
        with self._lock:
            records = list(self.records)

        by_operation: dict[str, dict] = {}
        by_model: dict[str, dict] = {}
        by_kind: dict[str, int] = {}
        for r in records:
            op = by_operation.setdefault(r.operation, {"count": 0, "cost_usd": 0.0, "tokens": 0})
            op["count"] += 1
            op["cost_usd"] += r.cost_usd
            op["tokens"] += r.input_tokens + r.output_tokens

            m = by_model.setdefault(r.model, {"count": 0, "cost_usd": 0.0, "input_tokens": 0, "output_tokens": 0})
            m["count"] += 1
            m["cost_usd"] += r.cost_usd
            m["input_tokens"] += r.input_tokens
            m["output_tokens"] += r.output_tokens

            by_kind[r.task_kind] = by_kind.get(r.task_kind, 0) + 1

        return {
            "total_cost_usd": round(sum(r.cost_usd for r in records), 6),
            "total_input_tokens": sum(r.input_tokens for r in records),
            "total_output_tokens": sum(r.output_tokens for r in records),
            "total_requests": len(records),
            "by_operation": by_operation,
            "by_model": by_model,
            "by_task_kind": by_kind,
            "recent": [
                {
                    "timestamp": r.timestamp,
                    "model": r.model,
                    "task_kind": r.task_kind,
                    "input_tokens": r.input_tokens,
                    "output_tokens": r.output_tokens,
                    "cost_usd": round(r.cost_usd, 6),
                    "operation": r.operation,
                }
                for r in records[-20:]
            ],
        }

    def reset(self) -> None:
        with self._lock:
            self.records.clear()


# Singleton instance
cost_tracker = CostTracker()
