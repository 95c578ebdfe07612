"""
提供商调用指标收集

记录每次外部提供商调用的耗时、token 用量和成败，输出结构化日志，
并在内存中聚合，供 /api/health/metrics 展示。

使用示例：
    from workbench.infra.metrics import track_call

    with track_call("chat", provider="ollama", model="qwen3:14b") as tracker:
        result = await call_provider(...)
        tracker.set_tokens(input_tokens=100, output_tokens=50)
"""

import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

from workbench.infra.logging import get_request_id

logger = logging.getLogger(__name__)

# 每个 key 保留的最近耗时样本数
MAX_LATENCY_SAMPLES = 1000


@dataclass
class CallMetrics:
    """单次调用的指标"""
    call_type: str  # chat / completions / embeddings / responses / images / audio / models / health
    provider: str
    model: str | None
    start_time: float
    end_time: float | None = None
    latency_ms: float | None = None
    success: bool = True
    error: str | None = None
    status_code: int | None = None

    input_tokens: int | None = None
    output_tokens: int | None = None
    item_count: int | None = None  # embeddings 输入条数 / 生成图片数

    request_id: str | None = None

    def to_dict(self) -> dict:
        data = {
            "call_type": self.call_type,
            "provider": self.provider,
            "model": self.model,
            "latency_ms": self.latency_ms,
            "success": self.success,
        }
        for field_name in ("error", "status_code", "input_tokens", "output_tokens", "item_count", "request_id"):
            value = getattr(self, field_name)
            if value is not None:
                data[field_name] = value
        return data


class CallTracker:
    """调用追踪器上下文"""

    def __init__(self, call_type: str, provider: str, model: str | None = None):
        self.metrics = CallMetrics(
            call_type=call_type,
            provider=provider,
            model=model,
            start_time=time.perf_counter(),
            request_id=get_request_id(),
        )

    def set_tokens(self, input_tokens: int | None = None, output_tokens: int | None = None) -> None:
        self.metrics.input_tokens = input_tokens
        self.metrics.output_tokens = output_tokens

    def set_item_count(self, count: int) -> None:
        self.metrics.item_count = count

    def set_error(self, error: str, status_code: int | None = None) -> None:
        self.metrics.success = False
        self.metrics.error = error
        self.metrics.status_code = status_code

    def finish(self) -> CallMetrics:
        self.metrics.end_time = time.perf_counter()
        self.metrics.latency_ms = (self.metrics.end_time - self.metrics.start_time) * 1000
        return self.metrics


class MetricsCollector:
    """内存指标聚合"""

    def __init__(self):
        self._call_counts: dict[str, int] = defaultdict(int)
        self._call_errors: dict[str, int] = defaultdict(int)
        self._call_latencies: dict[str, list[float]] = defaultdict(list)
        self._tokens: dict[str, dict[str, int]] = defaultdict(lambda: {"input": 0, "output": 0})

    def record_call(self, metrics: CallMetrics) -> None:
        key = f"{metrics.call_type}:{metrics.provider}"
        self._call_counts[key] += 1
        if metrics.latency_ms is not None:
            samples = self._call_latencies[key]
            samples.append(metrics.latency_ms)
            if len(samples) > MAX_LATENCY_SAMPLES:
                del samples[: len(samples) - MAX_LATENCY_SAMPLES]
        if metrics.input_tokens:
            self._tokens[key]["input"] += metrics.input_tokens
        if metrics.output_tokens:
            self._tokens[key]["output"] += metrics.output_tokens

        log_data = metrics.to_dict()
        if metrics.success:
            logger.info(
                f"[{metrics.call_type.upper()}] {metrics.provider} 调用完成 "
                f"({metrics.latency_ms:.1f}ms)",
                extra={"metrics": log_data},
            )
        else:
            self._call_errors[key] += 1
            logger.warning(
                f"[{metrics.call_type.upper()}] {metrics.provider} 调用失败: {metrics.error}",
                extra={"metrics": log_data},
            )

    def get_stats(self) -> dict:
        """按 {call_type}:{provider} 聚合的调用统计"""
        calls = {}
        for key, count in self._call_counts.items():
            latencies = self._call_latencies.get(key, [])
            calls[key] = {
                "count": count,
                "errors": self._call_errors.get(key, 0),
                "avg_latency_ms": round(sum(latencies) / len(latencies), 2) if latencies else 0,
                "max_latency_ms": round(max(latencies), 2) if latencies else 0,
                "tokens": dict(self._tokens[key]) if key in self._tokens else {"input": 0, "output": 0},
            }
        return {"calls": calls}

    def reset(self) -> None:
        self.__init__()


metrics_collector = MetricsCollector()


@contextmanager
def track_call(
    call_type: str,
    provider: str,
    model: str | None = None,
) -> Generator[CallTracker, None, None]:
    """追踪外部调用的上下文管理器，异常会被记录后继续抛出"""
    tracker = CallTracker(call_type, provider, model)
    try:
        yield tracker
    except Exception as e:
        if tracker.metrics.success:
            tracker.set_error(str(e), getattr(e, "status_code", None))
        raise
    finally:
        metrics_collector.record_call(tracker.finish())
