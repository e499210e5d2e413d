"""Latency and load benchmark for the embedding endpoint.

Runs against a running local server (``python -m app.main``) or any deployed
function URL that accepts ``{"text": ..., "size": ...}``.
"""

import asyncio
import json
import time
from typing import Any, Dict, List

import httpx
import numpy as np
import structlog

logger = structlog.get_logger("benchmark")

MEDIUM_TEXT = (
    "Rust on AWS Lambda provides excellent performance for machine learning workloads. "
    "The combination of Rust's zero-cost abstractions and AWS Lambda's serverless architecture "
    "creates a powerful platform for deploying ML models. This text is designed to test "
    "medium-length input processing and tokenization performance."
)

LONG_TEXT = (
    "Rust on AWS Lambda provides excellent performance for machine learning workloads. "
    "The combination of Rust's zero-cost abstractions and AWS Lambda's serverless architecture "
    "creates a powerful platform for deploying ML models. ONNX Runtime enables efficient inference "
    "with optimized operators for ARM64 Graviton processors. Matryoshka representation learning "
    "allows flexible embedding dimensions, supporting 128, 256, 512, and 768-dimensional vectors "
    "from a single model. The quantized model reduces memory footprint while maintaining high "
    "accuracy. Mean pooling over token embeddings creates document-level representations. "
    "L2 normalization enables efficient cosine similarity computation through dot products. "
    "This longer text tests the system's ability to handle more complex tokenization and "
    "inference scenarios with hundreds of tokens."
)

SCENARIOS = [
    {"name": "short_256", "payload": {"text": "Rust on AWS Lambda is fast", "size": 256}},
    {"name": "medium_256", "payload": {"text": MEDIUM_TEXT, "size": 256}},
    {"name": "long_768", "payload": {"text": LONG_TEXT, "size": 768}},
    {"name": "long_128", "payload": {"text": LONG_TEXT, "size": 128}},
]


def summarize(response_times: List[float]) -> Dict[str, float]:
    """Latency percentiles in milliseconds."""
    return {
        "mean_ms": float(np.mean(response_times)),
        "median_ms": float(np.median(response_times)),
        "p95_ms": float(np.percentile(response_times, 95)),
        "p99_ms": float(np.percentile(response_times, 99)),
        "min_ms": float(np.min(response_times)),
        "max_ms": float(np.max(response_times)),
    }


class EmbeddingBenchmark:
    """Sequential latency runs and a concurrent load test for one endpoint."""

    def __init__(self, url: str, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout
        self.results: Dict[str, Any] = {}

    async def run_latency(self, runs: int = 5) -> Dict[str, Any]:
        """Send each scenario ``runs`` times, one request at a time."""
        results = {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for scenario in SCENARIOS:
                response_times = []
                failures = 0
                for i in range(runs):
                    request_start = time.perf_counter()
                    response = await client.post(self.url, json=scenario["payload"])
                    response_time = (time.perf_counter() - request_start) * 1000

                    if response.status_code != 200:
                        failures += 1
                        logger.warning(
                            "Request failed",
                            scenario=scenario["name"],
                            status_code=response.status_code,
                            body=response.text[:200],
                        )
                        continue

                    body = response.json()
                    if body.get("dimensions") != scenario["payload"]["size"]:
                        failures += 1
                        logger.warning("Unexpected dimensions", scenario=scenario["name"], got=body.get("dimensions"))
                        continue

                    response_times.append(response_time)
                    logger.debug("Run completed", scenario=scenario["name"], run=i + 1, ms=response_time)

                result = {"runs": runs, "failed_requests": failures}
                if response_times:
                    result["response_times"] = summarize(response_times)
                results[scenario["name"]] = result
                logger.info("Scenario completed", scenario=scenario["name"], **result)

        self.results["latency"] = results
        return results

    async def run_load_test(
        self,
        payload: Dict[str, Any],
        concurrent_users: int = 10,
        duration_seconds: int = 30,
    ) -> Dict[str, Any]:
        """Keep ``concurrent_users`` requests in flight for ``duration_seconds``."""
        logger.info("Starting load test", concurrent_users=concurrent_users, duration_seconds=duration_seconds)

        response_times: List[float] = []
        error_count = 0
        end_time = time.time() + duration_seconds

        async def user(client: httpx.AsyncClient):
            nonlocal error_count
            while time.time() < end_time:
                request_start = time.perf_counter()
                try:
                    response = await client.post(self.url, json=payload)
                except httpx.HTTPError as e:
                    error_count += 1
                    logger.debug("Request failed", error=str(e))
                    continue
                if response.status_code == 200:
                    response_times.append((time.perf_counter() - request_start) * 1000)
                else:
                    error_count += 1

        start_time = time.time()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            await asyncio.gather(*(user(client) for _ in range(concurrent_users)))
        duration = time.time() - start_time

        total_requests = len(response_times) + error_count
        results = {
            "duration_seconds": duration,
            "total_requests": total_requests,
            "successful_requests": len(response_times),
            "failed_requests": error_count,
            "error_rate": (error_count / total_requests) * 100 if total_requests > 0 else 0,
            "throughput_rps": total_requests / duration if duration > 0 else 0,
            "concurrent_users": concurrent_users,
        }
        if response_times:
            results["response_times"] = summarize(response_times)

        logger.info("Load test completed", **results)
        self.results["load"] = results
        return results

    def save_results(self, output_path: str = "benchmark_results.json"):
        """Save benchmark results to file."""
        with open(output_path, "w") as f:
            json.dump(self.results, f, indent=2, default=str)

        logger.info("Benchmark results saved", path=output_path)

    def generate_report(self) -> str:
        """Generate human-readable benchmark report."""
        if not self.results:
            return "No benchmark results available"

        report_lines = [
            "# Embedding Benchmark Report",
            f"Endpoint: {self.url}",
            "",
            "## Latency",
        ]

        for name, result in self.results.get("latency", {}).items():
            times = result.get("response_times")
            if times:
                report_lines.append(
                    f"- {name}: mean {times['mean_ms']:.1f}ms, p95 {times['p95_ms']:.1f}ms "
                    f"({result['failed_requests']} failed)"
                )
            else:
                report_lines.append(f"- {name}: all {result['runs']} runs failed")

        load = self.results.get("load")
        if load:
            report_lines.extend([
                "",
                "## Load",
                f"- Users: {load['concurrent_users']}",
                f"- Throughput: {load['throughput_rps']:.2f} rps",
                f"- Error rate: {load['error_rate']:.2f}%",
            ])
            if "response_times" in load:
                report_lines.append(f"- p95: {load['response_times']['p95_ms']:.1f}ms")

        return "\n".join(report_lines)


async def run_benchmark(url: str, runs: int, users: int, duration: int) -> Dict[str, Any]:
    benchmark = EmbeddingBenchmark(url)
    await benchmark.run_latency(runs)
    if users > 0 and duration > 0:
        await benchmark.run_load_test(SCENARIOS[1]["payload"], users, duration)

    benchmark.save_results("performance/benchmark_results.json")
    print(benchmark.generate_report())
    return benchmark.results


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Embedding Benchmark")
    parser.add_argument("--url", default="http://localhost:9006/api/v1/embed")
    parser.add_argument("--runs", type=int, default=5, help="Sequential runs per scenario")
    parser.add_argument("--users", type=int, default=10, help="Concurrent users for the load test, 0 to skip")
    parser.add_argument("--duration", type=int, default=30, help="Load test duration in seconds")

    args = parser.parse_args()

    asyncio.run(run_benchmark(args.url, args.runs, args.users, args.duration))
