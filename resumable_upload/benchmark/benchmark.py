import os
import shutil
import tempfile
import time
import json
from pathlib import Path
from typing import List, Sequence
from dataclasses import dataclass, asdict
import logging

import psutil

from ..client.client import UploadClient
from ..server.server import UploadServer
from ..storage.memory import InMemoryStorageAdapter
from ..upload.config import MB, UploadConfig
from ..upload.service import ChunkedUploadService

logger = logging.getLogger(__name__)

DEFAULT_PAYLOAD_SIZES = (1 * MB, 8 * MB, 32 * MB)


@dataclass
class BenchmarkResult:
    """Single benchmark result"""
    payload_size: int
    chunk_size: int
    iterations: int
    avg_upload_ms: float
    min_upload_ms: float
    max_upload_ms: float
    throughput_mb_s: float
    avg_chunk_ms: float
    max_chunk_ms: float
    cpu_usage_avg: float
    cpu_usage_max: float
    memory_mb_avg: float
    memory_mb_max: float
    timestamp: float


class Benchmarker:
    """
    Loopback upload benchmarks
    Runs the real server and client in-process against in-memory storage
    """

    def __init__(self, output_dir: Path, chunk_size: int = 1 * MB):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.chunk_size = chunk_size
        self.results: List[BenchmarkResult] = []

        # Process for resource monitoring
        self.process = psutil.Process()

    async def test_payload(self, payload_size: int, iterations: int = 5) -> BenchmarkResult:
        """Upload a random payload of payload_size bytes iterations times"""
        logger.info(f"Benchmarking {payload_size / MB:.1f} MB uploads, {iterations} iterations")

        work_dir = Path(tempfile.mkdtemp(prefix="upload-bench-"))
        config = UploadConfig(
            max_file_size=max(payload_size, 1),
            chunk_size=self.chunk_size,
            max_chunk_size=self.chunk_size,
            temp_dir=work_dir / "chunks"
        )
        service = ChunkedUploadService(InMemoryStorageAdapter(), config)
        server = UploadServer('127.0.0.1', 0, service)
        await server.start()

        upload_times = []
        chunk_times = []
        cpu_usages = []
        memory_usages = []

        last_tick = [0.0]

        def on_progress(percent: float):
            now = time.perf_counter()
            chunk_times.append((now - last_tick[0]) * 1000)
            last_tick[0] = now

        payload_file = work_dir / "payload.bin"
        payload_file.write_bytes(os.urandom(payload_size))

        try:
            async with UploadClient('127.0.0.1', server.port, on_progress=on_progress) as client:
                for i in range(iterations):
                    cpu_before = self.process.cpu_percent()
                    mem_before = self.process.memory_info().rss / 1024 / 1024

                    start = time.perf_counter()
                    last_tick[0] = start
                    await client.upload_file(payload_file)
                    upload_times.append((time.perf_counter() - start) * 1000)

                    cpu_after = self.process.cpu_percent()
                    mem_after = self.process.memory_info().rss / 1024 / 1024
                    cpu_usages.append((cpu_before + cpu_after) / 2)
                    memory_usages.append(mem_after - mem_before)
        finally:
            await server.stop()
            shutil.rmtree(work_dir, ignore_errors=True)

        avg_upload_ms = sum(upload_times) / len(upload_times)
        result = BenchmarkResult(
            payload_size=payload_size,
            chunk_size=self.chunk_size,
            iterations=iterations,
            avg_upload_ms=avg_upload_ms,
            min_upload_ms=min(upload_times),
            max_upload_ms=max(upload_times),
            throughput_mb_s=(payload_size / MB) / (avg_upload_ms / 1000) if avg_upload_ms else 0.0,
            avg_chunk_ms=sum(chunk_times) / len(chunk_times) if chunk_times else 0.0,
            max_chunk_ms=max(chunk_times) if chunk_times else 0.0,
            cpu_usage_avg=sum(cpu_usages) / len(cpu_usages),
            cpu_usage_max=max(cpu_usages),
            memory_mb_avg=sum(memory_usages) / len(memory_usages),
            memory_mb_max=max(memory_usages),
            timestamp=time.time()
        )

        logger.info(
            f"{payload_size / MB:.1f} MB: {result.throughput_mb_s:.2f} MB/s, "
            f"avg chunk {result.avg_chunk_ms:.2f} ms"
        )
        self.results.append(result)
        return result

    async def test_all_sizes(self, sizes: Sequence[int] = DEFAULT_PAYLOAD_SIZES,
                             iterations: int = 5):
        """Benchmark every payload size in turn"""
        for count, size in enumerate(sizes, 1):
            logger.info(f"Progress: {count}/{len(sizes)}")
            try:
                await self.test_payload(size, iterations=iterations)
            except Exception as e:
                logger.error(f"Failed to benchmark {size} byte payload: {e}")

        logger.info(f"Completed {len(self.results)} benchmarks")

    def save_results(self):
        """Save benchmark results to JSON and CSV"""
        timestamp = int(time.time())

        json_file = self.output_dir / f"benchmark_{timestamp}.json"
        with open(json_file, 'w') as f:
            json.dump([asdict(r) for r in self.results], f, indent=2)
        logger.info(f"Saved results to {json_file}")

        csv_file = self.output_dir / f"benchmark_{timestamp}.csv"
        with open(csv_file, 'w') as f:
            if self.results:
                fields = asdict(self.results[0]).keys()
                f.write(','.join(fields) + '\n')
                for result in self.results:
                    values = [str(v) for v in asdict(result).values()]
                    f.write(','.join(values) + '\n')

        logger.info(f"Saved CSV to {csv_file}")

    def generate_report(self):
        """Plot throughput and resource usage per payload size"""
        if not self.results:
            logger.warning("No results to generate report")
            return

        try:
            import matplotlib.pyplot as plt
            import pandas as pd
        except ImportError:
            logger.warning("matplotlib/pandas not installed, skipping visualization")
            return

        df = pd.DataFrame([asdict(r) for r in self.results])
        df['payload_mb'] = df['payload_size'] / MB

        fig, axes = plt.subplots(1, 3, figsize=(18, 6))
        fig.suptitle('Chunked Upload Benchmarks', fontsize=16, fontweight='bold')

        ax = axes[0]
        df.plot(x='payload_mb', y='throughput_mb_s', kind='bar', ax=ax, legend=False)
        ax.set_title('Throughput')
        ax.set_xlabel('Payload (MB)')
        ax.set_ylabel('MB/s')

        ax = axes[1]
        df.plot(x='payload_mb', y=['avg_chunk_ms', 'max_chunk_ms'], kind='bar', ax=ax)
        ax.set_title('Chunk Latency')
        ax.set_xlabel('Payload (MB)')
        ax.set_ylabel('Time (ms)')

        ax = axes[2]
        df.plot(x='payload_mb', y=['memory_mb_avg', 'memory_mb_max'], kind='bar', ax=ax)
        ax.set_title('Memory Growth')
        ax.set_xlabel('Payload (MB)')
        ax.set_ylabel('Memory (MB)')

        plt.tight_layout()

        plot_file = self.output_dir / f"benchmark_plot_{int(time.time())}.png"
        plt.savefig(plot_file, dpi=150, bbox_inches='tight')
        logger.info(f"Saved plot to {plot_file}")
        plt.close()
