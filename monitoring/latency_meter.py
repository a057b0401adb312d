import time
import threading
import collections
import numpy as np


class LatencyMeter:
    def __init__(self, buffer_len=100):
        """
        buffer_len: Endpoint basina son kaç ölçüm tutulacak
        """
        self.buffer_len = buffer_len
        self.latencies = collections.defaultdict(lambda: collections.deque(maxlen=buffer_len))
        self.counts = collections.Counter()
        self.started_at = time.time()
        self._lock = threading.Lock()

    def record(self, endpoint, duration_ms):
        with self._lock:
            self.latencies[endpoint].append(max(0.0, float(duration_ms)))
            self.counts[endpoint] += 1

    def get_latency_stats(self, endpoint):
        with self._lock:
            samples = list(self.latencies.get(endpoint, ()))
            count = self.counts.get(endpoint, 0)

        if not samples:
            return {"count": count, "p50": 0, "p90": 0, "p95": 0}

        arr = np.array(samples)
        return {
            "count": count,
            "p50": round(float(np.percentile(arr, 50)), 2),
            "p90": round(float(np.percentile(arr, 90)), 2),
            "p95": round(float(np.percentile(arr, 95)), 2)
        }

    def get_throughput(self):
        """Başlangıçtan beri saniyedeki ortalama istek sayısı"""
        elapsed = time.time() - self.started_at
        if elapsed <= 0:
            return 0.0
        return round(sum(self.counts.values()) / elapsed, 3)

    def snapshot(self):
        with self._lock:
            endpoints = list(self.latencies.keys())
        return {
            "endpoints": {name: self.get_latency_stats(name) for name in endpoints},
            "requestsPerSecond": self.get_throughput(),
        }
