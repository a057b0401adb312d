import pytest
import base64
import cv2
import numpy as np
import os
import sys

# Proje ana dizinini ekle
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inference.batch import BatchRunner
from inference.results import BatchSummary, BoundingBox, Detection
from inference.strategies import BATCH_STRATEGY


def encode(value):
    img = np.full((64, 64, 3), value, dtype=np.uint8)
    ok, buf = cv2.imencode(".png", img)
    assert ok
    return base64.b64encode(buf.tobytes()).decode("ascii")


class BrightnessEngine:
    """Parlak resim -> yuz var, siyah -> yok, gri -> hata"""
    def __init__(self):
        self.configs = []

    def detect(self, image, config):
        self.configs.append(config.name)
        level = int(image.mean())
        if level == 128:
            raise RuntimeError("inference crashed")
        if level < 10:
            return None
        return Detection(box=BoundingBox(1, 2, 30, 30), descriptor=tuple([0.5] * 128), confidence=0.8, landmarks=5)


def test_batch_invariants():
    images = [encode(255), encode(0), encode(128), encode(200)]
    results, summary = BatchRunner(BrightnessEngine()).run_batch(images)

    assert len(results) == len(images)
    assert [r.index for r in results] == list(range(len(images)))
    assert summary.total == 4
    assert summary.successful == 2
    assert summary.failed == 2
    assert summary.successful + summary.failed == summary.total
    assert all(r.elapsed_ms >= 0 for r in results)

    assert results[1].error == "No face detected"
    assert results[2].error == "inference crashed"
    assert results[0].embedding is not None and len(results[0].embedding) == 128
    assert results[0].confidence == 0.8


def test_malformed_item_is_isolated():
    """Senaryo 4: 3 resimlik batch, 2. resim bozuk"""
    engine = BrightnessEngine()
    images = [encode(255), "this is not base64!!", encode(255)]
    results, summary = BatchRunner(engine).run_batch(images)

    assert len(results) == 3
    assert results[0].success and results[2].success
    assert not results[1].success
    assert results[1].error
    assert results[1].embedding is None
    # Bozuk item motora hic ulasmaz
    assert len(engine.configs) == 2


def test_non_string_item_fails_alone():
    results, summary = BatchRunner(BrightnessEngine()).run_batch([123, encode(255)])
    assert not results[0].success
    assert results[1].success
    assert summary.failed == 1


def test_empty_batch():
    results, summary = BatchRunner(BrightnessEngine()).run_batch([])
    assert results == []
    assert (summary.total, summary.successful, summary.failed) == (0, 0, 0)
    assert summary.average_time_ms == 0


def test_single_fixed_config_is_used():
    engine = BrightnessEngine()
    BatchRunner(engine).run_batch([encode(0), encode(0), encode(255)])
    assert engine.configs == [BATCH_STRATEGY.name] * 3


def test_progress_callback_cadence():
    calls = []
    runner = BatchRunner(BrightnessEngine(), progress_every=2, on_progress=lambda done, total: calls.append((done, total)))
    runner.run_batch([encode(255)] * 5)
    assert calls == [(2, 5), (4, 5), (5, 5)]


def test_progress_callback_error_is_ignored():
    def broken(done, total):
        raise RuntimeError("observer down")

    results, summary = BatchRunner(BrightnessEngine(), progress_every=1, on_progress=broken).run_batch([encode(255)] * 2)
    assert summary.successful == 2


def test_summary_average_rounding():
    summary = BatchSummary.from_results([], 0)
    assert summary.average_time_ms == 0

    results, _ = BatchRunner(BrightnessEngine()).run_batch([encode(255)] * 3)
    summary = BatchSummary.from_results(results, 10)
    assert summary.average_time_ms == 3
    assert summary.total_time_ms == 10
