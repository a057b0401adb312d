import pytest
import numpy as np
import os
import sys

# Proje ana dizinini ekle
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inference.results import BoundingBox, Detection, DetectorConfig, OutcomeKind
from inference.strategies import BATCH_STRATEGY, DEFAULT_STRATEGIES, DetectionStrategyController

FACE = Detection(box=BoundingBox(10, 20, 100, 120), descriptor=tuple([0.1] * 128), confidence=0.92, landmarks=5)


class ScriptedEngine:
    """Strateji adina gore Detection / None / Exception donen sahte motor"""
    def __init__(self, plan):
        self.plan = plan
        self.calls = []

    def detect(self, image, config):
        self.calls.append(config.name)
        result = self.plan.get(config.name)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def image():
    return np.zeros((240, 320, 3), dtype=np.uint8)


def test_default_strategy_order():
    names = [s.name for s in DEFAULT_STRATEGIES]
    assert names == ["YuNet_High", "YuNet_Medium", "YuNet_Low", "SsdRFB"]
    assert [s.input_size for s in DEFAULT_STRATEGIES[:3]] == [416, 320, 224]
    assert [s.score_threshold for s in DEFAULT_STRATEGIES] == [0.3, 0.4, 0.5, 0.3]
    assert DEFAULT_STRATEGIES[3].family == "ssd"
    assert BATCH_STRATEGY is DEFAULT_STRATEGIES[0]


def test_first_strategy_wins(image):
    """Senaryo 1: net yuz -> ilk strateji basarili, sonrakiler denenmez"""
    engine = ScriptedEngine({"YuNet_High": FACE})
    result = DetectionStrategyController(engine).detect_with_fallback(image)

    assert result.success
    assert result.strategy == "YuNet_High"
    assert engine.calls == ["YuNet_High"]
    assert result.strategies_tried == ["YuNet_High"]
    assert result.elapsed_ms >= 0


def test_stops_at_first_success_in_order(image):
    engine = ScriptedEngine({"YuNet_Low": FACE, "SsdRFB": FACE})
    result = DetectionStrategyController(engine).detect_with_fallback(image)

    assert result.strategy == "YuNet_Low"
    assert engine.calls == ["YuNet_High", "YuNet_Medium", "YuNet_Low"]
    assert [a.kind for a in result.attempts] == [OutcomeKind.EMPTY, OutcomeKind.EMPTY, OutcomeKind.SUCCESS]


def test_transient_error_does_not_abort(image):
    engine = ScriptedEngine({"YuNet_High": RuntimeError("boom"), "YuNet_Medium": FACE})
    result = DetectionStrategyController(engine).detect_with_fallback(image)

    assert result.strategy == "YuNet_Medium"
    assert result.attempts[0].kind is OutcomeKind.TRANSIENT_ERROR
    assert result.attempts[0].error == "boom"


def test_empty_descriptor_is_not_success(image):
    no_descriptor = Detection(box=BoundingBox(0, 0, 5, 5), descriptor=(), confidence=0.9)
    engine = ScriptedEngine({"YuNet_High": no_descriptor, "SsdRFB": FACE})
    result = DetectionStrategyController(engine).detect_with_fallback(image)

    assert result.strategy == "SsdRFB"
    assert len(engine.calls) == 4


def test_all_strategies_exhausted(image):
    """Senaryo 2: yuz yok -> 4 strateji de sirayla denenir"""
    engine = ScriptedEngine({"YuNet_Medium": ValueError("bad frame")})
    result = DetectionStrategyController(engine).detect_with_fallback(image)

    assert not result.success
    assert result.detection is None
    assert result.strategy is None
    assert result.strategies_tried == [s.name for s in DEFAULT_STRATEGIES]
    assert engine.calls == result.strategies_tried


def test_custom_ordering_is_respected(image):
    custom = [
        DetectorConfig(name="b", family="yunet", input_size=160, score_threshold=0.6),
        DetectorConfig(name="a", family="ssd", score_threshold=0.2),
    ]
    engine = ScriptedEngine({})
    result = DetectionStrategyController(engine, strategies=custom).detect_with_fallback(image)
    assert result.strategies_tried == ["b", "a"]

    engine = ScriptedEngine({})
    result = DetectionStrategyController(engine).detect_with_fallback(image, strategies=custom[::-1])
    assert engine.calls == ["a", "b"]


def test_descriptor_length_stable_across_calls(image):
    engine = ScriptedEngine({"YuNet_Medium": FACE})
    controller = DetectionStrategyController(engine)
    lengths = {len(controller.detect_with_fallback(image).detection.descriptor) for _ in range(3)}
    assert lengths == {128}
