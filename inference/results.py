from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class DetectorConfig:
    """Tek bir tespit denemesinin ayarlari (strateji)."""
    name: str
    family: str                      # 'yunet' | 'ssd'
    input_size: Optional[int] = None  # SSD sabit girisli
    score_threshold: float = 0.5


@dataclass(frozen=True)
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_xywh(cls, x, y, w, h):
        return cls(int(round(x)), int(round(y)), int(round(w)), int(round(h)))


@dataclass(frozen=True)
class Detection:
    box: BoundingBox
    descriptor: Tuple[float, ...] = ()
    confidence: float = 0.0
    landmarks: int = 0

    @property
    def is_valid(self):
        return self.descriptor is not None and len(self.descriptor) > 0


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class AttemptOutcome:
    kind: OutcomeKind
    strategy: str
    detection: Optional[Detection] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, strategy, detection):
        return cls(OutcomeKind.SUCCESS, strategy, detection=detection)

    @classmethod
    def empty(cls, strategy):
        return cls(OutcomeKind.EMPTY, strategy)

    @classmethod
    def failed(cls, strategy, error):
        return cls(OutcomeKind.TRANSIENT_ERROR, strategy, error=str(error))


@dataclass
class StrategyResult:
    """Fallback dongusunun sonucu + metadata."""
    detection: Optional[Detection]
    strategy: Optional[str]
    strategies_tried: List[str]
    attempts: List[AttemptOutcome]
    elapsed_ms: int

    @property
    def success(self):
        return self.detection is not None


@dataclass
class BatchItemResult:
    index: int
    success: bool
    elapsed_ms: int = 0
    embedding: Optional[List[float]] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


@dataclass
class BatchSummary:
    total: int
    successful: int
    failed: int
    total_time_ms: int
    average_time_ms: int

    @classmethod
    def from_results(cls, results, total_time_ms):
        total = len(results)
        successful = sum(1 for r in results if r.success)
        # Bos batch: ortalama 0 (sifira bolme yok)
        average = int(round(total_time_ms / total)) if total else 0
        return cls(
            total=total,
            successful=successful,
            failed=total - successful,
            total_time_ms=int(total_time_ms),
            average_time_ms=average,
        )

