import os
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

from monitoring.logger import get_logger
from inference.detector import FaceEngine, SFACE_FILE, SSD_FILE, YUNET_FILE, load_sface, load_ssd, load_yunet
from inference.errors import ModelLoadError

logger = get_logger("ModelRegistry", log_type="json")


@dataclass(frozen=True)
class ReadinessSnapshot:
    """Startup'ta bir kez yazilir, sonra request handler'lar sadece okur."""
    ready: bool = False
    progress: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    model_names: Tuple[str, ...] = ()
    load_time_ms: int = 0


class ModelRegistry:
    """
    Modelleri sirayla diskten yukler, ilerlemeyi kaydeder.
    Ilk hatada ModelLoadError firlatir (startup iptal).
    """

    def __init__(self, models_dir="./models", device="cpu", warmup=True):
        self.models_dir = models_dir
        self.device = device
        self.warmup = warmup
        self.progress = {}
        self.loaders = [
            ("YuNet", lambda: load_yunet(os.path.join(self.models_dir, YUNET_FILE))),
            ("SFace", lambda: load_sface(os.path.join(self.models_dir, SFACE_FILE))),
            ("SsdRFB", lambda: load_ssd(os.path.join(self.models_dir, SSD_FILE), device=self.device)),
        ]

    def load(self):
        """Requirement: modeller sunucu istek almadan once bir kez yuklenir."""
        logger.info(f"Modeller yukleniyor: {self.models_dir}")
        start = time.perf_counter()
        loaded = {}

        for name, loader in self.loaders:
            logger.info(f"Loading {name}...")
            try:
                loaded[name] = loader()
            except Exception as e:
                self.progress[name] = "failed"
                logger.error(f"Failed to load {name}: {e}")
                raise ModelLoadError(name, e) from e
            self.progress[name] = "loaded"
            logger.info(f"{name} loaded successfully")

        engine = FaceEngine(loaded["YuNet"], loaded["SFace"], loaded["SsdRFB"], warmup=self.warmup)
        load_time_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"All models loaded successfully in {load_time_ms}ms")
        return engine, self.snapshot(ready=True, load_time_ms=load_time_ms)

    def snapshot(self, ready=False, load_time_ms=0):
        progress = MappingProxyType(dict(self.progress))
        return ReadinessSnapshot(
            ready=ready,
            progress=progress,
            model_names=tuple(progress.keys()),
            load_time_ms=load_time_ms,
        )
