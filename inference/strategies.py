import time

from monitoring.logger import get_logger
from inference.results import AttemptOutcome, DetectorConfig, OutcomeKind, StrategyResult

logger = get_logger("Strategies", log_type="json")

# Oncelik sirasi: en buyuk giris / en dusuk esik once (yuksek recall, yavas),
# basarisiz olursa daha ucuz ayarlara, en son alternatif SSD ailesine dus.
DEFAULT_STRATEGIES = (
    DetectorConfig(name="YuNet_High", family="yunet", input_size=416, score_threshold=0.3),
    DetectorConfig(name="YuNet_Medium", family="yunet", input_size=320, score_threshold=0.4),
    DetectorConfig(name="YuNet_Low", family="yunet", input_size=224, score_threshold=0.5),
    DetectorConfig(name="SsdRFB", family="ssd", score_threshold=0.3),
)

# Batch endpoint'i tek ve sabit bir ayar kullanir
BATCH_STRATEGY = DEFAULT_STRATEGIES[0]


def _elapsed_ms(start):
    return max(0, int(round((time.perf_counter() - start) * 1000)))


class DetectionStrategyController:
    """
    Stratejileri sirayla dener, ilk gecerli descriptor'da durur.
    Denemeler paralel degil: "ilk basari kazanir" kurali sira gerektirir.
    """

    def __init__(self, engine, strategies=DEFAULT_STRATEGIES):
        self.engine = engine
        self.strategies = tuple(strategies)

    def attempt(self, image, config):
        """Tek deneme. Asla exception firlatmaz, her zaman AttemptOutcome doner."""
        try:
            detection = self.engine.detect(image, config)
        except Exception as e:
            logger.warning(f"Detection failed with {config.name}: {e}")
            return AttemptOutcome.failed(config.name, e)

        if detection is not None and detection.is_valid:
            return AttemptOutcome.success(config.name, detection)
        return AttemptOutcome.empty(config.name)

    def detect_with_fallback(self, image, strategies=None):
        strategies = self.strategies if strategies is None else tuple(strategies)
        start = time.perf_counter()
        attempts = []

        for config in strategies:
            attempt_start = time.perf_counter()
            outcome = self.attempt(image, config)
            attempts.append(outcome)

            if outcome.kind is OutcomeKind.SUCCESS:
                logger.info(
                    f"Detection successful with {config.name} in {_elapsed_ms(attempt_start)}ms",
                    extra={"strategy": config.name},
                )
                return StrategyResult(
                    detection=outcome.detection,
                    strategy=config.name,
                    strategies_tried=[a.strategy for a in attempts],
                    attempts=attempts,
                    elapsed_ms=_elapsed_ms(start),
                )

        # Hicbir strateji yuz bulamadi
        return StrategyResult(
            detection=None,
            strategy=None,
            strategies_tried=[a.strategy for a in attempts],
            attempts=attempts,
            elapsed_ms=_elapsed_ms(start),
        )
