import time

from monitoring.logger import get_logger
from inference.results import BatchItemResult, BatchSummary
from inference.strategies import BATCH_STRATEGY
from inference.utils import decode_base64_image

logger = get_logger("BatchRunner", log_type="json")


def _ms_since(start):
    return max(0, int(round((time.perf_counter() - start) * 1000)))


class BatchRunner:
    """
    Tek bir sabit ayarla bir dizi resmi sirayla isler.
    Bir item'in hatasi batch'i durdurmaz; her item icin bir sonuc uretilir.

    Not: item'lar sirali islenir (engine reentrant degil). Worker pool ile
    paralellestirme, index/sonuc eslesmesi korunmak sartiyla eklenebilir.
    """

    def __init__(self, engine, config=BATCH_STRATEGY, progress_every=10, on_progress=None):
        self.engine = engine
        self.config = config
        self.progress_every = progress_every
        self.on_progress = on_progress

    def run_item(self, index, payload, config):
        start = time.perf_counter()
        try:
            image = decode_base64_image(payload)
            detection = self.engine.detect(image, config)
        except Exception as e:
            logger.warning(f"Batch item {index} failed: {e}")
            return BatchItemResult(index=index, success=False, elapsed_ms=_ms_since(start), error=str(e))

        if detection is None or not detection.is_valid:
            return BatchItemResult(index=index, success=False, elapsed_ms=_ms_since(start), error="No face detected")

        return BatchItemResult(
            index=index,
            success=True,
            elapsed_ms=_ms_since(start),
            embedding=list(detection.descriptor),
            confidence=detection.confidence,
        )

    def run_batch(self, images, config=None):
        config = config or self.config
        total = len(images)
        logger.info(f"Starting batch processing of {total} images")

        start = time.perf_counter()
        results = []
        for i, payload in enumerate(images):
            results.append(self.run_item(i, payload, config))

            if self.progress_every and (i + 1) % self.progress_every == 0:
                self._notify(i + 1, total)

        # Son durum bildirilmediyse
        if total and (not self.progress_every or total % self.progress_every != 0):
            self._notify(total, total)

        summary = BatchSummary.from_results(results, _ms_since(start))
        logger.info(
            f"Batch processing complete: {summary.successful}/{summary.total} successful in {summary.total_time_ms}ms"
        )
        return results, summary

    def _notify(self, processed, total):
        if self.on_progress is None:
            return
        try:
            self.on_progress(processed, total)
        except Exception as e:
            logger.warning(f"Progress callback hatasi: {e}")
