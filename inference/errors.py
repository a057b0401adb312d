class FaceServiceError(Exception):
    """Servis hatalarinin ortak tabani."""


class NotReadyError(FaceServiceError):
    """Modeller henuz yuklenmedi (HTTP 503)."""

    def __init__(self, progress=None, message="Models not loaded yet"):
        super().__init__(message)
        self.progress = dict(progress or {})


class BadInputError(FaceServiceError):
    """Bozuk base64 / resim veya eksik alan (HTTP 400)."""


class ModelLoadError(FaceServiceError):
    """Startup sirasinda model yuklenemedi. Sunucu baslamaz."""

    def __init__(self, model_name, reason):
        super().__init__(f"{model_name} yuklenemedi: {reason}")
        self.model_name = model_name
