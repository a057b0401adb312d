import os
import threading
import time

import cv2
import numpy as np
import onnxruntime as ort

from monitoring.logger import get_logger
from inference.results import BoundingBox, Detection
from inference.utils import letterbox, non_max_suppression, scale_longest_side, xyxy2xywh

logger = get_logger("FaceEngine", log_type="json")

YUNET_FILE = "face_detection_yunet_2023mar.onnx"
SFACE_FILE = "face_recognition_sface_2021dec.onnx"
SSD_FILE = "version-RFB-640.onnx"

SSD_INPUT_SHAPE = (480, 640)  # (h, w)
SSD_IOU_THRES = 0.3
YUNET_NMS_THRES = 0.3
# SSD kutusundan landmark cikarirken kullanilan kirpma payi
CROP_MARGIN = 0.25
SFACE_SIZE = 112


def load_yunet(model_path):
    if not os.path.exists(model_path):
        raise FileNotFoundError(model_path)
    return cv2.FaceDetectorYN.create(model_path, "", (320, 320), 0.5, YUNET_NMS_THRES, 5000)


def load_sface(model_path):
    if not os.path.exists(model_path):
        raise FileNotFoundError(model_path)
    return cv2.FaceRecognizerSF.create(model_path, "")


def load_ssd(model_path, device="cpu"):
    if not os.path.exists(model_path):
        raise FileNotFoundError(model_path)
    providers = ['CUDAExecutionProvider', 'CPUExecutionProvider'] if device == 'cuda' else ['CPUExecutionProvider']
    return ort.InferenceSession(model_path, providers=providers)


class FaceEngine:
    """
    Yuz tespit + embedding motoru.
    detect(image, config) -> Detection | None. Hata firlatabilir.

    OpenCV detector'u her denemede yeniden ayarlandigi icin reentrant degil;
    tum cagrilar tek bir lock ile siralanir.
    """

    def __init__(self, yunet, sface, ssd_session=None, warmup=True):
        self.yunet = yunet
        self.sface = sface
        self.ssd = ssd_session
        self.ssd_input = ssd_session.get_inputs()[0].name if ssd_session is not None else None
        self._lock = threading.Lock()

        if warmup:
            self.warmup()

    def warmup(self):
        logger.info("Warmup yapiliyor...")
        dummy = np.zeros((SSD_INPUT_SHAPE[0], SSD_INPUT_SHAPE[1], 3), dtype=np.uint8)
        try:
            with self._lock:
                self._detect_yunet(dummy, 320, 0.5)
                if self.ssd is not None:
                    self._detect_ssd(dummy, 0.5)
            logger.info("FaceEngine hazir!")
        except Exception as e:
            logger.warning(f"Warmup uyarisi: {e}")

    def detect(self, image, config):
        t0 = time.perf_counter()
        with self._lock:
            if config.family == 'yunet':
                face = self._detect_yunet(image, config.input_size or 320, config.score_threshold)
                landmarks = 5
            elif config.family == 'ssd':
                face, landmarks = self._detect_ssd(image, config.score_threshold)
            else:
                raise ValueError(f"Desteklenmeyen detector ailesi: {config.family}")

            if face is None:
                return None

            t1 = time.perf_counter()
            descriptor = self._embed(image, face, aligned=landmarks > 0)
            t2 = time.perf_counter()

        logger.debug(
            f"{config.name}: detect {(t1 - t0) * 1000:.1f}ms, embed {(t2 - t1) * 1000:.1f}ms"
        )
        return Detection(
            box=BoundingBox.from_xywh(*face[:4]),
            descriptor=tuple(float(v) for v in descriptor),
            confidence=float(face[14]) if face[14] > 0 else 0.0,
            landmarks=landmarks,
        )

    # --- YUNET ---
    def _detect_yunet(self, image, input_size, score_threshold):
        """En yuksek skorlu yuz satiri (15 deger, orijinal koordinatlarda) veya None."""
        scaled, scale = scale_longest_side(image, input_size)
        h, w = scaled.shape[:2]
        self.yunet.setInputSize((w, h))
        self.yunet.setScoreThreshold(score_threshold)

        _, faces = self.yunet.detect(scaled)
        if faces is None or len(faces) == 0:
            return None

        best = faces[int(np.argmax(faces[:, 14]))].astype(np.float32).copy()
        # Kutu + 5 landmark orijinal olcege
        best[:14] /= scale
        return best

    # --- SSD (onnxruntime) ---
    def _detect_ssd(self, image, score_threshold):
        if self.ssd is None:
            raise RuntimeError("SSD modeli yuklu degil")

        blob, ratio, (dw, dh) = letterbox(image, new_shape=SSD_INPUT_SHAPE)
        blob = cv2.cvtColor(blob, cv2.COLOR_BGR2RGB).astype(np.float32)
        blob = (blob - 127.0) / 128.0
        blob = np.expand_dims(blob.transpose((2, 0, 1)), axis=0)

        scores, boxes = self.ssd.run(None, {self.ssd_input: blob})
        scores, boxes = scores[0][:, 1], boxes[0]

        mask = scores > score_threshold
        if not mask.any():
            return None, 0
        scores, boxes = scores[mask], boxes[mask]

        # Normalize xyxy -> letterbox piksel -> orijinal piksel
        boxes = boxes * np.array([SSD_INPUT_SHAPE[1], SSD_INPUT_SHAPE[0]] * 2, dtype=np.float32)
        boxes -= np.array([dw, dh, dw, dh], dtype=np.float32)
        boxes /= ratio

        keep = non_max_suppression(boxes, scores, conf_thres=score_threshold, iou_thres=SSD_IOU_THRES)
        if not keep:
            return None, 0

        best = keep[0]
        face = np.zeros(15, dtype=np.float32)
        face[:4] = xyxy2xywh(boxes[best])
        face[14] = scores[best]

        landmarks = self._refine_landmarks(image, face, score_threshold)
        if landmarks is not None:
            face[4:14] = landmarks
            return face, 5
        return face, 0

    def _refine_landmarks(self, image, face, score_threshold):
        """SSD kutusunun etrafindan kirpip YuNet ile 5 landmark bul."""
        x, y, w, h = face[:4]
        img_h, img_w = image.shape[:2]
        x1 = int(max(0, x - w * CROP_MARGIN))
        y1 = int(max(0, y - h * CROP_MARGIN))
        x2 = int(min(img_w, x + w * (1 + CROP_MARGIN)))
        y2 = int(min(img_h, y + h * (1 + CROP_MARGIN)))
        if x2 - x1 < 2 or y2 - y1 < 2:
            return None

        crop = image[y1:y2, x1:x2]
        row = self._detect_yunet(crop, min(320, max(crop.shape[:2])), score_threshold)
        if row is None:
            return None

        points = row[4:14].copy()
        points[0::2] += x1
        points[1::2] += y1
        return points

    # --- SFACE ---
    def _embed(self, image, face, aligned=True):
        if aligned:
            crop = self.sface.alignCrop(image, face)
        else:
            # Landmark yok: kutuyu dogrudan 112x112'ye olcekle
            x, y, w, h = [int(round(v)) for v in face[:4]]
            x, y = max(0, x), max(0, y)
            crop = image[y:y + max(1, h), x:x + max(1, w)]
            crop = cv2.resize(crop, (SFACE_SIZE, SFACE_SIZE))
        feature = self.sface.feature(crop)
        return np.asarray(feature, dtype=np.float32).reshape(-1)

    def unload(self):
        with self._lock:
            self.yunet = None
            self.sface = None
            self.ssd = None
        logger.info("FaceEngine bellekten kaldirildi")
