import base64
import binascii

import cv2
import numpy as np

from inference.errors import BadInputError


def decode_base64_image(payload):
    """
    base64 string -> BGR numpy array.
    'data:image/...;base64,' on eki kabul edilir. Hatali girdide BadInputError.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise BadInputError("Invalid image format or corrupted base64 data")

    data = payload.strip()
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise BadInputError("Invalid image format or corrupted base64 data")

    img = cv2.imdecode(np.frombuffer(raw, np.uint8), cv2.IMREAD_COLOR)
    if img is None:
        raise BadInputError("Invalid image format or corrupted base64 data")
    return img


def letterbox(im, new_shape=(480, 640), color=(0, 0, 0), scaleup=True):
    """
    Aspect ratio'yu koruyarak yeniden boyutlandir + padding.
    new_shape: (h, w). Donus: (img, ratio, (dw, dh))
    """
    shape = im.shape[:2]
    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    r = min(new_shape[0] / shape[0], new_shape[1] / shape[1])
    if not scaleup:
        r = min(r, 1.0)

    new_unpad = int(round(shape[1] * r)), int(round(shape[0] * r))
    dw, dh = (new_shape[1] - new_unpad[0]) / 2, (new_shape[0] - new_unpad[1]) / 2

    if shape[::-1] != new_unpad:
        im = cv2.resize(im, new_unpad, interpolation=cv2.INTER_LINEAR)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))

    im = cv2.copyMakeBorder(im, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)
    return im, r, (dw, dh)


def scale_longest_side(im, target):
    """En uzun kenar = target olacak sekilde olcekle. Donus: (img, scale)"""
    h, w = im.shape[:2]
    scale = target / max(h, w)
    new_w, new_h = max(1, int(round(w * scale))), max(1, int(round(h * scale)))
    if (new_w, new_h) != (w, h):
        im = cv2.resize(im, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    return im, scale


def non_max_suppression(boxes, scores, conf_thres=0.3, iou_thres=0.3):
    """
    Tek sinifli NMS (yuz).
    boxes: [N, 4] xyxy, scores: [N]. Donus: skora gore sirali indeksler.
    """
    boxes = np.asarray(boxes, dtype=np.float32).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float32).reshape(-1)
    if boxes.shape[0] == 0:
        return []

    # cv2.dnn.NMSBoxes [x, y, w, h] bekliyor
    xywh = np.stack([boxes[:, 0], boxes[:, 1],
                     boxes[:, 2] - boxes[:, 0], boxes[:, 3] - boxes[:, 1]], axis=1)
    keep = cv2.dnn.NMSBoxes(xywh.tolist(), scores.tolist(), conf_thres, iou_thres)
    keep = np.array(keep).reshape(-1).astype(int)
    return sorted(keep.tolist(), key=lambda i: -scores[i])


def xyxy2xywh(x):
    y = np.copy(x)
    y[..., 2] = x[..., 2] - x[..., 0]
    y[..., 3] = x[..., 3] - x[..., 1]
    return y
