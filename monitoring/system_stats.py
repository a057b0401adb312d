import os
import sys

import psutil
import pynvml

from monitoring.logger import get_logger

logger = get_logger("SystemStats", log_type="json")

_gpu_handle = None


def init_gpu_monitor():
    """GPU varsa NVML'i başlat. Yoksa sadece uyarı."""
    global _gpu_handle
    try:
        pynvml.nvmlInit()
        _gpu_handle = pynvml.nvmlDeviceGetHandleByIndex(0)
        logger.info("GPU İzleme Başlatıldı")
    except Exception as e:
        _gpu_handle = None
        logger.warning(f"GPU İzleme başlatılamadı: {e}")
    return _gpu_handle is not None


def shutdown_gpu_monitor():
    global _gpu_handle
    if _gpu_handle is None:
        return
    try:
        pynvml.nvmlShutdown()
    except Exception as e:
        logger.warning(f"NVML kapatılamadı: {e}")
    _gpu_handle = None


def gpu_stats():
    if _gpu_handle is None:
        return None
    try:
        util = pynvml.nvmlDeviceGetUtilizationRates(_gpu_handle)
        mem = pynvml.nvmlDeviceGetMemoryInfo(_gpu_handle)
    except Exception as e:
        logger.warning(f"Metrics read failed: {e}")
        return None
    return {
        "utilizationPercent": float(util.gpu),
        "memoryUsed": int(mem.used),
        "memoryTotal": int(mem.total),
    }


def raw_memory():
    """/stats için ham bellek değerleri (byte)"""
    info = psutil.Process(os.getpid()).memory_info()
    stats = {"rss": info.rss, "vms": info.vms}
    gpu = gpu_stats()
    if gpu is not None:
        stats["gpu"] = gpu
    return stats


def _mb(value):
    return f"{round(value / 1024 / 1024)} MB"


def memory_summary():
    """/health için okunabilir bellek özeti"""
    raw = raw_memory()
    summary = {"rss": _mb(raw["rss"]), "vms": _mb(raw["vms"])}
    if "gpu" in raw:
        summary["gpuUsed"] = _mb(raw["gpu"]["memoryUsed"])
        summary["gpuTotal"] = _mb(raw["gpu"]["memoryTotal"])
    return summary


def python_version():
    return sys.version.split()[0]
