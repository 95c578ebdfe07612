"""
系统资源指标（内存、磁盘、CPU）

只依赖标准库（Linux 内存读取 /proc/meminfo）；取不到的指标返回 0 并带 error 字段，不抛异常。
"""

import os
import platform
import resource
import shutil
import sys
import time

_MB = 1024 * 1024
_GB = 1024 * 1024 * 1024

_started_at = time.monotonic()


def uptime_seconds() -> float:
    return round(time.monotonic() - _started_at, 1)


MEMINFO_PATH = "/proc/meminfo"


def _read_meminfo(path: str = MEMINFO_PATH) -> tuple[int, int] | None:
    """
    Linux 上返回 (MemTotal, MemAvailable) 字节数，读取失败返回 None

    MemAvailable 含可回收的页缓存，MemFree 不含。
    """
    values = {}
    try:
        with open(path, encoding="ascii") as f:
            for line in f:
                name, _, rest = line.partition(":")
                if name in ("MemTotal", "MemAvailable"):
                    values[name] = int(rest.split()[0]) * 1024
    except (OSError, ValueError, IndexError):
        return None
    if "MemTotal" not in values or "MemAvailable" not in values:
        return None
    return values["MemTotal"], values["MemAvailable"]


def system_memory() -> dict:
    """系统内存（MB），“free” 为可用内存（含可回收缓存）"""
    meminfo = _read_meminfo()
    if meminfo:
        total, free = meminfo
    else:
        # 非 Linux 平台
        try:
            page_size = os.sysconf("SC_PAGE_SIZE")
            total = os.sysconf("SC_PHYS_PAGES") * page_size
            free = os.sysconf("SC_AVPHYS_PAGES") * page_size
        except (ValueError, OSError, AttributeError) as e:
            return {"total": 0, "used": 0, "free": 0, "percentage": 0.0, "error": str(e)}

    used = total - free
    return {
        "total": round(total / _MB),
        "used": round(used / _MB),
        "free": round(free / _MB),
        "percentage": round(used / total * 100, 1) if total else 0.0,
    }


def disk_usage(path: str = "/") -> dict:
    """磁盘使用（GB）"""
    try:
        usage = shutil.disk_usage(path)
    except OSError as e:
        return {"total": 0, "used": 0, "percentage": 0, "error": str(e)}
    return {
        "total": round(usage.total / _GB),
        "used": round(usage.used / _GB),
        "percentage": round(usage.used / usage.total * 100) if usage.total else 0,
    }


def process_memory() -> dict:
    """进程峰值常驻内存（MB），Linux 上 ru_maxrss 单位为 KB，macOS 为字节"""
    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    if sys.platform == "darwin":
        max_rss //= 1024
    return {"max_rss": round(max_rss / 1024)}


def cpu_info() -> dict:
    """CPU 核数和负载（1 分钟平均负载折算为百分比）"""
    cores = os.cpu_count() or 1
    try:
        load1, _, _ = os.getloadavg()
    except (OSError, AttributeError):
        load1 = 0.0
    return {
        "cores": cores,
        "model": platform.processor() or platform.machine(),
        "load_average": round(load1, 2),
        "usage": min(100, round(load1 / cores * 100)),
    }


def system_info() -> dict:
    return {
        "uptime": uptime_seconds(),
        "python_version": platform.python_version(),
        "platform": sys.platform,
        "arch": platform.machine(),
    }


def grade(percentage: float, healthy_below: float, degraded_below: float) -> str:
    """按阈值给出 healthy / degraded / unhealthy"""
    if percentage < healthy_below:
        return "healthy"
    if percentage < degraded_below:
        return "degraded"
    return "unhealthy"
