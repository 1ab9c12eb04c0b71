"""
GPU detection for engines that ship GPU-specific binaries.

OS-level detection through nvidia-smi, no ML framework needed.
"""

import platform
import shutil
import subprocess
from typing import Optional

from modelhub.config import SUPPORTED_GPU_ARCH
from modelhub.models.descriptor import GpuInfo, GpuSettings
from modelhub.utils.logging import logger

# CUDA compute capability (major.minor) -> architecture name
_COMPUTE_CAPABILITY_ARCH = {
    "7.0": "volta",
    "7.2": "volta",
    "7.5": "turing",
    "8.0": "ampere",
    "8.6": "ampere",
    "8.7": "ampere",
    "8.9": "ada",
    "9.0": "hopper",
    "10.0": "blackwell",
    "12.0": "blackwell",
}


def detect_gpu_settings() -> GpuSettings:
    """Query nvidia-smi for installed GPUs. Returns no GPUs when unavailable."""
    if platform.system() == "Darwin":
        return GpuSettings()

    nvidia_smi = shutil.which("nvidia-smi")
    if not nvidia_smi:
        logger.debug("nvidia-smi not found in PATH")
        return GpuSettings()

    try:
        result = subprocess.run(
            [
                nvidia_smi,
                "--query-gpu=name,memory.total,compute_cap",
                "--format=csv,noheader,nounits",
            ],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"GPU detection failed: {e}")
        return GpuSettings()

    if result.returncode != 0:
        return GpuSettings()

    gpus = []
    for line in result.stdout.strip().splitlines():
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < 3:
            continue
        name, vram, compute_cap = parts[:3]
        gpus.append(
            GpuInfo(
                name=f"NVIDIA {name}" if "nvidia" not in name.lower() else name,
                arch=_COMPUTE_CAPABILITY_ARCH.get(compute_cap),
                vram=int(vram) if vram.isdigit() else None,
            )
        )
    return GpuSettings(gpus=gpus)


def supported_gpu_arch(gpu_settings: Optional[GpuSettings]) -> Optional[str]:
    """
    Architecture of the first GPU when it can run TensorRT-LLM builds.

    Logs why and returns None otherwise.
    """
    if not gpu_settings or not gpu_settings.gpus:
        logger.error("No GPU found. Please check your GPU setting.")
        return None

    first_gpu = gpu_settings.gpus[0]
    if "nvidia" not in first_gpu.name.lower():
        logger.error("No Nvidia GPU found. Please check your GPU setting.")
        return None

    if first_gpu.arch is None:
        logger.error("No GPU architecture found. Please check your GPU setting.")
        return None

    if first_gpu.arch not in SUPPORTED_GPU_ARCH:
        logger.warning(
            f"Your GPU {first_gpu.name} ({first_gpu.arch}) is not supported. "
            "Only 30xx, 40xx series are supported."
        )
        return None

    return first_gpu.arch
