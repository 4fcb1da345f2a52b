"""
Target format table.

Each output format maps to one codec pair plus a builder for the
format-specific tuning flags. Adding a format means adding one entry to
FORMATS; nothing else branches on the format.

    mp4  → libx264 / aac        -preset <preset> -movflags +faststart
    webm → libvpx  / libvorbis  -cpu-used <0-5>
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from ..jobs.models import QualityPreset, TargetFormat


# Conservative constants shared by every encode
AUDIO_BITRATE = "128k"
BUFFER_SIZE = "2M"

# WIDTHxHEIGHT, e.g. 1920x1080
RESOLUTION_PATTERN = re.compile(r"^(\d{1,5})x(\d{1,5})$")

# libvpx has no named presets; -cpu-used trades speed for quality instead.
# Presets missing from the map fall back to the medium setting.
VPX_CPU_USED: Dict[QualityPreset, str] = {
    QualityPreset.ULTRAFAST: "0",
    QualityPreset.FAST: "1",
    QualityPreset.MEDIUM: "2",
    QualityPreset.SLOW: "4",
    QualityPreset.VERYSLOW: "5",
}
VPX_CPU_USED_DEFAULT = "2"


def _x264_tuning(preset: QualityPreset) -> List[str]:
    return ["-preset", preset.value, "-movflags", "+faststart"]


def _vpx_tuning(preset: QualityPreset) -> List[str]:
    return ["-cpu-used", VPX_CPU_USED.get(preset, VPX_CPU_USED_DEFAULT)]


@dataclass(frozen=True)
class FormatSpec:
    """Codec pair and tuning flags for one container format."""

    container: str
    video_codec: str
    audio_codec: str
    tuning: Callable[[QualityPreset], List[str]]

    @property
    def content_type(self) -> str:
        return f"video/{self.container}"


FORMATS: Dict[TargetFormat, FormatSpec] = {
    TargetFormat.MP4: FormatSpec("mp4", "libx264", "aac", _x264_tuning),
    TargetFormat.WEBM: FormatSpec("webm", "libvpx", "libvorbis", _vpx_tuning),
}


def get_format(target_format: TargetFormat) -> FormatSpec:
    """
    Look up the FormatSpec for a target format.

    Raises:
        ValueError: If the format has no entry
    """
    try:
        return FORMATS[TargetFormat(target_format)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported target format: {target_format}")


def parse_resolution(resolution: str) -> Tuple[int, int]:
    """
    Parse a WIDTHxHEIGHT string.

    Raises:
        ValueError: If the string is malformed or a dimension is zero
    """
    match = RESOLUTION_PATTERN.match(resolution or "")
    if not match:
        raise ValueError(f"Invalid resolution '{resolution}'. Expected WIDTHxHEIGHT, e.g. 1280x720")
    width, height = int(match.group(1)), int(match.group(2))
    if width == 0 or height == 0:
        raise ValueError(f"Invalid resolution '{resolution}'. Width and height must be positive")
    return width, height
