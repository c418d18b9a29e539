"""
Job definition for the remote music-video run.

The executable script is static. User-supplied values travel as a typed
``job_config.json`` inside the input slot, next to the scene engine module the
script imports, so no submitted text is ever interpolated into source code.
"""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

from services import scene_engine
from services.artifact_client import ResourceRequirements, SlotFile

CONFIG_FILE_NAME = "job_config.json"
ENGINE_FILE_NAME = "scene_engine.py"
JOB_SCRIPT_PATH = Path(__file__).with_name("kernel") / "music_video_job.py"
GPU_RESOURCES = ResourceRequirements(enable_gpu=True, enable_internet=True)

_UNSAFE_STEM_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


class JobConfig(BaseModel):
    """Parameters the remote job reads from ``job_config.json``."""

    job_id: str
    title: str
    visual_style: str
    clip_duration_seconds: int = Field(gt=0)
    audio_file_name: str
    output_stem: str
    seed: int = scene_engine.DEFAULT_SEED
    fps: int = scene_engine.DEFAULT_FPS
    width: int = 1280
    height: int = 720


def output_stem_for(title: str) -> str:
    """Filesystem-safe stem for the final video; never empty."""
    stem = _UNSAFE_STEM_CHARS.sub("_", title.strip().replace(" ", "_")).strip("_")
    return stem[:80] or "music_video"


def build_job_config(
    *,
    job_id: str,
    title: str,
    visual_style: str,
    clip_duration_seconds: int,
    audio_file_name: str,
) -> JobConfig:
    return JobConfig(
        job_id=job_id,
        title=title,
        visual_style=visual_style,
        clip_duration_seconds=clip_duration_seconds,
        audio_file_name=audio_file_name,
        output_stem=output_stem_for(title),
    )


@lru_cache(maxsize=1)
def job_script_source() -> str:
    return JOB_SCRIPT_PATH.read_text(encoding="utf-8")


@lru_cache(maxsize=1)
def engine_source() -> str:
    return Path(scene_engine.__file__).read_text(encoding="utf-8")


def input_slot_extras(config: JobConfig) -> list[SlotFile]:
    """Files shipped alongside the audio in the input slot."""
    return [
        SlotFile(CONFIG_FILE_NAME, config.model_dump_json(indent=2).encode("utf-8"), "application/json"),
        SlotFile(ENGINE_FILE_NAME, engine_source().encode("utf-8"), "text/x-python"),
    ]


def job_title(slug: str) -> str:
    """Kernel title that the platform slugifies back to ``slug``."""
    return " ".join(part.capitalize() for part in slug.split("-"))
