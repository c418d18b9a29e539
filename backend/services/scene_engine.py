"""Segmentation and prompt chaining for music-video scene generation.

Turns time-aligned analysis data (transcript spans, beat times, an energy
curve) into an ordered list of scene prompts and generation requests.

This module is standard-library only: it is uploaded next to the remote job
script and imported there as ``scene_engine``.
"""

from __future__ import annotations

import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

DEFAULT_SEED = 42
DEFAULT_FPS = 24
MIN_FRAMES = 16
MAX_FRAMES = 81
DEFAULT_ENERGY = 0.5
ENERGY_EPSILON = 1e-9
LYRIC_EXCERPT_CHARS = 80

VISUAL_ANCHORS = (
    "golden wheat fields at sunset",
    "downtown city streets at night",
    "coastal cliffs with crashing waves",
    "mountain forest trail in mist",
    "open desert highway at dusk",
)

MOOD_DESCRIPTORS = {
    "high": "dramatic wide shot, bold colors, dynamic movement",
    "mid": "medium shot, warm tones, gentle motion",
    "low": "intimate close-up, soft bokeh, slow motion",
}

PROMPT_SUFFIX = "No text, no logos."
NEGATIVE_PROMPT = "worst quality, inconsistent motion, blurry, jittery, distorted, text, logo, watermark"


@dataclass(frozen=True)
class TranscriptSpan:
    start: float
    end: float
    text: str


@dataclass(frozen=True)
class AnalysisSegment:
    start: float
    end: float
    lyrics: str
    energy: float      # mean raw amplitude, normalised later across the sequence
    beat_count: int

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class ScenePrompt:
    index: int
    mood: str          # low | mid | high
    anchor: str
    text: str


@dataclass(frozen=True)
class GenerationRequest:
    index: int
    prompt: str
    negative_prompt: str
    num_frames: int


def spans_from_transcript(segments: Iterable[Mapping[str, object]]) -> list[TranscriptSpan]:
    """Adapt transcription-engine output (dicts with start/end/text) into spans."""
    return [
        TranscriptSpan(
            start=float(seg["start"]),
            end=float(seg["end"]),
            text=str(seg.get("text", "")).strip(),
        )
        for seg in segments
    ]


def segment_timeline(
    spans: Sequence[TranscriptSpan],
    beat_times: Sequence[float],
    energy_curve: Sequence[tuple[float, float]],
    clip_duration_seconds: float,
) -> list[AnalysisSegment]:
    """
    Group transcript spans into clip-sized windows.

    A window closes at the start of the first span whose end is at least
    ``clip_duration_seconds`` past the window start, so windows are
    contiguous and begin at 0. Closed windows are half-open ``[start, end)``;
    the trailing window is closed ``[start, end]`` and ends at the last span's
    end.
    """
    segments: list[AnalysisSegment] = []
    if not spans:
        return segments

    current_start = 0.0
    current_text: list[str] = []

    for span in spans:
        if span.end - current_start >= clip_duration_seconds and current_text:
            segments.append(
                AnalysisSegment(
                    start=current_start,
                    end=span.start,
                    lyrics=" ".join(current_text),
                    energy=_mean_energy(energy_curve, current_start, span.start, closed=False),
                    beat_count=_count_beats(beat_times, current_start, span.start, closed=False),
                )
            )
            current_start = span.start
            current_text = []
        current_text.append(span.text.strip())

    if current_text:
        end = spans[-1].end
        segments.append(
            AnalysisSegment(
                start=current_start,
                end=end,
                lyrics=" ".join(current_text),
                energy=_mean_energy(energy_curve, current_start, end, closed=True),
                beat_count=_count_beats(beat_times, current_start, end, closed=True),
            )
        )
    return segments


def _in_window(t: float, start: float, end: float, *, closed: bool) -> bool:
    return start <= t <= end if closed else start <= t < end


def _mean_energy(
    energy_curve: Sequence[tuple[float, float]],
    start: float,
    end: float,
    *,
    closed: bool,
) -> float:
    samples = [amp for t, amp in energy_curve if _in_window(t, start, end, closed=closed)]
    if not samples:
        return DEFAULT_ENERGY
    return float(sum(samples) / len(samples))


def _count_beats(beat_times: Sequence[float], start: float, end: float, *, closed: bool) -> int:
    return sum(1 for b in beat_times if _in_window(b, start, end, closed=closed))


def normalize_energies(energies: Sequence[float]) -> list[float]:
    """Min-max normalise across the whole sequence; all-equal input maps to 0."""
    if not energies:
        return []
    lo, hi = min(energies), max(energies)
    return [(e - lo) / (hi - lo + ENERGY_EPSILON) for e in energies]


def mood_tier(normalized_energy: float) -> str:
    if normalized_energy > 0.66:
        return "high"
    if normalized_energy > 0.33:
        return "mid"
    return "low"


def compose_prompt(anchor: str, mood: str, visual_style: str, lyrics: str) -> str:
    return (
        f"{anchor}, {MOOD_DESCRIPTORS[mood]}, {visual_style}. "
        f"Inspired by: {lyrics[:LYRIC_EXCERPT_CHARS]}. {PROMPT_SUFFIX}"
    )


def chain_prompts(
    segments: Sequence[AnalysisSegment],
    visual_style: str,
    *,
    seed: int = DEFAULT_SEED,
    anchors: Sequence[str] = VISUAL_ANCHORS,
) -> list[ScenePrompt]:
    """
    Build one prompt per segment, holding a visual anchor for several
    consecutive scenes before switching to a different one.

    Output depends only on the arguments: re-running with the same segments,
    style and seed yields identical anchors and prompt text.
    """
    if not segments:
        return []
    if not anchors:
        raise ValueError("anchors must not be empty")

    rng = random.Random(seed)
    anchor = rng.choice(list(anchors))
    interval = max(3, len(segments) // len(anchors))
    normalized = normalize_energies([seg.energy for seg in segments])

    prompts: list[ScenePrompt] = []
    for i, (seg, norm) in enumerate(zip(segments, normalized)):
        if i > 0 and i % interval == 0:
            choices = [a for a in anchors if a != anchor] or list(anchors)
            anchor = rng.choice(choices)
        mood = mood_tier(norm)
        prompts.append(
            ScenePrompt(
                index=i,
                mood=mood,
                anchor=anchor,
                text=compose_prompt(anchor, mood, visual_style, seg.lyrics),
            )
        )
    return prompts


def frame_count(segment: AnalysisSegment, fps: int = DEFAULT_FPS) -> int:
    return max(MIN_FRAMES, min(MAX_FRAMES, int(segment.duration * fps)))


def build_generation_requests(
    segments: Sequence[AnalysisSegment],
    prompts: Sequence[ScenePrompt],
    *,
    fps: int = DEFAULT_FPS,
) -> list[GenerationRequest]:
    if len(segments) != len(prompts):
        raise ValueError(f"got {len(prompts)} prompts for {len(segments)} segments")
    return [
        GenerationRequest(
            index=prompt.index,
            prompt=prompt.text,
            negative_prompt=NEGATIVE_PROMPT,
            num_frames=frame_count(seg, fps),
        )
        for seg, prompt in zip(segments, prompts)
    ]


def plan_scenes(
    transcript: Iterable[Mapping[str, object]],
    beat_times: Sequence[float],
    energy_curve: Sequence[tuple[float, float]],
    *,
    clip_duration_seconds: float,
    visual_style: str,
    seed: int = DEFAULT_SEED,
    fps: int = DEFAULT_FPS,
) -> tuple[list[AnalysisSegment], list[ScenePrompt], list[GenerationRequest]]:
    """Run segmentation, prompt chaining and request building in one call."""
    spans = spans_from_transcript(transcript)
    segments = segment_timeline(spans, beat_times, energy_curve, clip_duration_seconds)
    prompts = chain_prompts(segments, visual_style, seed=seed)
    requests = build_generation_requests(segments, prompts, fps=fps)
    return segments, prompts, requests
