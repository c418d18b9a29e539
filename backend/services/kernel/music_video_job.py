"""
Remote music-video job. Runs as a GPU script kernel on the batch platform.

Everything job-specific is read from ``job_config.json`` in the attached input
dataset; ``scene_engine.py`` from the same dataset plans the scenes. Progress
markers are written to ``/kaggle/working/output/progress.json``.
"""

import gc
import glob
import json
import os
import shutil
import subprocess
import sys

INPUT_ROOT = "/kaggle/input"
OUTPUT_DIR = "/kaggle/working/output"
CLIPS_DIR = f"{OUTPUT_DIR}/clips"
PROGRESS_PATH = f"{OUTPUT_DIR}/progress.json"
FINAL_SUFFIX = "_music_video.mp4"
WAN_MODEL_ID = "Wan-AI/Wan2.1-T2V-1.3B-Diffusers"


def find_input_dir() -> str:
    matches = sorted(glob.glob(f"{INPUT_ROOT}/*/job_config.json"))
    if not matches:
        raise SystemExit(f"job_config.json not found under {INPUT_ROOT}")
    return os.path.dirname(matches[0])


def write_progress(stage: str, total: int, done: int, **extra) -> None:
    with open(PROGRESS_PATH, "w", encoding="utf-8") as f:
        json.dump({"stage": stage, "total": total, "done": done, **extra}, f)


def transcribe(audio_path: str) -> list[dict]:
    import whisper

    model = whisper.load_model("medium")
    result = model.transcribe(
        audio_path,
        word_timestamps=True,
        temperature=0.2,
        best_of=5,
        compression_ratio_threshold=2.8,
        no_speech_threshold=1,
        condition_on_previous_text=True,
    )
    del model
    gc.collect()
    return result["segments"]


def analyze_rhythm(audio_path: str) -> tuple[float, list[float], list[tuple[float, float]]]:
    import librosa
    import numpy as np

    y, sr = librosa.load(audio_path, sr=None)
    tempo, beat_frames = librosa.beat.beat_track(y=y, sr=sr)
    beat_times = librosa.frames_to_time(beat_frames, sr=sr).tolist()
    rms = librosa.feature.rms(y=y)[0]
    rms_times = librosa.frames_to_time(np.arange(len(rms)), sr=sr)
    energy_curve = [(float(t), float(a)) for t, a in zip(rms_times, rms)]
    return float(np.atleast_1d(tempo)[0]), beat_times, energy_curve


def load_video_pipeline():
    import torch
    from diffusers import AutoencoderKLWan, WanPipeline
    from diffusers.schedulers.scheduling_unipc_multistep import UniPCMultistepScheduler

    vae = AutoencoderKLWan.from_pretrained(WAN_MODEL_ID, subfolder="vae", torch_dtype=torch.float32)
    pipe = WanPipeline.from_pretrained(WAN_MODEL_ID, vae=vae, torch_dtype=torch.bfloat16)
    pipe.scheduler = UniPCMultistepScheduler.from_config(pipe.scheduler.config, flow_shift=8.0)
    pipe.to("cuda")
    return pipe


def render_clip(pipe, request, config: dict, clip_path: str) -> None:
    import torch

    out = pipe(
        prompt=request.prompt,
        negative_prompt=request.negative_prompt,
        height=config["height"],
        width=config["width"],
        num_frames=request.num_frames,
        guidance_scale=5.0,
        num_inference_steps=30,
        generator=torch.Generator(device="cuda").manual_seed(request.index * config["seed"]),
    )
    frames_dir = f"{CLIPS_DIR}/frames_{request.index:03d}"
    os.makedirs(frames_dir, exist_ok=True)
    for fi, frame in enumerate(out.frames[0]):
        frame.save(f"{frames_dir}/{fi:04d}.png")
    subprocess.run(
        [
            "ffmpeg", "-y", "-framerate", str(config["fps"]),
            "-i", f"{frames_dir}/%04d.png",
            "-c:v", "libx264", "-pix_fmt", "yuv420p", "-crf", "18",
            clip_path, "-loglevel", "quiet",
        ],
        check=True,
    )
    shutil.rmtree(frames_dir)
    torch.cuda.empty_cache()
    gc.collect()


def assemble(clip_paths: list[str], audio_path: str, config: dict) -> str:
    concat_file = f"{OUTPUT_DIR}/concat.txt"
    with open(concat_file, "w", encoding="utf-8") as f:
        for cp in clip_paths:
            f.write(f"file '{cp}'\n")
    raw = f"{OUTPUT_DIR}/raw_video.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", concat_file,
            "-c:v", "libx264", "-crf", "18", "-pix_fmt", "yuv420p", "-r", str(config["fps"]), raw,
        ],
        check=True,
        capture_output=True,
    )
    out_file = f"{OUTPUT_DIR}/{config['output_stem']}{FINAL_SUFFIX}"
    subprocess.run(
        [
            "ffmpeg", "-y", "-i", raw, "-i", audio_path,
            "-map", "0:v:0", "-map", "1:a:0", "-c:v", "copy",
            "-c:a", "aac", "-b:a", "192k", "-shortest", out_file,
        ],
        check=True,
        capture_output=True,
    )
    return out_file


def main() -> None:
    os.makedirs(CLIPS_DIR, exist_ok=True)
    input_dir = find_input_dir()
    with open(f"{input_dir}/job_config.json", encoding="utf-8") as f:
        config = json.load(f)
    sys.path.insert(0, input_dir)
    import scene_engine

    audio_path = f"{input_dir}/{os.path.basename(config['audio_file_name'])}"
    print(f"=== Music Video Generator: job {config['job_id']} ===")
    print(f"Style: {config['visual_style'][:40]} | Clip: {config['clip_duration_seconds']}s")
    write_progress("analysis", 0, 0)

    print("[Stage 1] Transcription and beat analysis...")
    transcript = transcribe(audio_path)
    tempo, beat_times, energy_curve = analyze_rhythm(audio_path)
    print(f"  {len(transcript)} transcript segments, BPM {tempo:.1f}")

    print("[Stage 2] Planning scenes...")
    segments, prompts, requests = scene_engine.plan_scenes(
        transcript,
        beat_times,
        energy_curve,
        clip_duration_seconds=config["clip_duration_seconds"],
        visual_style=config["visual_style"],
        seed=config["seed"],
        fps=config["fps"],
    )
    print(f"  {len(segments)} segments, {len(prompts)} prompts")
    if not requests:
        raise SystemExit("No transcript spans found; nothing to render.")
    write_progress("clips", len(requests), 0)

    print("[Stage 3] Rendering clips...")
    pipe = load_video_pipeline()
    clip_paths: list[str] = []
    for request in requests:
        clip_path = f"{CLIPS_DIR}/clip_{request.index:03d}.mp4"
        if not os.path.exists(clip_path):
            render_clip(pipe, request, config, clip_path)
        clip_paths.append(clip_path)
        write_progress("clips", len(requests), len(clip_paths))

    print("[Stage 4] Assembling...")
    write_progress("assembly", len(requests), len(clip_paths))
    out_file = assemble(clip_paths, audio_path, config)
    size_mb = os.path.getsize(out_file) / (1024 * 1024)
    print(f"  Done! {out_file} ({size_mb:.1f} MB)")
    write_progress("done", len(requests), len(clip_paths), output=out_file, size_mb=round(size_mb, 1))


if __name__ == "__main__":
    main()
