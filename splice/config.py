from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Root directory that logical /projects/{id}/... paths resolve against
    project_root: str = "/tmp/splice-projects"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Baseline codec profile (every normalized segment uses these settings
    # so segments can be stream-copy concatenated)
    render_video_codec: str = "libx264"
    render_preset: str = "veryfast"
    render_crf: int = 23
    render_pixel_format: str = "yuv420p"
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "128k"
    render_audio_sample_rate: int = 44100
    render_audio_channels: int = 2

    # Upper bound for a single FFmpeg invocation in seconds. 0 = unbounded.
    stage_timeout_s: float = 3600
    # Clips normalized concurrently inside one stitch (1 = strictly in order)
    max_parallel_clips: int = 1

    # Optional font file for text overlays (drawtext falls back to fontconfig)
    drawtext_fontfile: str = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
