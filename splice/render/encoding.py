"""Baseline codec profile shared by every normalized segment."""

from dataclasses import dataclass

from splice.config import Settings, get_settings
from splice.render.filters import Filter, format_number
from splice.schemas.project import Project


@dataclass(frozen=True)
class EncodingProfile:
    """Configuration for re-encoding to the project's baseline profile."""

    width: int = 1920
    height: int = 1080
    fps: float = 30
    video_codec: str = "libx264"
    preset: str = "veryfast"
    crf: int = 23
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    sample_rate: int = 44100
    channels: int = 2

    @classmethod
    def for_project(cls, project: Project, settings: Settings | None = None) -> "EncodingProfile":
        settings = settings or get_settings()
        return cls(
            width=project.width,
            height=project.height,
            fps=project.fps,
            video_codec=settings.render_video_codec,
            preset=settings.render_preset,
            crf=settings.render_crf,
            pixel_format=settings.render_pixel_format,
            audio_codec=settings.render_audio_codec,
            audio_bitrate=settings.render_audio_bitrate,
            sample_rate=settings.render_audio_sample_rate,
            channels=settings.render_audio_channels,
        )

    @property
    def channel_layout(self) -> str:
        return "mono" if self.channels == 1 else "stereo"

    def video_args(self) -> list[str]:
        return [
            "-c:v", self.video_codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", self.pixel_format,
        ]

    def audio_args(self) -> list[str]:
        return [
            "-c:a", self.audio_codec,
            "-b:a", self.audio_bitrate,
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
        ]

    def container_args(self) -> list[str]:
        return ["-movflags", "+faststart"]

    def scale_pad_chain(self) -> list[Filter]:
        """Fit into the project frame preserving aspect ratio, centered on black."""
        return [
            Filter.of(
                "scale",
                self.width,
                self.height,
                force_original_aspect_ratio="decrease",
            ),
            Filter.of("pad", self.width, self.height, "(ow-iw)/2", "(oh-ih)/2", color="black"),
            Filter.of("setsar", 1),
            Filter.of("fps", format_number(self.fps)),
            Filter.of("format", self.pixel_format),
        ]

    def silence_source(self) -> Filter:
        """lavfi source producing silent audio in the baseline layout."""
        return Filter.of(
            "anullsrc",
            channel_layout=self.channel_layout,
            sample_rate=self.sample_rate,
        )
