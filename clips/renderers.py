import logging
from pathlib import Path

from PIL import Image, ImageDraw, ImageOps

from .media import CommandRunner

logger = logging.getLogger(__name__)

# Open Graph preview image.
OG_WIDTH, OG_HEIGHT = 1200, 630
# Teaser video.
TEASER_WIDTH, TEASER_HEIGHT = 1280, 720
TEASER_FPS = 30

WAVE_PADDING = 50
WAVE_HEIGHT = 200
WAVE_COLOR = (255, 255, 255, 204)  # white @ 0.8


def wave_box(canvas_width: int, canvas_height: int) -> tuple[int, int, int, int]:
    """(x, y, width, height) of the waveform: full width minus padding, vertically centered."""
    width = canvas_width - 2 * WAVE_PADDING
    y = (canvas_height - WAVE_HEIGHT) // 2
    return WAVE_PADDING, y, width, WAVE_HEIGHT


def _column_peaks(peaks: list[float], columns: int) -> list[float]:
    n = len(peaks)
    if n == 0:
        return [0.0] * columns
    out = []
    for x in range(columns):
        lo = x * n // columns
        hi = max(lo + 1, (x + 1) * n // columns)
        out.append(max(peaks[lo:hi]))
    return out


def draw_waveform(peaks: list[float], size: tuple[int, int]) -> Image.Image:
    """Mirrored peak bars on a transparent layer."""
    width, height = size
    layer = Image.new("RGBA", size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(layer)
    mid = height / 2
    for x, peak in enumerate(_column_peaks(peaks, width)):
        half = max(0.5, min(1.0, peak) * mid)
        draw.line([(x, mid - half), (x, mid + half)], fill=WAVE_COLOR)
    return layer


def render_preview_image(peaks: list[float], brand_background: Path, out_path: Path) -> Path:
    """
    1200x630 still: brand background scaled to fill and center-cropped, with
    the static waveform overlaid 50px in from each side, vertically centered.
    """
    with Image.open(brand_background) as src:
        background = ImageOps.fit(src.convert("RGB"), (OG_WIDTH, OG_HEIGHT),
                                  method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))

    x, y, w, h = wave_box(OG_WIDTH, OG_HEIGHT)
    canvas = background.convert("RGBA")
    canvas.alpha_composite(draw_waveform(peaks, (w, h)), dest=(x, y))
    canvas.convert("RGB").save(out_path, format="PNG")

    logger.info("rendered %dx%d preview image at %s", OG_WIDTH, OG_HEIGHT, out_path)
    return out_path


def teaser_duration(max_seconds: float, audio_seconds: float) -> float:
    return min(max_seconds, audio_seconds)


class TeaserRenderer:
    """Animated waveform over the looped brand background, muxed with the original audio."""

    def __init__(self, runner: CommandRunner, *, ffmpeg_bin: str = "ffmpeg", timeout: float = 180.0,
                 max_seconds: float = 5.0):
        self.runner = runner
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout = timeout
        self.max_seconds = max_seconds

    def build_args(self, audio_path: Path, brand_background: Path, out_path: Path, duration: float) -> list[str]:
        x, y, w, h = wave_box(TEASER_WIDTH, TEASER_HEIGHT)
        filter_graph = (
            f"[0:v]scale={TEASER_WIDTH}:{TEASER_HEIGHT}:force_original_aspect_ratio=increase,"
            f"crop={TEASER_WIDTH}:{TEASER_HEIGHT},fps={TEASER_FPS}[bg];"
            f"[1:a]showwaves=s={w}x{h}:mode=cline:colors=white@0.8:rate={TEASER_FPS}[wave];"
            f"[bg][wave]overlay={x}:{y}:format=auto[v]"
        )
        return [
            self.ffmpeg_bin,
            "-y",
            "-loop", "1",
            "-i", str(brand_background),
            "-i", str(audio_path),
            "-filter_complex", filter_graph,
            "-map", "[v]",
            "-map", "1:a",
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-pix_fmt", "yuv420p",
            "-c:a", "aac",
            "-b:a", "128k",
            "-t", f"{duration:.3f}",
            "-shortest",
            "-movflags", "+faststart",
            str(out_path),
        ]

    def render(self, audio_path: Path, audio_seconds: float, brand_background: Path, out_path: Path) -> Path:
        duration = teaser_duration(self.max_seconds, audio_seconds)
        self.runner.run(self.build_args(audio_path, brand_background, out_path, duration), timeout=self.timeout)
        logger.info("rendered %.1fs teaser at %s", duration, out_path)
        return out_path
