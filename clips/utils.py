import mimetypes

DEFAULT_AUDIO_MIME = "audio/mpeg"


def guess_audio_mime(name: str) -> str:
    """MIME type for an uploaded audio file, falling back to audio/mpeg."""
    mime, _ = mimetypes.guess_type(name)
    if not mime or not (mime.startswith("audio/") or mime.startswith("video/")):
        return DEFAULT_AUDIO_MIME
    return mime
