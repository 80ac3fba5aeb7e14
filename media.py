import re
from typing import Optional

from constants import DEMO_VIDEO_URL

VIDEO_ID_LENGTH = 11

_URL_PATTERN = re.compile(r"^.*((youtu\.be/)|(v/)|(/u/\w/)|(embed/)|(shorts/)|(watch\?))\??v?=?([^#&?/]*).*")
_BARE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")


def extract_video_id(media_ref: Optional[str]) -> Optional[str]:
    """
    Pull the YouTube video id out of a watch/short/embed URL or accept a bare id.

    An empty reference means the demo video. Returns None when nothing usable is found.
    """
    ref = (media_ref or "").strip() or DEMO_VIDEO_URL
    if _BARE_ID_PATTERN.match(ref):
        return ref
    match = _URL_PATTERN.match(ref)
    if not match:
        return None
    video_id = match.group(8)
    if len(video_id) != VIDEO_ID_LENGTH or not _BARE_ID_PATTERN.match(video_id):
        return None
    return video_id


def format_time(seconds: float) -> str:
    mins, secs = divmod(int(max(seconds, 0)), 60)
    return f"{mins}:{secs:02d}"
