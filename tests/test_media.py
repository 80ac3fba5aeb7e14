import pytest

from media import extract_video_id, format_time


@pytest.mark.parametrize("ref, expected", [
    ("https://www.youtube.com/watch?v=LXb3EKWsInQ", "LXb3EKWsInQ"),
    ("https://youtu.be/dQw4w9WgXcQ?t=42", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/embed/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("https://www.youtube.com/shorts/dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("dQw4w9WgXcQ", "dQw4w9WgXcQ"),
    ("  ", "LXb3EKWsInQ"),
    (None, "LXb3EKWsInQ"),
    ("https://www.youtube.com/watch?v=tooshort", None),
    ("https://example.com/clip.mp4", None),
    ("just some words", None),
])
def test_extract_video_id(ref, expected):
    assert extract_video_id(ref) == expected


def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(65.9) == "1:05"
    assert format_time(-3) == "0:00"
