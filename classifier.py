# linkkeeper/classifier.py
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

from models import Source

YOUTUBE_HOSTS = {
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
}
YOUTUBE_SHORT_HOSTS = {"youtu.be", "www.youtu.be"}
INSTAGRAM_HOSTS = {"instagram.com", "www.instagram.com", "m.instagram.com"}
THREADS_HOSTS = {"threads.net", "www.threads.net", "threads.com", "www.threads.com"}
FACEBOOK_HOSTS = {
    "facebook.com",
    "www.facebook.com",
    "m.facebook.com",
    "web.facebook.com",
    "fb.com",
    "www.fb.com",
    "fb.watch",
}

# path prefix -> detected type for youtube.com paths carrying the id in the path
YOUTUBE_PATH_TYPES = {
    "/shorts/": "short",
    "/embed/": "video",
    "/live/": "video",
}


@dataclass(frozen=True)
class Classification:
    source: Optional[Source] = None
    detected_type: Optional[str] = None
    resource_id: Optional[str] = None

    @property
    def recognized(self) -> bool:
        return self.source is not None


UNRECOGNIZED = Classification()


def _first_segment(path: str) -> str:
    return path.strip("/").split("/")[0]


def _classify_youtube(host: str, path: str, query: str) -> Classification:
    if host in YOUTUBE_SHORT_HOSTS:
        video_id = _first_segment(path)
        if video_id:
            return Classification(Source.YOUTUBE, "video", video_id)
        return Classification(Source.YOUTUBE)

    if path.rstrip("/") == "/watch":
        video_id = (parse_qs(query).get("v") or [""])[0].strip()
        if video_id:
            return Classification(Source.YOUTUBE, "video", video_id)

    for prefix, detected_type in YOUTUBE_PATH_TYPES.items():
        if path.startswith(prefix):
            video_id = _first_segment(path[len(prefix):])
            if video_id:
                return Classification(Source.YOUTUBE, detected_type, video_id)

    # channel, playlist, home page...
    return Classification(Source.YOUTUBE)


def _classify_instagram(path: str) -> Classification:
    if path.startswith("/p/"):
        return Classification(Source.INSTAGRAM, "post")
    if path.startswith(("/reel/", "/reels/")):
        return Classification(Source.INSTAGRAM, "reel")
    return Classification(Source.INSTAGRAM, "profile")


def _classify_threads(path: str) -> Classification:
    if "/post/" in path:
        return Classification(Source.THREADS, "post")
    return Classification(Source.THREADS, "profile")


def _classify_facebook(host: str, path: str) -> Classification:
    if host == "fb.watch" or "/videos/" in path or path.startswith("/watch"):
        return Classification(Source.FACEBOOK, "video")
    if "/posts/" in path:
        return Classification(Source.FACEBOOK, "post")
    return Classification(Source.FACEBOOK, "page")


def classify(url: str) -> Classification:
    """
    Work out which known platform a URL belongs to from its host and path.

    Purely local; unknown or malformed URLs give an empty classification
    rather than an error.
    """
    try:
        parsed = urlparse((url or "").strip())
        host = (parsed.hostname or "").lower()
    except ValueError:
        return UNRECOGNIZED

    path = parsed.path or "/"

    if host in YOUTUBE_HOSTS or host in YOUTUBE_SHORT_HOSTS:
        return _classify_youtube(host, path, parsed.query)
    if host in INSTAGRAM_HOSTS:
        return _classify_instagram(path)
    if host in THREADS_HOSTS:
        return _classify_threads(path)
    if host in FACEBOOK_HOSTS:
        return _classify_facebook(host, path)
    return UNRECOGNIZED
