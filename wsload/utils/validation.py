import re
from urllib.parse import urlparse


def validate_topic_name(name: str) -> bool:
    if not name or len(name) > 255:
        return False
    if not re.match(r'^[a-zA-Z0-9_\-\.:]+$', name):
        return False
    return True


def validate_ws_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("ws", "wss") and bool(parsed.netloc)
