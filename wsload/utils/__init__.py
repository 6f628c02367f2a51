from .duration import format_duration, parse_duration
from .validation import validate_topic_name, validate_ws_url

__all__ = ["format_duration", "parse_duration", "validate_topic_name", "validate_ws_url"]
