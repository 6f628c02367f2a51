from .app import create_app
from .hub import Topic, TopicHub

__all__ = ["Topic", "TopicHub", "create_app"]
