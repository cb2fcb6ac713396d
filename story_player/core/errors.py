"""
Exception hierarchy shared by the player and the service client.
"""


class StoryPlayerError(RuntimeError):
    """Base class for every error raised by the story player."""


class ServiceError(StoryPlayerError):
    """An upstream service failed or returned a malformed payload."""


class RequestCancelled(StoryPlayerError):
    """A request was cancelled because a newer session superseded it."""


class PlaybackBlocked(StoryPlayerError):
    """The platform refused to start audio without a user gesture."""


class AudioOutputError(StoryPlayerError):
    """The audio output could not be started."""


class BatchExhaustedError(StoryPlayerError):
    """No playable story could be loaded after every round."""
