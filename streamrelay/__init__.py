"""streamrelay: Twitch go-live notifications fanned out to Discord channels."""

__version__ = "1.0.0"
