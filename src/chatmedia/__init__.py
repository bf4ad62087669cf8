"""chatmedia — loopback HTTPS server for chat images, audio and identicons."""

__version__ = "0.1.0"
