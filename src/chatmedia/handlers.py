"""Binary content routes: chat images, chat audio and identicons.

Every failure ends the response with an empty body. Callers are local by
definition, so nothing about the failure is disclosed beyond the log.
"""

from __future__ import annotations

import datetime
import logging
import sqlite3
from collections.abc import Callable
from typing import Any, cast

import bottle  # type: ignore

from chatmedia import identicon, images
from chatmedia.store import MessageStore

Bottle = cast(Any, bottle.Bottle)
request = cast(Any, bottle.request)
response = cast(Any, bottle.response)

_log = logging.getLogger("chatmedia")

IMAGES_PATH = "/messages/images"
AUDIO_PATH = "/messages/audio"
IDENTICONS_PATH = "/messages/identicons"

NO_STORE = "no-store"
CACHE_FOREVER = "max-age=290304000, public"
EXPIRES_YEARS = 60
FALLBACK_MIME = "application/octet-stream"


def _first_param(name: str) -> str:
    """First value of a query parameter, or "" when absent."""
    values = request.query.decode().getall(name)
    return values[0] if values else ""


def _far_future(years: int = EXPIRES_YEARS) -> datetime.datetime:
    now = datetime.datetime.now(datetime.timezone.utc)
    try:
        return now.replace(year=now.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return now.replace(year=now.year + years, day=28)


def _lookup(fetch: Callable[[str], bytes | None], kind: str, message_id: str) -> bytes:
    try:
        payload = fetch(message_id)
    except sqlite3.Error as e:
        _log.error("failed to find %s for message %s: %s", kind, message_id, e)
        return b""
    if payload is None:
        _log.error("no %s for message %s", kind, message_id)
        return b""
    if not payload:
        _log.error("empty %s for message %s", kind, message_id)
    return payload


def build_app(
    store: MessageStore,
    *,
    identicons: Callable[[str], bytes] = identicon.generate,
    sniff: Callable[[bytes], str] = images.image_mime,
) -> Any:
    """Create the bottle app with the three content routes registered."""
    app = Bottle()

    @app.get(IMAGES_PATH)
    def handle_image() -> bytes:
        message_id = _first_param("messageId")
        if not message_id:
            _log.error("no messageId")
            return b""
        image = _lookup(store.image, "image", message_id)
        if not image:
            return b""

        try:
            mime = sniff(image)
        except ValueError as e:
            _log.error("failed to get mime for message %s: %s", message_id, e)
            mime = FALLBACK_MIME

        response.content_type = mime
        response.set_header("Cache-Control", NO_STORE)
        return image

    @app.get(AUDIO_PATH)
    def handle_audio() -> bytes:
        message_id = _first_param("messageId")
        if not message_id:
            _log.error("no messageId")
            return b""
        audio = _lookup(store.audio, "audio", message_id)
        if not audio:
            return b""

        response.content_type = "audio/aac"
        response.set_header("Cache-Control", NO_STORE)
        return audio

    @app.get(IDENTICONS_PATH)
    def handle_identicon() -> bytes:
        public_key = _first_param("publicKey")
        if not public_key:
            _log.error("no publicKey")
            return b""

        try:
            image = identicons(public_key)
        except (OSError, ValueError) as e:
            _log.error("could not generate identicon: %s", e)
            image = b""

        response.content_type = "image/png"
        response.set_header("Cache-Control", CACHE_FOREVER)
        response.expires = _far_future()
        return image

    @app.error(500)
    def handle_error(err: Any) -> bytes:
        _log.error("request to %s failed: %r", request.path, err.exception)
        return b""

    return app
