# breathewell/utils/errors.py
from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, TypeVar

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound for any single remote call (get/create/delete/transaction)
REMOTE_TIMEOUT_SECONDS = float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))


class CommunityError(Exception):
    """Base for every failure the forum/chat core reports to a screen or route."""

    default_message = "Something went wrong."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(CommunityError):
    default_message = "You must be signed in."


class ValidationEmpty(CommunityError):
    default_message = "This field cannot be empty."


class NotAuthorized(CommunityError):
    default_message = "You can only delete your own posts and comments."


class NotFound(CommunityError):
    default_message = "That item no longer exists."


class RemoteFailure(CommunityError):
    default_message = "Could not reach the server. Please try again."


class ConflictRetryExhausted(RemoteFailure):
    default_message = "The server was busy. Please try again."


async def remote_call(awaitable: Awaitable[T], action: str, timeout: float | None = None) -> T:
    """
    Await a store call, turning timeouts and driver errors into RemoteFailure.
    Domain errors raised inside the call (e.g. from a transaction body) pass through.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout or REMOTE_TIMEOUT_SECONDS)
    except CommunityError:
        raise
    except asyncio.TimeoutError as e:
        logger.warning("Remote call timed out: %s", action)
        raise RemoteFailure(f"Timed out while trying to {action}.") from e
    except Exception as e:
        logger.warning("Remote call failed: %s (%s)", action, e)
        raise RemoteFailure(str(e) or f"Could not {action}.") from e


__all__ = [
    "CommunityError",
    "Unauthenticated",
    "ValidationEmpty",
    "NotAuthorized",
    "NotFound",
    "RemoteFailure",
    "ConflictRetryExhausted",
    "remote_call",
]
