"""Field-level invariants checked before a User or Survey is written.

Both validators mutate the candidate in place only to fill in a missing date,
and return it so callers can chain. Nothing here touches the database.
"""
from __future__ import annotations

import re
from typing import TypeVar

from . import clock
from .errors import EmptyUsername, FutureDate, InvalidEmail, MissingField, WeakCredential
from .models import Survey, User


EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
MIN_PASSWORD_LENGTH = 8

U = TypeVar("U", bound=User)
S = TypeVar("S", bound=Survey)


def validate_user(candidate: U) -> U:
    email = candidate.email
    if not isinstance(email, str) or not EMAIL_RE.fullmatch(email):
        raise InvalidEmail(email)
    if candidate.username is None or not candidate.username.strip():
        raise EmptyUsername(candidate.username)
    password = candidate.password
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise WeakCredential(None if password is None else len(password), MIN_PASSWORD_LENGTH)
    if candidate.registered_on is None:
        candidate.registered_on = clock.today()
    return candidate


def validate_survey(candidate: S) -> S:
    if candidate.title is None or not candidate.title.strip():
        raise MissingField("title", candidate.title)
    if candidate.active is None:
        raise MissingField("active")
    if candidate.created_on is None:
        candidate.created_on = clock.today()
    elif candidate.created_on > clock.today():
        raise FutureDate(candidate.created_on)
    return candidate
