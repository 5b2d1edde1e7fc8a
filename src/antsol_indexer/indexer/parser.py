"""Heuristic recognition of registry events inside free-text program logs.

The upstream program does not emit a structured event format, so a log line is
matched against a small table of markers and the package name and version are
recovered with a cascade of field extraction strategies. Everything here is
pure: no I/O, no logging side effects beyond debug records, no exceptions for
malformed input.

Public surface
--------------
- :func:`parse_log_line`          recognise one line as a :class:`DomainEvent`.
- :func:`extract_package_info`    recover ``(name, version)`` from a line.
- :func:`extract_field`           recover a single named field from a line.
- :func:`extract_content_address` recover a content address (CID) from a line.

Field strategies
----------------
Each strategy takes ``(log, field)`` and returns the value or ``None``.
:data:`FIELD_STRATEGIES` lists them in priority order:

1. JSON field        ``"package":"my-pkg"`` / ``"package": "my-pkg"``
2. key=value         ``package=my-pkg`` / ``package="my pkg"``
3. colon             ``package: my-pkg``
4. structured log    ``Program log: package my-pkg``
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime

from antsol_indexer.indexer.types import (
    PACKAGE_DOWNLOADED,
    PACKAGE_PUBLISHED,
    PACKAGE_UPDATED,
    DomainEvent,
)

logger = logging.getLogger(__name__)

# (event type, lower-cased markers), checked in order.
EVENT_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        PACKAGE_PUBLISHED,
        (
            "packagepublished",
            "instruction: publish",
            "program log: publish",
            "package published:",
        ),
    ),
    (PACKAGE_UPDATED, ("packageupdated", "instruction: update", "program log: update")),
    (PACKAGE_DOWNLOADED, ("packagedownloaded", "instruction: download", "program log: download")),
)

NAME_FIELDS = ("package", "name", "pkg")
VERSION_FIELDS = ("version", "ver")
GENERIC_EVENT_FIELD = "event"

CONTENT_ADDRESS_KEYS = ("ipfs_hash", "ipfs", "cid")
CONTENT_ADDRESS_MIN_LENGTH = 46
CIDV0_PREFIX = "Qm"
CIDV0_MAX_LENGTH = 60

_QUOTES = ('"', "'")
_TRIM_CHARS = "\"',;]}"
_KV_TERMINATORS = frozenset(",})]")
_ADDRESS_TERMINATORS = frozenset(',"\n')
_TOKEN_SPLIT = re.compile(r"[\s,;]+")


# =============================================================================
# FIELD STRATEGIES
# =============================================================================


def _clean(value: str) -> str | None:
    value = value.strip()
    return value or None


def _read_quoted(text: str) -> str | None:
    """Read a value that starts with a quote character, up to its closing quote."""
    quote = text[0]
    end = text.find(quote, 1)
    if end == -1:
        return None
    return _clean(text[1:end])


def _read_until(text: str, is_terminator: Callable[[str], bool]) -> str | None:
    for index, char in enumerate(text):
        if is_terminator(char):
            return _clean(text[:index])
    return _clean(text)


def json_field(log: str, field: str) -> str | None:
    """``"field":"value"`` with optional whitespace after the colon."""
    key = f'"{field}":'
    start = log.find(key)
    if start == -1:
        return None
    rest = log[start + len(key) :].lstrip()
    if not rest.startswith('"'):
        return None
    return _read_quoted(rest)


def kv_field(log: str, field: str) -> str | None:
    """``field=value``, quoted or terminated by whitespace or ``,})]``."""
    key = f"{field}="
    start = log.find(key)
    if start == -1:
        return None
    rest = log[start + len(key) :]
    if rest.startswith(_QUOTES):
        return _read_quoted(rest)
    return _read_until(rest, lambda c: c.isspace() or c in _KV_TERMINATORS)


def colon_field(log: str, field: str) -> str | None:
    """``field: value``, quoted or terminated by whitespace or a comma."""
    key = f"{field}: "
    start = log.find(key)
    if start == -1:
        return None
    rest = log[start + len(key) :]
    if rest.startswith(_QUOTES):
        return _read_quoted(rest)
    return _read_until(rest, lambda c: c.isspace() or c == ",")


def structured_field(log: str, field: str) -> str | None:
    """``Program log: field value`` or ``Program data: field value`` to end of line."""
    for prefix in ("Program log: ", "Program data: "):
        key = f"{prefix}{field} "
        start = log.find(key)
        if start == -1:
            continue
        value = _read_until(log[start + len(key) :], lambda c: c in "\r\n")
        if value:
            return value
    return None


FIELD_STRATEGIES: tuple[Callable[[str, str], str | None], ...] = (
    json_field,
    kv_field,
    colon_field,
    structured_field,
)


def extract_field(log: str, field: str) -> str | None:
    """Return the first value any strategy recovers for ``field``."""
    for strategy in FIELD_STRATEGIES:
        value = strategy(log, field)
        if value:
            return value
    return None


# =============================================================================
# PACKAGE INFO
# =============================================================================


def at_format(log: str) -> tuple[str, str] | None:
    """Recover ``name@version`` written after the last colon of the line.

    ``"Package published: awesome-math-utils@1.0.0"`` gives
    ``("awesome-math-utils", "1.0.0")``. Leading decoration after the colon
    (emoji, punctuation) is dropped up to the first alphanumeric, ``-`` or
    ``_`` character.
    """
    colon = log.rfind(":")
    if colon == -1:
        return None
    remainder = log[colon + 1 :].strip()
    index = 0
    while index < len(remainder) and not (
        remainder[index].isalnum() or remainder[index] in "-_"
    ):
        index += 1
    cleaned = remainder[index:]

    at = cleaned.find("@")
    if at == -1:
        return None
    name = cleaned[:at].strip()
    tokens = cleaned[at + 1 :].split()
    if not name or not tokens:
        return None
    return name, tokens[0]


def extract_package_info(log: str) -> tuple[str, str | None] | None:
    """Recover ``(name, version)``; the version may be missing."""
    found = at_format(log)
    if found is not None:
        return found

    name = _first_field(log, NAME_FIELDS)
    if name is None:
        return None
    return name, _first_field(log, VERSION_FIELDS)


def _first_field(log: str, fields: tuple[str, ...]) -> str | None:
    for field in fields:
        value = extract_field(log, field)
        if value:
            return value
    return None


# =============================================================================
# EVENT RECOGNITION
# =============================================================================


def parse_log_line(
    log: str,
    signature: str,
    slot: int,
    block_time: datetime | None = None,
) -> DomainEvent | None:
    """Recognise a registry event in one log line.

    Markers are matched case-insensitively in priority order; a marker only
    produces an event when a package name can be recovered, otherwise the next
    marker is tried. A line without any known marker can still carry a
    generic ``event`` field.
    """
    lowered = log.lower()

    for event_type, markers in EVENT_MARKERS:
        if not any(marker in lowered for marker in markers):
            continue
        info = extract_package_info(log)
        if info is not None:
            return _build_event(event_type, info, signature, slot, block_time)

    generic_type = extract_field(log, GENERIC_EVENT_FIELD)
    if generic_type:
        info = extract_package_info(log)
        if info is not None:
            return _build_event(generic_type, info, signature, slot, block_time)

    return None


def _build_event(
    event_type: str,
    info: tuple[str, str | None],
    signature: str,
    slot: int,
    block_time: datetime | None,
) -> DomainEvent:
    name, version = info
    logger.debug("Parsed %s: %s v%s", event_type, name, version or "unknown")
    return DomainEvent(
        event_type=event_type,
        package_name=name,
        version=version,
        transaction_signature=signature,
        slot=slot,
        block_time=block_time,
    )


# =============================================================================
# CONTENT ADDRESS
# =============================================================================


def _address_candidate(log: str, start: int) -> str:
    rest = log[start:]
    end = len(rest)
    for index, char in enumerate(rest):
        if char.isspace() or char in _ADDRESS_TERMINATORS:
            end = index
            break
    return rest[:end].strip().strip(_TRIM_CHARS)


def extract_content_address(log: str) -> str | None:
    """Recover a content address (CID) from a log line.

    Keys ``ipfs_hash``, ``ipfs`` and ``cid`` are tried in that order, each in
    ``key=value`` and ``key: value`` form (key matched case-insensitively).
    Candidates shorter than 46 characters are rejected. As a fallback, any
    whitespace, comma or semicolon separated token that looks like a CIDv0
    (``Qm`` prefix, 46 to 60 characters) is accepted.
    """
    lowered = log.lower()
    for key in CONTENT_ADDRESS_KEYS:
        for separator in ("=", ": "):
            position = lowered.find(f"{key}{separator}")
            if position == -1:
                continue
            candidate = _address_candidate(log, position + len(key) + len(separator))
            if len(candidate) >= CONTENT_ADDRESS_MIN_LENGTH:
                return candidate

    for token in _TOKEN_SPLIT.split(log):
        token = token.strip(_TRIM_CHARS)
        if (
            token.startswith(CIDV0_PREFIX)
            and CONTENT_ADDRESS_MIN_LENGTH <= len(token) <= CIDV0_MAX_LENGTH
        ):
            return token
    return None
