# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tagged outcome of one cached fetch.

FetchResult = Ok(payload) | NotFound(message) | FetchError(kind, message)

- Ok: payload validated and projected onto the descriptor.
- NotFound: the provider has nothing for this resource (sentinel payload), or a
  precondition skipped the fetch. The descriptor is untouched.
- FetchError: transport failure (never cached) or a payload of unexpected shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from common_types import FetchErrorKind

SENTINEL_MESSAGE_KEY = "message"


@dataclass(frozen=True)
class Ok:
    payload: Any

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class NotFound:
    message: str

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class FetchError:
    kind: FetchErrorKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return False


FetchResult = Union[Ok, NotFound, FetchError]


def make_sentinel(message: str) -> Dict[str, str]:
    """Synthesized "not found" payload; cacheable like any parsed payload."""
    return {SENTINEL_MESSAGE_KEY: str(message)}


def sentinel_message(payload: Any) -> Optional[str]:
    """Return the sentinel message if `payload` is a sentinel, else None."""
    if isinstance(payload, dict) and SENTINEL_MESSAGE_KEY in payload and len(payload) == 1:
        return str(payload.get(SENTINEL_MESSAGE_KEY) or "")
    return None


def describe(result: FetchResult) -> str:
    """Short human-readable outcome (CLI/logging)."""
    if isinstance(result, Ok):
        return "ok"
    if isinstance(result, NotFound):
        return f"not_found: {result.message}"
    return f"error[{result.kind.value}]: {result.message}"
