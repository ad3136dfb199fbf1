# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Host capabilities consumed by the fetcher.

The surrounding update-checking application owns these; `LocalUpdaterHost` is a
filesystem-backed default used by the CLI and tests.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .models import RepositoryDescriptor
from .parsers import is_newer_version

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """What the host knows about the request that triggered the update cycle."""

    option_page: str = ""
    is_private: bool = False
    api: str = ""
    slug: str = ""
    doing_ajax: bool = False
    heartbeat: bool = False
    refresh_cache: bool = False

    def is_private_install(self) -> bool:
        return (
            self.option_page == "github_updater_install"
            and bool(self.is_private)
            and self.api == "bitbucket"
        )


class UpdaterHost(Protocol):
    def can_update(self, descriptor: RepositoryDescriptor) -> bool:
        """True when the remote version is newer than the installed one."""
        ...

    def local_file_exists(self, descriptor: RepositoryDescriptor, filename: str) -> bool:
        ...

    def get_local_info(self, descriptor: RepositoryDescriptor, filename: str) -> Optional[str]:
        """Contents of the installed copy of `filename`, or None."""
        ...

    def render_markdown(self, text: str) -> str:
        ...


class LocalUpdaterHost:
    """Default host: local copies live under `descriptor.local_path`."""

    def can_update(self, descriptor: RepositoryDescriptor) -> bool:
        return is_newer_version(descriptor.remote_version, descriptor.local_version)

    @staticmethod
    def _local_file(descriptor: RepositoryDescriptor, filename: str) -> Optional[Path]:
        if not descriptor.local_path:
            return None
        return Path(descriptor.local_path).expanduser() / filename

    def local_file_exists(self, descriptor: RepositoryDescriptor, filename: str) -> bool:
        p = self._local_file(descriptor, filename)
        return p is not None and p.is_file()

    def get_local_info(self, descriptor: RepositoryDescriptor, filename: str) -> Optional[str]:
        p = self._local_file(descriptor, filename)
        if p is None or not p.is_file():
            return None
        try:
            return p.read_text(errors="replace")
        except OSError as e:
            _logger.warning("Cannot read local %s: %s", p, e)
            return None

    def render_markdown(self, text: str) -> str:
        # Real Markdown rendering belongs to the host; keep the text safe to embed.
        return f"<pre>{html.escape(str(text or ''))}</pre>"
