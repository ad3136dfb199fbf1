# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Pure parsers: raw Bitbucket Server payload -> normalized structure.

Every function here is side-effect free. A payload the provider reports as empty
or erroneous is returned as a sentinel (see `results.make_sentinel`) so the
cached resource can store and validate it like any other payload.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from common_types import RepoType

from .results import make_sentinel

NO_TAGS_MESSAGE = "No tags found"
NO_CHANGELOG_MESSAGE = "No changelog found"
NO_README_MESSAGE = "No readme found"
NO_BRANCHES_MESSAGE = "No branches found"
NO_LANGUAGE_PACK_MESSAGE = "No language pack found"
NO_META_MESSAGE = "No repository metadata found"


# ======================================================================================
# File contents (browse API)
# ======================================================================================

def recombine_lines(response: Any) -> str:
    """Join the browse API's `lines[].text` into one "\\n"-terminated string."""
    if not isinstance(response, dict):
        return ""
    lines = response.get("lines")
    if not isinstance(lines, list):
        return ""
    out: List[str] = []
    for line in lines:
        if isinstance(line, dict):
            out.append(str(line.get("text") or ""))
    return "".join(f"{t}\n" for t in out)


PLUGIN_HEADERS: Dict[str, str] = {
    "Name": "Plugin Name",
    "PluginURI": "Plugin URI",
    "Version": "Version",
    "Description": "Description",
    "Author": "Author",
    "AuthorURI": "Author URI",
    "TextDomain": "Text Domain",
    "DomainPath": "Domain Path",
    "Network": "Network",
}

THEME_HEADERS: Dict[str, str] = {
    "Name": "Theme Name",
    "ThemeURI": "Theme URI",
    "Description": "Description",
    "Author": "Author",
    "AuthorURI": "Author URI",
    "Version": "Version",
    "Template": "Template",
    "Status": "Status",
    "Tags": "Tags",
    "TextDomain": "Text Domain",
    "DomainPath": "Domain Path",
}

EXTRA_HEADERS: Dict[str, str] = {
    "Requires WP": "Requires WP",
    "Requires PHP": "Requires PHP",
    "Bitbucket Branch": "Bitbucket Branch",
    "Bitbucket Languages": "Bitbucket Languages",
}

_HEADER_COMMENT_CLOSE_RE = re.compile(r"\s*(?:\*/|\?>).*")


def _cleanup_header_comment(value: str) -> str:
    return _HEADER_COMMENT_CLOSE_RE.sub("", value).strip()


def get_file_headers(contents: str, repo_type: str) -> Dict[str, str]:
    """Extract plugin/theme headers from the top of a PHP/CSS file.

    Header lines look like ` * Version: 1.2.3` (leading comment markers are
    ignored, matching is case-insensitive). Headers without a value are dropped.
    """
    text = str(contents or "")
    defaults = THEME_HEADERS if str(repo_type) == RepoType.THEME.value else PLUGIN_HEADERS
    all_headers = {**defaults, **EXTRA_HEADERS}

    out: Dict[str, str] = {}
    for field, label in all_headers.items():
        m = re.search(
            r"^[ \t/*#@]*" + re.escape(label) + r":(.*)$",
            text,
            flags=re.MULTILINE | re.IGNORECASE,
        )
        if not m:
            continue
        value = _cleanup_header_comment(m.group(1))
        if value:
            out[field] = value
    return out


# ======================================================================================
# Versions / tags
# ======================================================================================

# Pre-release words rank below a plain number, "pl"/"p" ranks above (PHP version_compare order).
_SPECIAL_RANKS = {"dev": 0, "alpha": 1, "a": 1, "beta": 2, "b": 2, "rc": 3, "pl": 6, "p": 6}
_END_RANK = 4
_NUMBER_RANK = 5
_VERSION_SPLIT_RE = re.compile(r"[.\-_+]+|(?<=\d)(?=\D)|(?<=\D)(?=\d)")


def version_key(version: str) -> Tuple[Tuple[int, int], ...]:
    """Sortable key for version strings ("v2.0", "1.10.1", "3.0-beta2").

    Numeric parts compare numerically; "dev" < "alpha" < "beta" < "rc" < release;
    a shorter version sorts below a longer one unless the extra part is a pre-release.
    """
    s = str(version or "").strip()
    if s[:1] in ("v", "V") and s[1:2].isdigit():
        s = s[1:]
    parts: List[Tuple[int, int]] = []
    for tok in _VERSION_SPLIT_RE.split(s):
        if not tok:
            continue
        if tok.isdigit():
            parts.append((_NUMBER_RANK, int(tok)))
        else:
            parts.append((_SPECIAL_RANKS.get(tok.lower(), -1), 0))
    parts.append((_END_RANK, 0))
    return tuple(parts)


def is_newer_version(remote: Optional[str], local: Optional[str]) -> bool:
    if not remote:
        return False
    if not local:
        return True
    return version_key(remote) > version_key(local)


def sort_tags(tags: List[str]) -> List[str]:
    """Newest first."""
    return sorted((str(t) for t in tags if str(t)), key=version_key, reverse=True)


def parse_tag_response(response: Any) -> Any:
    """`GET .../tags` -> list of tag names (newest first) or the "No tags found" sentinel."""
    if not isinstance(response, dict) or "errors" in response:
        return make_sentinel(NO_TAGS_MESSAGE)
    try:
        if "size" in response and int(response.get("size") or 0) < 1:
            return make_sentinel(NO_TAGS_MESSAGE)
    except (ValueError, TypeError):
        return make_sentinel(NO_TAGS_MESSAGE)
    values = response.get("values")
    if not isinstance(values, list):
        return make_sentinel(NO_TAGS_MESSAGE)
    tags = [str(v.get("displayId")) for v in values if isinstance(v, dict) and v.get("displayId")]
    if not tags:
        return make_sentinel(NO_TAGS_MESSAGE)
    return sort_tags(tags)


def parse_branches_response(response: Any) -> Any:
    """`GET .../branches` -> list of branch names or the "No branches found" sentinel."""
    values = response.get("values") if isinstance(response, dict) else None
    if not isinstance(values, list):
        return make_sentinel(NO_BRANCHES_MESSAGE)
    names = [str(v.get("displayId")) for v in values if isinstance(v, dict) and v.get("displayId")]
    return names if names else make_sentinel(NO_BRANCHES_MESSAGE)


# ======================================================================================
# Changelog / metadata
# ======================================================================================

def parse_changelog_response(text: Optional[str]) -> Any:
    if not text or not str(text).strip():
        return make_sentinel(NO_CHANGELOG_MESSAGE)
    return {"changes": str(text)}


def parse_meta_response(response: Any) -> Any:
    """`GET /1.0/projects/{owner}/repos/{repo}` -> normalized repository metadata.

    Bitbucket Server reports visibility as `project.public`; the descriptor stores
    the inverse (`private`). The top-level `public` flag is used when the project
    block is missing.
    """
    if not isinstance(response, dict) or "errors" in response:
        return make_sentinel(NO_META_MESSAGE)
    project = response.get("project")
    if isinstance(project, dict) and "public" in project:
        public = bool(project.get("public"))
    else:
        public = bool(response.get("public", False))
    return {
        "private": not public,
        "slug": str(response.get("slug") or ""),
        "name": str(response.get("name") or ""),
        "project_key": str(project.get("key") or "") if isinstance(project, dict) else "",
        "last_updated": None,
        "watchers": 0,
        "forks": 0,
        "open_issues": 0,
        "score": 0,
    }


# ======================================================================================
# readme.txt (WordPress readme format)
# ======================================================================================

_README_HEADER_FIELDS = {
    "contributors": "contributors",
    "donate link": "donate_link",
    "tags": "tags",
    "requires at least": "requires",
    "tested up to": "tested",
    "tested": "tested",
    "requires php": "requires_php",
    "stable tag": "stable_tag",
    "license": "license",
    "license uri": "license_uri",
}

_README_SECTION_ALIASES = {
    "frequently asked questions": "faq",
    "change log": "changelog",
    "screenshot": "screenshots",
}

README_EXPECTED_SECTIONS = (
    "description",
    "installation",
    "faq",
    "screenshots",
    "changelog",
    "upgrade_notice",
    "other_notes",
)

_TITLE_RE = re.compile(r"^\s*===\s*(.+?)\s*===\s*$")
_SECTION_RE = re.compile(r"^\s*==\s*(.+?)\s*==\s*$")
_HEADER_RE = re.compile(r"^\s*([A-Za-z ]+?)\s*:\s*(.*?)\s*$")


class ReadmeParser:
    """Parse a WordPress-style readme.txt into a dict.

    Result keys: name, contributors, donate_link, tags, requires, tested,
    requires_php, stable_tag, license, license_uri, short_description,
    sections (key -> raw text), remaining_content (unknown sections).
    """

    def __init__(self, text: str):
        self.text = str(text or "").replace("\r\n", "\n").replace("\r", "\n")

    @staticmethod
    def section_key(title: str) -> str:
        t = " ".join(str(title or "").lower().split())
        t = _README_SECTION_ALIASES.get(t, t)
        return t.replace(" ", "_")

    def parse_data(self) -> Dict[str, Any]:
        lines = self.text.split("\n")
        data: Dict[str, Any] = {
            "name": "",
            "contributors": [],
            "donate_link": "",
            "tags": [],
            "requires": "",
            "tested": "",
            "requires_php": "",
            "stable_tag": "",
            "license": "",
            "license_uri": "",
            "short_description": "",
            "sections": {},
            "remaining_content": "",
        }

        i = 0
        while i < len(lines) and not lines[i].strip():
            i += 1
        if i < len(lines):
            m = _TITLE_RE.match(lines[i])
            if m:
                data["name"] = m.group(1)
                i += 1

        # Header block: "Key: value" lines until the first line that is not a header.
        while i < len(lines):
            line = lines[i]
            if not line.strip():
                i += 1
                if any(data[k] for k in ("requires", "tested", "stable_tag", "contributors", "tags")):
                    break
                continue
            m = _HEADER_RE.match(line)
            field = _README_HEADER_FIELDS.get(m.group(1).strip().lower()) if m else None
            if not field:
                break
            value = m.group(2)
            if field in ("contributors", "tags"):
                data[field] = [v.strip() for v in value.split(",") if v.strip()]
            else:
                data[field] = value
            i += 1

        # Short description: everything up to the first "== Section ==".
        short: List[str] = []
        while i < len(lines) and not _SECTION_RE.match(lines[i]):
            short.append(lines[i])
            i += 1
        data["short_description"] = " ".join(" ".join(short).split())

        sections: Dict[str, str] = {}
        remaining: List[str] = []
        title = ""
        body: List[str] = []

        def _close() -> None:
            if not title:
                return
            content = "\n".join(body).strip()
            key = self.section_key(title)
            if key in README_EXPECTED_SECTIONS:
                sections[key] = content
            elif content:
                remaining.append(f"<h3>{title}</h3>\n{content}")

        while i < len(lines):
            m = _SECTION_RE.match(lines[i])
            if m:
                _close()
                title = m.group(1)
                body = []
            else:
                body.append(lines[i])
            i += 1
        _close()

        data["sections"] = sections
        data["remaining_content"] = "\n".join(remaining)
        return data


def parse_readme(text: Optional[str]) -> Any:
    if not text or not str(text).strip():
        return make_sentinel(NO_README_MESSAGE)
    return ReadmeParser(str(text)).parse_data()


# ======================================================================================
# Language packs
# ======================================================================================

def parse_language_pack(
    raw: Any,
    *,
    package_url: Callable[[str], str],
    repo_type: str,
    version: Optional[str],
) -> Any:
    """`language-pack.json` -> {language: entry} with absolute, stamped package URLs.

    Accepts the JSON text or an already-decoded object (mapping keyed by locale,
    or a list of locale entries). Each entry's relative `package` path is
    rewritten via `package_url`, and `type`/`version` are stamped on.
    """
    obj = raw
    if isinstance(raw, (str, bytes)):
        try:
            obj = json.loads(raw)
        except (ValueError, TypeError):
            return make_sentinel(NO_LANGUAGE_PACK_MESSAGE)

    if isinstance(obj, dict):
        entries = list(obj.values())
    elif isinstance(obj, list):
        entries = obj
    else:
        return make_sentinel(NO_LANGUAGE_PACK_MESSAGE)

    out: Dict[str, Dict[str, Any]] = {}
    for ent in entries:
        if not isinstance(ent, dict):
            continue
        language = str(ent.get("language") or "")
        package = str(ent.get("package") or "")
        if not language or not package:
            continue
        locale = dict(ent)
        locale["package"] = package_url(package)
        locale["type"] = str(repo_type)
        locale["version"] = version
        out[language] = locale

    return out if out else make_sentinel(NO_LANGUAGE_PACK_MESSAGE)
