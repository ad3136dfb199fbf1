#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Check a WordPress plugin/theme hosted on Bitbucket Server for updates.

Runs every cached fetch (file headers, repo metadata, tags, changelog, readme,
branches, language packs) for one repository and prints a JSON summary with the
remote version, newest tag, download link and the per-resource outcome.

Example:
    python3 check_plugin_update.py --enterprise https://bitbucket.example.com \\
        --owner ACME --repo widget --file widget.php --local-version 1.0.0
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from cache.cache_transients import CACHE_FILE_DEFAULT, TransientCache
from common import resolve_cache_path, load_updater_config
from common_bitbucket.fetcher import DEFAULT_CHANGELOG_FILE, RemoteResourceFetcher
from common_bitbucket.host import RequestContext
from common_bitbucket.models import RepositoryDescriptor
from common_bitbucket.results import describe
from common_types import RepoType


def build_summary(fetcher: RemoteResourceFetcher, results) -> dict:
    d = fetcher.descriptor
    return {
        "repo": f"{d.owner}/{d.repo}",
        "type": d.type,
        "branch": d.branch,
        "local_version": d.local_version,
        "remote_version": d.remote_version,
        "can_update": fetcher.host.can_update(d),
        "newest_tag": d.newest_tag,
        "private": d.private,
        "download_link": d.download_link,
        "results": {name: describe(r) for name, r in results.items()},
        "rest": fetcher.api.get_rest_call_stats(),
        "cache": fetcher.api.get_cache_stats(),
    }


def main():
    parser = argparse.ArgumentParser(
        description='Check a Bitbucket Server hosted plugin/theme for updates'
    )
    parser.add_argument('--enterprise', required=True, help='Bitbucket Server root URL')
    parser.add_argument('--enterprise-api', default='', help='REST root (default: <enterprise>/rest/api)')
    parser.add_argument('--owner', required=True, help='Project key')
    parser.add_argument('--repo', required=True, help='Repository slug')
    parser.add_argument(
        '--type',
        choices=[t.value for t in RepoType],
        default=RepoType.PLUGIN.value,
        help='Package type (default: plugin)'
    )
    parser.add_argument('--file', default='', help='Main plugin file or style.css')
    parser.add_argument('--branch', default='', help='Branch to check (default: master)')
    parser.add_argument('--changelog', default=DEFAULT_CHANGELOG_FILE, help='Changelog file name')
    parser.add_argument('--local-path', default='', help='Directory of the installed copy')
    parser.add_argument('--local-version', default=None, help='Installed version')
    parser.add_argument('--config', type=Path, default=None, help='YAML config file')
    parser.add_argument(
        '--cache-file',
        default=CACHE_FILE_DEFAULT,
        help=f'Cache file, relative to the cache dir unless absolute (default: {CACHE_FILE_DEFAULT})'
    )
    parser.add_argument('--refresh', action='store_true', help='Ignore cached entries and refetch')
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    # Setup logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    config = load_updater_config(args.config)
    descriptor = RepositoryDescriptor(
        owner=args.owner,
        repo=args.repo,
        enterprise=args.enterprise,
        enterprise_api=args.enterprise_api,
        type=args.type,
        file=args.file,
        branch=args.branch,
        local_path=args.local_path,
        local_version=args.local_version,
    )
    cache = TransientCache(cache_file=resolve_cache_path(args.cache_file))
    context = RequestContext(refresh_cache=args.refresh)

    logging.info(f"Checking {args.owner}/{args.repo} on {descriptor.enterprise}")

    with RemoteResourceFetcher(descriptor, config=config, cache=cache, context=context) as fetcher:
        results = fetcher.get_all(changelog_file=args.changelog)
        summary = build_summary(fetcher, results)

    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0


if __name__ == '__main__':
    sys.exit(main())
