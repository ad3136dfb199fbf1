# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Bitbucket Server API error types.

Cached resource modules catch these and turn them into FetchResult values, so
nothing raised by the HTTP client ever reaches the host's update cycle.
"""

from __future__ import annotations


class BitbucketServerAPIError(Exception):
    def __init__(self, *, status_code: int, endpoint: str, message: str):
        super().__init__(message)
        self.status_code = int(status_code)
        self.endpoint = str(endpoint or "")


class BitbucketServerAuthError(BitbucketServerAPIError):
    pass


class BitbucketServerForbiddenError(BitbucketServerAPIError):
    pass


class BitbucketServerNotFoundError(BitbucketServerAPIError):
    pass


class BitbucketServerRequestError(BitbucketServerAPIError):
    pass
