"""Resource-specific Bitbucket Server API wrappers with caching and TTL policy.

Each module in this package owns:
- the API call for one resource kind (via BitbucketServerAPIClient)
- the parser + shape check for its payload
- the projection of that payload onto the RepositoryDescriptor
"""
