"""
Scheduled cleanup feature package.

This vertical slice keeps every layer of the spam cleanup engine
co-located (domain models, repositories, services, API routers) so
contributors can navigate the feature without hunting through global
folders.
"""
