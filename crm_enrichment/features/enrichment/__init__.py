"""
Enrichment feature package.

Every layer of the background contact/company enrichment flow lives here
(domain models, provider adapters, repositories, services, API router) so
the feature can be navigated without hunting through global folders.
"""
