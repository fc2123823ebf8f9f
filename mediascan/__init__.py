"""
Media Scanner

An incremental media-asset scanner for websites. Given a bounded list of pages
it fetches each page, extracts every referenced image, video and media link,
categorizes the assets by content type, keeps them in a queryable index and
pushes the changes to an external search backend.

Features:
- Bounded-concurrency page scanning with per-page failure isolation
- Lazy-load aware extraction with structural context capture
- Hierarchical keyword scoring for asset categories
- Change detection so later scans only revisit changed pages
- Filter, search and usage-group indexes with incremental merge
- Delta synchronization with drift reconciliation
- Configurable via YAML/JSON and environment variables
"""

__version__ = "0.1.0"
