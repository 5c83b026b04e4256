"""
Core engine for resolving catalog selections and orchestrating downloads.

The `CatalogProvider` supplies catalog snapshots, the `TierResolver` turns a
hardware-tier selection into concrete files, and the `DownloadEngine` fetches
them with bounded concurrency while reporting transfer events.
"""
