"""
Artifact Cleaner - Usage analysis and cleanup for artifact repositories.

Discovers artifacts on an Artifactory server by date range, groups them
into age buckets to show where space is used, and archives or deletes
the ones that have gone unused.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
