"""
terminator: Force-remove Kubernetes pods stuck in Terminating state.

Periodically scans namespaces and pods for metadata.deletionTimestamp, and
once a pod has been terminating for longer than its own grace period plus a
configured buffer, clears its finalizers and deletes it with a zero grace
period.
"""

__version__ = "0.1.0"
