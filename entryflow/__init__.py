"""
Entryflow

Lease-based stage advancement for work entries: workers claim a time-bounded
lease on an entry, run one stage, persist the new state and release,
safely under duplicate dispatch and worker crashes.
"""

__version__ = "1.0.0"
