"""
DocketCC - FCC docket monitoring and filing digests.

Polls the FCC ECFS API for new filings on subscribed dockets, stores and
summarizes them, and queues tier-appropriate email digests for subscribers.
"""

__version__ = "2.0.0"
