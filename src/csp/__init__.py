"""Compliance screening pipeline for fundraising campaigns.

Campaigns are screened in two phases: a fast synchronous keyword and
structure check run at submission time, and a slower asynchronous pass
(text moderation, media inspection, watchlist matching and fraud
scoring) executed by workers that claim jobs from a durable queue.
"""

__version__ = "0.1.0"
