"""
TradeWatch: position-change monitor for AI trading model accounts.

Polls the upstream account-totals API, diffs consecutive snapshots and
pushes trade notifications to a Telegram channel.
"""

__version__ = "0.1.0"
