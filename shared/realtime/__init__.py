from .feed import ChangeFeed, Subscription, change_feed

__all__ = ["ChangeFeed", "Subscription", "change_feed"]
