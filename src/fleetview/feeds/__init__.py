"""Snapshot feeds: provider interface, hub and concrete providers."""

from fleetview.feeds.base import Subscription, SubscriptionProvider
from fleetview.feeds.hub import SourceHub
from fleetview.feeds.memory import InMemoryFeed

__all__ = ["InMemoryFeed", "SourceHub", "Subscription", "SubscriptionProvider"]
