"""Outbound notifications to external collaborators."""

from swarm_factory.notifications.run_channel import RunChannelClient, RunChannelNotifier

__all__ = ["RunChannelClient", "RunChannelNotifier"]
