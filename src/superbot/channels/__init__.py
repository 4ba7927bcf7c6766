"""Chat channel integrations."""

from superbot.channels.base import BaseChannel
from superbot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
