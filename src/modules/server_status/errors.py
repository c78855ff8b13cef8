# src/modules/server_status/errors.py


class ServerStatusError(Exception):
    """Base class for errors raised by the server status feature."""


class AddressError(ServerStatusError):
    """The user supplied a server address we cannot use."""


class InvalidAddressError(AddressError):
    """The address is not in `host:port` form."""


class AddressResolutionError(AddressError):
    """The host part of the address did not resolve to anything."""


class DuplicateSubscriptionError(ServerStatusError):
    """The channel already follows this server."""

    def __init__(self, channel_id: int, server_hostname: str):
        super().__init__(f"Channel {channel_id} already follows {server_hostname}")
        self.channel_id = channel_id
        self.server_hostname = server_hostname
