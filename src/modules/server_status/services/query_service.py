# src/modules/server_status/services/query_service.py

import asyncio
import logging
import socket
import struct
from typing import Awaitable, Callable, Optional

import a2s

from src.modules.server_status.errors import AddressResolutionError, InvalidAddressError
from src.modules.server_status.models import (
    FailureReason,
    QueryFailure,
    QueryOutcome,
    QuerySuccess,
)

logger = logging.getLogger(__name__)

InfoFunc = Callable[..., Awaitable[object]]

MALFORMED_ERRORS = (
    a2s.BrokenMessageError,
    a2s.BufferExhaustedError,
    struct.error,
    UnicodeDecodeError,
    ValueError,
)


def parse_address(address: str) -> tuple[str, int]:
    """
    Split `host:port` into its parts. Bracketed IPv6 (`[::1]:27015`) is accepted.
    Raises InvalidAddressError when the port is missing or out of range.
    """
    address = (address or "").strip()
    if address.startswith("["):
        host, sep, port_str = address[1:].partition("]:")
    else:
        host, sep, port_str = address.rpartition(":")

    if not sep or not host:
        raise InvalidAddressError(f"Expected an address like host:port, got '{address}'")
    if not port_str.isdigit():
        raise InvalidAddressError(f"Port must be a number, got '{port_str}'")

    port = int(port_str)
    if not 1 <= port <= 65535:
        raise InvalidAddressError(f"Port {port} is out of range")
    return host, port


class QueryService:
    """
    Sends one A2S_INFO request per call and turns whatever happens into a QueryOutcome.
    There are no retries here; the sync loop simply asks again next cycle.
    """

    def __init__(self, timeout: float, info_func: Optional[InfoFunc] = None):
        self.timeout = timeout
        self._info = info_func or a2s.ainfo

    async def query(self, address: str) -> QueryOutcome:
        log_context = {'server_hostname': address, 'timeout': self.timeout}
        try:
            host, port = parse_address(address)
        except InvalidAddressError:
            logger.warning("Stored server address cannot be parsed", extra=log_context)
            return QueryFailure(FailureReason.MALFORMED_RESPONSE)

        try:
            info = await asyncio.wait_for(
                self._info((host, port), timeout=self.timeout), timeout=self.timeout
            )
            outcome = QuerySuccess(
                server_name=str(info.server_name),
                map_name=str(info.map_name),
                player_count=int(info.player_count),
                max_players=int(info.max_players),
            )
        except (asyncio.TimeoutError, socket.timeout):
            # Request went out, nothing came back in time
            logger.info("Server query timed out", extra=log_context)
            return QueryFailure(FailureReason.TIMEOUT)
        except OSError as e:
            # Refused, ICMP unreachable, DNS failure...
            log_context['error'] = str(e)
            logger.info("Server unreachable", extra=log_context)
            return QueryFailure(FailureReason.UNREACHABLE)
        except MALFORMED_ERRORS as e:
            log_context['error'] = repr(e)
            logger.warning("Server sent a response we could not parse", extra=log_context)
            return QueryFailure(FailureReason.MALFORMED_RESPONSE)
        except AttributeError as e:
            log_context['error'] = repr(e)
            logger.warning("Server response is missing expected fields", extra=log_context)
            return QueryFailure(FailureReason.MALFORMED_RESPONSE)

        logger.debug(f"Got server info for {address}: {outcome}")
        return outcome

    async def resolve(self, address: str) -> tuple[str, int]:
        """
        Validate `host:port` and make sure the host resolves.
        Used by the follow command before anything is posted or stored.
        """
        host, port = parse_address(address)
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
        except (socket.gaierror, UnicodeError) as e:
            raise AddressResolutionError(f"Failed to resolve server address '{host}': {e}") from e
        if not infos:
            raise AddressResolutionError(f"Failed to resolve server address '{host}'")
        return host, port
