import socket

from loguru import logger


def get_local_ip() -> str:
    """First non-loopback IPv4 address of this host, or "" when none is found.

    Connecting a UDP socket sends no packet; it only makes the OS pick the
    outbound interface.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
    except OSError as e:
        logger.debug("Outbound interface lookup failed: {}", e)
        address = ""

    if address and not address.startswith("127."):
        return address

    try:
        for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET):
            candidate = info[4][0]
            if not candidate.startswith("127."):
                return candidate
    except OSError as e:
        logger.debug("Hostname lookup failed: {}", e)

    return ""
