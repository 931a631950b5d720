from btc_handshake import __version__

PROTOCOL_VERSION = 70015

# 32 MiB
MAX_PAYLOAD_SIZE = 32 * 1024 * 1024

DEFAULT_USER_AGENT = f"/btc-handshake:{__version__}/"


class ProtocolConfig:
    """Knobs the codec and handshake read instead of module globals

    Several configurations can live side by side, e.g. one per network with
    its own payload ceiling.
    """

    def __init__(
        self,
        protocol_version=PROTOCOL_VERSION,
        max_payload_size=MAX_PAYLOAD_SIZE,
        user_agent=DEFAULT_USER_AGENT,
    ):
        self.protocol_version = protocol_version
        self.max_payload_size = max_payload_size
        self.user_agent = user_agent

    def __eq__(self, other):
        return isinstance(other, ProtocolConfig) and self.__dict__ == other.__dict__

    def __repr__(self):
        return (
            f"<ProtocolConfig version={self.protocol_version} "
            f"max_payload_size={self.max_payload_size} user_agent={self.user_agent!r}>"
        )


DEFAULT_CONFIG = ProtocolConfig()
