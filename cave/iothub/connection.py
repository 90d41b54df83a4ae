"""IoT Hub device connection strings and SAS tokens."""

import base64
import binascii
import hashlib
import hmac
import time
from dataclasses import dataclass
from urllib.parse import quote

from cave.lib.exceptions import ConfigurationError

_REQUIRED_KEYS = ("HostName", "DeviceId", "SharedAccessKey")


@dataclass(frozen=True, slots=True)
class ConnectionString:
    host_name: str
    device_id: str
    shared_access_key: str

    @classmethod
    def parse(cls, raw: str) -> "ConnectionString":
        """Parse ``HostName=...;DeviceId=...;SharedAccessKey=...``.

        Raises:
            ConfigurationError: If a field is missing or malformed.
        """
        fields: dict[str, str] = {}
        for part in raw.strip().split(";"):
            if not part:
                continue
            key, sep, value = part.partition("=")
            if not sep or not value:
                raise ConfigurationError(
                    f"Malformed connection string segment: {key!r}"
                )
            fields[key.strip()] = value.strip()

        missing = [key for key in _REQUIRED_KEYS if key not in fields]
        if missing:
            raise ConfigurationError(
                f"Connection string missing: {', '.join(missing)}"
            )

        try:
            base64.b64decode(fields["SharedAccessKey"], validate=True)
        except binascii.Error as e:
            raise ConfigurationError(
                "SharedAccessKey is not valid base64"
            ) from e

        return cls(
            host_name=fields["HostName"],
            device_id=fields["DeviceId"],
            shared_access_key=fields["SharedAccessKey"],
        )

    @property
    def resource_uri(self) -> str:
        return f"{self.host_name}/devices/{self.device_id}"


def generate_sas_token(
    resource_uri: str,
    key: str,
    ttl_sec: int,
    *,
    now: float | None = None,
) -> str:
    """Build a SharedAccessSignature token for the given resource.

    Args:
        resource_uri: ``<host>/devices/<device id>``.
        key: Base64-encoded device key.
        ttl_sec: Token lifetime in seconds.
        now: Current epoch time, mainly for tests.
    """
    expiry = int((time.time() if now is None else now) + ttl_sec)
    encoded_uri = quote(resource_uri, safe="")
    to_sign = f"{encoded_uri}\n{expiry}".encode()
    digest = hmac.new(base64.b64decode(key), to_sign, hashlib.sha256).digest()
    signature = quote(base64.b64encode(digest).decode(), safe="")
    return f"SharedAccessSignature sr={encoded_uri}&sig={signature}&se={expiry}"
