"""Read-only access to the escrow contract through a Stacks node API.

Results of ``/v2/contracts/call-read`` come back as hex-serialized Clarity
values; only the types the escrow contract returns are decoded here.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from milestone_escrow.config import Settings
from milestone_escrow.utils.errors import LedgerCallFailed

logger = logging.getLogger(__name__)

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def c32_encode(data: bytes) -> str:
    """Crockford base-32 encode ``data``, keeping one ``0`` per leading zero byte."""

    value = int.from_bytes(data, "big")
    chars: list[str] = []
    while value > 0:
        value, rem = divmod(value, 32)
        chars.append(C32_ALPHABET[rem])
    leading = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading + "".join(reversed(chars))


def c32_address(version: int, hash160: bytes) -> str:
    """Render a standard principal the way wallets display it (``SP...``/``ST...``)."""

    if len(hash160) != 20:
        raise ValueError("hash160 must be 20 bytes")
    payload = bytes([version]) + hash160
    checksum = hashlib.sha256(hashlib.sha256(payload).digest()).digest()[:4]
    return "S" + C32_ALPHABET[version] + c32_encode(hash160 + checksum)


@dataclass(frozen=True)
class ClarityResponse:
    """A decoded ``(ok ...)`` / ``(err ...)`` value."""

    ok: bool
    value: Any


class ClarityDecodeError(ValueError):
    pass


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        if self.pos + size > len(self.data):
            raise ClarityDecodeError("Truncated Clarity value")
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "big")


def _decode(reader: _Reader) -> Any:
    type_id = reader.u8()
    if type_id == 0x00:
        return int.from_bytes(reader.take(16), "big", signed=True)
    if type_id == 0x01:
        return int.from_bytes(reader.take(16), "big")
    if type_id == 0x02:
        return reader.take(reader.u32())
    if type_id == 0x03:
        return True
    if type_id == 0x04:
        return False
    if type_id == 0x05:
        version = reader.u8()
        return c32_address(version, reader.take(20))
    if type_id == 0x06:
        version = reader.u8()
        address = c32_address(version, reader.take(20))
        name = reader.take(reader.u8()).decode("ascii")
        return f"{address}.{name}"
    if type_id in (0x07, 0x08):
        return ClarityResponse(ok=type_id == 0x07, value=_decode(reader))
    if type_id == 0x09:
        return None
    if type_id == 0x0A:
        return _decode(reader)
    if type_id == 0x0B:
        return [_decode(reader) for _ in range(reader.u32())]
    if type_id == 0x0C:
        entries: dict[str, Any] = {}
        for _ in range(reader.u32()):
            key = reader.take(reader.u8()).decode("ascii")
            entries[key] = _decode(reader)
        return entries
    if type_id == 0x0D:
        return reader.take(reader.u32()).decode("ascii")
    if type_id == 0x0E:
        return reader.take(reader.u32()).decode("utf-8")
    raise ClarityDecodeError(f"Unsupported Clarity type 0x{type_id:02x}")


def decode_clarity_hex(value: str) -> Any:
    """Decode a hex-serialized Clarity value.

    ``none`` becomes ``None``, ``some`` unwraps to its payload, principals
    become their c32 addresses and responses become ``ClarityResponse``.
    """

    text = value[2:] if value.startswith("0x") else value
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ClarityDecodeError("Clarity value is not valid hex") from exc
    reader = _Reader(raw)
    decoded = _decode(reader)
    if reader.pos != len(raw):
        raise ClarityDecodeError("Trailing bytes after Clarity value")
    return decoded


class StacksNodeClient:
    """Evaluates read-only escrow contract functions over HTTP."""

    def __init__(
        self,
        *,
        api_url: str,
        contract_address: str,
        contract_name: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.contract_address = contract_address
        self.contract_name = contract_name
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "StacksNodeClient":
        return cls(
            api_url=settings.STACKS_API_URL,
            contract_address=settings.ESCROW_CONTRACT_ADDRESS,
            contract_name=settings.ESCROW_CONTRACT_NAME,
            timeout=settings.STACKS_READ_TIMEOUT_SECONDS,
            **kwargs,
        )

    async def read_only(self, function_name: str) -> Any:
        url = (
            f"{self.api_url}/v2/contracts/call-read/"
            f"{self.contract_address}/{self.contract_name}/{function_name}"
        )
        body = {"sender": self.contract_address, "arguments": []}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=body)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning(
                "Read-only contract call failed",
                extra={"function": function_name, "error": str(exc)},
            )
            raise LedgerCallFailed(
                "Stacks node request failed.", details={"function": function_name}
            ) from exc

        if not payload.get("okay"):
            raise LedgerCallFailed(
                "Read-only contract call was rejected.",
                details={"function": function_name, "cause": payload.get("cause")},
            )
        try:
            decoded = decode_clarity_hex(payload.get("result", ""))
        except ClarityDecodeError as exc:
            raise LedgerCallFailed(
                "Could not decode contract result.", details={"function": function_name}
            ) from exc

        if isinstance(decoded, ClarityResponse):
            if not decoded.ok:
                raise LedgerCallFailed(
                    "Contract returned an error response.",
                    details={"function": function_name, "value": decoded.value},
                )
            return decoded.value
        return decoded


__all__ = [
    "C32_ALPHABET",
    "ClarityDecodeError",
    "ClarityResponse",
    "StacksNodeClient",
    "c32_address",
    "c32_encode",
    "decode_clarity_hex",
]
