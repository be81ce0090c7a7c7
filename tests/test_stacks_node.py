import json

import httpx
import pytest

from milestone_escrow.services.stacks_node import (
    ClarityDecodeError,
    ClarityResponse,
    StacksNodeClient,
    c32_address,
    decode_clarity_hex,
)
from milestone_escrow.utils.errors import LedgerCallFailed

ZERO_PRINCIPAL_HEX = "05" + "16" + "00" * 20
ZERO_PRINCIPAL = "SP000000000000000000002Q6VF78"


def _uint(value: int) -> str:
    return "01" + value.to_bytes(16, "big").hex()


def test_c32_address_of_zero_hash():
    assert c32_address(22, bytes(20)) == ZERO_PRINCIPAL


def test_c32_address_rejects_short_hash():
    with pytest.raises(ValueError):
        c32_address(22, bytes(19))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (_uint(5), 5),
        ("00" + "ff" * 16, -1),
        ("03", True),
        ("04", False),
        ("09", None),
        ("0a" + _uint(9), 9),
        ("0a" + ZERO_PRINCIPAL_HEX, ZERO_PRINCIPAL),
        ("0d" + "00000002" + "6869", "hi"),
        ("0b" + "00000002" + _uint(1) + _uint(2), [1, 2]),
        ("0c" + "00000001" + "01" + "61" + "03", {"a": True}),
    ],
)
def test_decode_clarity_values(raw, expected):
    assert decode_clarity_hex("0x" + raw) == expected


def test_decode_contract_principal():
    name = b"escrow-v4".hex()
    decoded = decode_clarity_hex("06" + "16" + "00" * 20 + "09" + name)
    assert decoded == f"{ZERO_PRINCIPAL}.escrow-v4"


def test_decode_responses():
    assert decode_clarity_hex("07" + _uint(1)) == ClarityResponse(ok=True, value=1)
    assert decode_clarity_hex("08" + _uint(3)) == ClarityResponse(ok=False, value=3)


@pytest.mark.parametrize("raw", ["zz", "01ff", "03ff", "ff"])
def test_decode_rejects_malformed_input(raw):
    with pytest.raises(ClarityDecodeError):
        decode_clarity_hex(raw)


def _client(handler) -> StacksNodeClient:
    return StacksNodeClient(
        api_url="https://node.test/",
        contract_address="ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM",
        contract_name="escrow-multi-token-v4",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.anyio
async def test_read_only_unwraps_ok_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"okay": True, "result": "0x07" + ZERO_PRINCIPAL_HEX})

    owner = await _client(handler).read_only("get-contract-owner")

    assert owner == ZERO_PRINCIPAL
    assert seen["path"] == (
        "/v2/contracts/call-read/ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM/escrow-multi-token-v4/get-contract-owner"
    )
    assert seen["body"]["arguments"] == []


@pytest.mark.anyio
async def test_read_only_returns_optional_none():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"okay": True, "result": "0x09"})

    assert await _client(handler).read_only("get-proposed-owner") is None


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, json={"okay": False, "cause": "NoSuchContract"}),
        httpx.Response(200, json={"okay": True, "result": "0x08" + _uint(100)}),
        httpx.Response(200, json={"okay": True, "result": "0xnothex"}),
    ],
)
async def test_read_only_failures_raise_ledger_error(response):
    def handler(request: httpx.Request) -> httpx.Response:
        return response

    with pytest.raises(LedgerCallFailed):
        await _client(handler).read_only("get-contract-owner")
