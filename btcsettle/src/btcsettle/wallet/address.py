"""
Bitcoin address decoding and network resolution.

The node hands back addresses as plain strings. Before any of them is
compared or written to a report it is resolved here: the checksum is
verified and the network is derived from the bech32 HRP or the base58
version byte, then checked against the configured network.
"""

from __future__ import annotations

import hashlib

from btcsettle.errors import AddressNetworkMismatchError, ProtocolDecodeError
from btcsettle.models import Address, AddressEncoding, AddressRole, NetworkType

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
BECH32_CONST = 1
BECH32M_CONST = 0x2BC830A3

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

# Signet shares the testnet HRP and version bytes
HRP_NETWORKS: dict[str, frozenset[NetworkType]] = {
    "bc": frozenset({NetworkType.MAINNET}),
    "tb": frozenset({NetworkType.TESTNET, NetworkType.SIGNET}),
    "bcrt": frozenset({NetworkType.REGTEST}),
}

# Regtest reuses the testnet base58 version bytes (P2PKH 0x6f, P2SH 0xc4)
BASE58_VERSION_NETWORKS: dict[int, frozenset[NetworkType]] = {
    0x00: frozenset({NetworkType.MAINNET}),
    0x05: frozenset({NetworkType.MAINNET}),
    0x6F: frozenset({NetworkType.TESTNET, NetworkType.SIGNET, NetworkType.REGTEST}),
    0xC4: frozenset({NetworkType.TESTNET, NetworkType.SIGNET, NetworkType.REGTEST}),
}


def get_bech32_hrp(network: NetworkType) -> str:
    """Get bech32 human-readable part for network."""
    return {
        NetworkType.MAINNET: "bc",
        NetworkType.TESTNET: "tb",
        NetworkType.SIGNET: "tb",
        NetworkType.REGTEST: "bcrt",
    }[network]


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def bech32_polymod(values: list[int]) -> int:
    """Bech32 checksum polymod"""
    gen = [0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3]
    chk = 1
    for v in values:
        b = chk >> 25
        chk = (chk & 0x1FFFFFF) << 5 ^ v
        for i in range(5):
            chk ^= gen[i] if ((b >> i) & 1) else 0
    return chk


def bech32_hrp_expand(hrp: str) -> list[int]:
    """Expand HRP for bech32"""
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def bech32_create_checksum(hrp: str, data: list[int], const: int = BECH32_CONST) -> list[int]:
    """Create bech32 (or bech32m) checksum"""
    values = bech32_hrp_expand(hrp) + data
    polymod = bech32_polymod(values + [0, 0, 0, 0, 0, 0]) ^ const
    return [(polymod >> 5 * (5 - i)) & 31 for i in range(6)]


def bech32_encode(hrp: str, data: list[int], const: int = BECH32_CONST) -> str:
    """Encode bech32 string"""
    combined = data + bech32_create_checksum(hrp, data, const)
    return hrp + "1" + "".join([BECH32_CHARSET[d] for d in combined])


def bech32_decode(address: str) -> tuple[str, list[int], AddressEncoding]:
    """
    Decode a bech32/bech32m string and verify its checksum.

    Returns:
        (hrp, data without checksum, encoding)

    Raises:
        ValueError: On mixed case, bad characters or bad checksum
    """
    if address.lower() != address and address.upper() != address:
        raise ValueError("Mixed case bech32 string")
    address = address.lower()

    pos = address.rfind("1")
    if pos < 1 or pos + 7 > len(address) or len(address) > 90:
        raise ValueError("Invalid bech32 separator position or length")

    hrp = address[:pos]
    if any(ord(c) < 33 or ord(c) > 126 for c in hrp):
        raise ValueError("Invalid bech32 HRP characters")

    data = []
    for c in address[pos + 1 :]:
        idx = BECH32_CHARSET.find(c)
        if idx == -1:
            raise ValueError(f"Invalid bech32 character: {c!r}")
        data.append(idx)

    polymod = bech32_polymod(bech32_hrp_expand(hrp) + data)
    if polymod == BECH32_CONST:
        encoding = AddressEncoding.BECH32
    elif polymod == BECH32M_CONST:
        encoding = AddressEncoding.BECH32M
    else:
        raise ValueError("Invalid bech32 checksum")

    return hrp, data[:-6], encoding


def convertbits(data: bytes, frombits: int, tobits: int, pad: bool = True) -> list[int]:
    """Convert between bit groups"""
    acc = 0
    bits = 0
    ret = []
    maxv = (1 << tobits) - 1
    max_acc = (1 << (frombits + tobits - 1)) - 1

    for value in data:
        acc = ((acc << frombits) | value) & max_acc
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)

    if pad:
        if bits:
            ret.append((acc << (tobits - bits)) & maxv)
    elif bits >= frombits or ((acc << (tobits - bits)) & maxv):
        raise ValueError("Invalid bits")

    return ret


def base58check_decode(address: str) -> bytes:
    """
    Decode a base58check string and verify its checksum.

    Returns:
        Payload including the version byte, without the 4-byte checksum
    """
    num = 0
    for c in address:
        idx = BASE58_ALPHABET.find(c)
        if idx == -1:
            raise ValueError(f"Invalid base58 character: {c!r}")
        num = num * 58 + idx

    raw = num.to_bytes((num.bit_length() + 7) // 8, "big")
    # Leading '1's encode leading zero bytes
    pad = len(address) - len(address.lstrip("1"))
    raw = b"\x00" * pad + raw

    if len(raw) < 5:
        raise ValueError("Base58 string too short")

    payload, checksum = raw[:-4], raw[-4:]
    if hashlib.sha256(hashlib.sha256(payload).digest()).digest()[:4] != checksum:
        raise ValueError("Invalid base58 checksum")
    return payload


def pubkey_hash_to_p2wpkh_address(pubkey_hash: bytes, network: NetworkType) -> str:
    """Encode a 20-byte pubkey hash as a P2WPKH (native segwit v0) address."""
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid pubkey hash length: {len(pubkey_hash)}")
    witness_program = convertbits(pubkey_hash, 8, 5)
    return bech32_encode(get_bech32_hrp(network), [0] + witness_program)


def address_networks(address: str) -> tuple[frozenset[NetworkType], AddressEncoding]:
    """
    Determine which networks an address can belong to.

    Raises:
        ProtocolDecodeError: If the address cannot be decoded
    """
    # base58 addresses start with 1, 3, m, n or 2 so they never carry a known HRP
    lowered = address.lower()
    if any(lowered.startswith(hrp + "1") for hrp in HRP_NETWORKS):
        try:
            hrp, data, encoding = bech32_decode(address)
        except ValueError as e:
            raise ProtocolDecodeError(f"Invalid bech32 address: {e}", address=address) from e
        if not data:
            raise ProtocolDecodeError("Empty witness program", address=address)
        witness_version = data[0]
        # BIP350: v0 must use bech32, v1+ must use bech32m
        expected = AddressEncoding.BECH32 if witness_version == 0 else AddressEncoding.BECH32M
        if encoding != expected:
            raise ProtocolDecodeError(
                f"Witness v{witness_version} address uses {encoding.value} checksum",
                address=address,
            )
        return HRP_NETWORKS[hrp], encoding

    try:
        payload = base58check_decode(address)
    except ValueError as e:
        raise ProtocolDecodeError(f"Invalid address: {e}", address=address) from e

    version = payload[0]
    if version not in BASE58_VERSION_NETWORKS or len(payload) != 21:
        raise ProtocolDecodeError(f"Unknown base58 address version {version:#04x}", address=address)
    return BASE58_VERSION_NETWORKS[version], AddressEncoding.BASE58


def resolve_address(
    address: str,
    network: NetworkType,
    label: str = "",
    role: AddressRole = AddressRole.SELF,
) -> Address:
    """
    Resolve a raw address string against the configured network.

    Raises:
        ProtocolDecodeError: If the address is malformed
        AddressNetworkMismatchError: If the address belongs to another network
    """
    networks, encoding = address_networks(address)
    if network not in networks:
        names = ", ".join(sorted(n.value for n in networks))
        raise AddressNetworkMismatchError(
            f"Address {address} is for {names}, expected {network.value}",
            address=address,
        )
    return Address(value=address, network=network, encoding=encoding, label=label, role=role)
