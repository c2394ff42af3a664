"""
EVM Wallet Authentication Utilities

This module handles the cryptographic side of wallet ownership proofs.
It implements the personal-sign (EIP-191) challenge flow.

Authentication Flow:
1. Backend generates a random nonce and a challenge message -> build_challenge_message()
2. Member signs the exact message text with their wallet (personal_sign)
3. Member sends back the signature
4. Backend recovers the signer: recover_signer()
   - Hashes the message with the EIP-191 prefix
   - Recovers the secp256k1 public key from the 65 byte signature
   - Returns the checksummed address of the signer

The signature verification uses:
- eth_account for message encoding and key recovery
- web3 for address validation and checksumming
"""

import secrets
from typing import Dict

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3


NONCE_NUM_BYTES = 16  # 16 bytes = 128 bits = 32 hex characters

MESSAGE_HEADER = "Verify community account"
MESSAGE_FIELDS = ("Wallet", "Community", "Nonce", "Timestamp")


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for a challenge.

    The nonce makes every challenge message unique, so a signature over an
    older message can never be replayed against a new challenge.

    Args:
        num_bytes: Number of random bytes to generate (default: 16 = 32 hex chars)

    Returns:
        Hex-encoded random string
    """
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def is_valid_address(address: str) -> bool:
    """True when ``address`` is a 20 byte hex address (any casing, valid checksum if mixed)."""
    if not isinstance(address, str):
        return False
    return Web3.is_address(address.strip())


def to_checksum(address: str) -> str:
    return Web3.to_checksum_address(address.strip())


def build_challenge_message(
    display_name: str,
    subject_id: str,
    wallet_address: str,
    community_name: str,
    nonce: str,
    timestamp: int,
) -> str:
    """
    Compose the text the member has to sign.

    Every field sits on its own ``Name: value`` line so the message can be
    parsed back with parse_challenge_message() for auditing.
    """
    return (
        f"{MESSAGE_HEADER}: {display_name} ({subject_id})\n"
        f"Wallet: {wallet_address}\n"
        f"Community: {community_name}\n"
        f"Nonce: {nonce}\n"
        f"Timestamp: {timestamp}"
    )


def parse_challenge_message(message: str) -> Dict[str, str]:
    """
    Read the fields of a challenge message back.

    Returns a dict with display_name, subject_id, wallet, community, nonce
    and timestamp.

    Raises:
        ValueError: If the text is not a challenge message
    """
    lines = message.split("\n")
    if len(lines) != 1 + len(MESSAGE_FIELDS):
        raise ValueError("unexpected number of lines in challenge message")

    head = lines[0]
    prefix = f"{MESSAGE_HEADER}: "
    if not head.startswith(prefix) or not head.endswith(")") or " (" not in head:
        raise ValueError("challenge message header is malformed")
    identity = head[len(prefix):-1]
    display_name, _, subject_id = identity.rpartition(" (")

    parsed = {"display_name": display_name, "subject_id": subject_id}
    for line, field in zip(lines[1:], MESSAGE_FIELDS):
        name, sep, value = line.partition(": ")
        if name != field or not sep:
            raise ValueError(f"expected field {field!r}, got {line!r}")
        parsed[field.lower()] = value
    return parsed


def _decode_signature(signature: str) -> bytes:
    """Helper: Decode a 0x-prefixed (or bare) hex signature to bytes."""
    value = signature.strip()
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    return bytes.fromhex(value)


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the address that produced ``signature`` over ``message``.

    Args:
        message: The exact challenge text that was signed
        signature: 65 byte signature, hex encoded with or without 0x

    Returns:
        Checksummed address of the signer

    Raises:
        ValueError: If the signature cannot be decoded or recovery fails
    """
    try:
        signature_bytes = _decode_signature(signature)
    except ValueError as exc:
        raise ValueError("signature is not valid hex") from exc
    if len(signature_bytes) != 65:
        raise ValueError(f"signature must be 65 bytes, got {len(signature_bytes)}")

    signable = encode_defunct(text=message)
    try:
        return Account.recover_message(signable, signature=signature_bytes)
    except Exception as exc:
        raise ValueError(f"could not recover signer: {exc}") from exc
