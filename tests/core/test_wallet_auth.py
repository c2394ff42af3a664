import pytest

from rolegate.core.wallet_auth import (
    build_challenge_message,
    generate_nonce,
    is_valid_address,
    parse_challenge_message,
    recover_signer,
    to_checksum,
)
from tests.fakes import sign


class TestNonce:
    """Test cases for nonce generation"""

    def test_nonce_is_128_bit_hex(self):
        """Default nonce is 16 random bytes as 32 hex characters"""
        nonce = generate_nonce()
        assert len(nonce) == 32
        int(nonce, 16)

    def test_nonces_are_unique(self):
        """Consecutive nonces never repeat"""
        assert len({generate_nonce() for _ in range(50)}) == 50


class TestAddress:
    """Test cases for address validation and checksumming"""

    def test_lowercase_address_is_valid(self, alice):
        assert is_valid_address(alice.address.lower())

    def test_checksummed_address_is_valid(self, alice):
        assert is_valid_address(alice.address)

    @pytest.mark.parametrize("value", ["", "0x123", "not-an-address", None, 42])
    def test_invalid_addresses(self, value):
        """Short, non hex and non string values are rejected"""
        assert not is_valid_address(value)

    def test_to_checksum(self, alice):
        assert to_checksum("  " + alice.address.lower() + " ") == alice.address


class TestChallengeMessage:
    """Test cases for building and parsing challenge messages"""

    def test_build_exact_layout(self):
        message = build_challenge_message(
            display_name="alice",
            subject_id="42",
            wallet_address="0xABC",
            community_name="Bera Club",
            nonce="deadbeef",
            timestamp=1700000000,
        )
        assert message == (
            "Verify community account: alice (42)\n"
            "Wallet: 0xABC\n"
            "Community: Bera Club\n"
            "Nonce: deadbeef\n"
            "Timestamp: 1700000000"
        )

    def test_parse_reads_fields_back(self):
        """Display names may contain parentheses, the subject id is the last group"""
        message = build_challenge_message("alice (dev)", "42", "0xABC", "Bera Club", "ff", 5)
        parsed = parse_challenge_message(message)
        assert parsed == {
            "display_name": "alice (dev)",
            "subject_id": "42",
            "wallet": "0xABC",
            "community": "Bera Club",
            "nonce": "ff",
            "timestamp": "5",
        }

    @pytest.mark.parametrize(
        "text",
        [
            "hello",
            "Verify community account: alice (42)\nWallet: x\nCommunity: y\nNonce: z",
            "Something else: alice (42)\nWallet: x\nCommunity: y\nNonce: z\nTimestamp: 1",
            "Verify community account: alice (42)\nWallet: x\nGuild: y\nNonce: z\nTimestamp: 1",
        ],
    )
    def test_parse_rejects_other_text(self, text):
        with pytest.raises(ValueError):
            parse_challenge_message(text)


class TestRecoverSigner:
    """Test cases for EIP-191 signer recovery"""

    def test_recovers_signer(self, alice):
        signature = sign(alice, "hello rolegate")
        assert recover_signer("hello rolegate", signature) == alice.address

    def test_accepts_signature_with_and_without_prefix(self, alice):
        signature = sign(alice, "hello").removeprefix("0x")
        assert recover_signer("hello", signature) == alice.address
        assert recover_signer("hello", "0x" + signature) == alice.address

    def test_other_message_recovers_other_address(self, alice):
        """A signature over a different text does not recover the signer"""
        signature = sign(alice, "message one")
        assert recover_signer("message two", signature) != alice.address

    @pytest.mark.parametrize("signature", ["zz", "0x1234", "", "0x" + "00" * 64])
    def test_malformed_signature(self, signature):
        with pytest.raises(ValueError):
            recover_signer("hello", signature)
