"""
Error taxonomy.

Verification errors are recoverable by the member restarting the flow, each
one carries a short message that can be shown to them as is. Balance and role
mutation errors are per-item failures: they are logged and counted, never
allowed to abort a batch run. Configuration and store errors are fatal to the
run that hits them.
"""


class RolegateError(Exception):
    """Base class for every error raised by rolegate."""


class VerificationError(RolegateError):
    """Raised when a challenge cannot be issued or a signature cannot be accepted."""

    code = "verification_error"
    user_message = "Verification failed. Please start the verification process again."

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class InvalidAddress(VerificationError):
    code = "invalid_address"
    user_message = "Invalid wallet address format. Please try again with a valid EVM address."


class RateLimited(VerificationError):
    code = "rate_limited"
    user_message = "Too many verification attempts. Please try again later."


class NoChallenge(VerificationError):
    code = "no_challenge"
    user_message = "No pending verification found. Please start the verification process again."


class Expired(VerificationError):
    code = "expired"
    user_message = "Verification request expired. Please start the process again."


class MalformedSignature(VerificationError):
    code = "malformed_signature"
    user_message = (
        "Invalid signature format. Please make sure you copied the entire signature correctly."
    )


class AddressMismatch(VerificationError):
    code = "address_mismatch"
    user_message = (
        "Signature verification failed. The signature does not match the provided wallet address."
    )


class BalanceFetchError(RolegateError):
    """Raised when the balance of a single wallet cannot be read."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"failed to fetch balance for {address}: {reason}")
        self.address = address
        self.reason = reason


class RoleMutationError(RolegateError):
    """Raised when adding or removing a single role fails."""

    def __init__(self, community_id: str, role_id: str, reason: str):
        super().__init__(f"role {role_id} in community {community_id}: {reason}")
        self.community_id = community_id
        self.role_id = role_id
        self.reason = reason


class PermissionOrHierarchyError(RoleMutationError):
    """The acting bot lacks manage-roles rights or ranks too low for the role."""


class TierConfigError(RolegateError):
    """Raised when the tier configuration cannot be loaded."""


class StoreUnavailableError(RolegateError):
    """Raised when the persistent store cannot be reached."""
