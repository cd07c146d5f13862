from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Tuple


class MemoClientError(Exception):
    """Base class for every failure raised by the memo clients."""


class ConfigError(MemoClientError):
    pass


class PayloadValidationError(MemoClientError, ValueError):
    pass


class InsufficientBalanceError(MemoClientError):
    pass


class SupplyExhaustedError(MemoClientError):
    pass


class LedgerError(MemoClientError):
    """A ledger call failed. Carries the raw error text, program logs and a classified hint."""

    def __init__(self, message: str, raw: Optional[str] = None, logs: Optional[Sequence[str]] = None):
        self.raw = raw or message
        self.logs = list(logs or [])
        self.hint = describe_error(self.raw, self.logs)
        self.kind = classify_error(self.raw, self.logs)
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.hint:
            return f"{base} (hint: {self.hint})"
        return base


class SimulationError(LedgerError):
    pass


class SubmissionError(LedgerError):
    pass


class VerificationError(MemoClientError, AssertionError):
    def __init__(self, subject: str, diffs: List[Tuple[str, object, object]]):
        self.subject = subject
        self.diffs = diffs
        lines = [f"{field}: expected {expected!r}, got {actual!r}" for field, expected, actual in diffs]
        super().__init__(f"{subject} failed verification: " + "; ".join(lines))


SUPPLY_CAP_HINT = "Mint supply cap reached; no further tokens can be minted"

# Ordered: the first matching needle wins, so specific names precede generic ones.
ERROR_HINTS: List[Tuple[Tuple[str, ...], str]] = [
    (("memorequired", "memo required"), "Missing memo instruction"),
    (("supplylimitreached", "supply limit reached"), SUPPLY_CAP_HINT),
    (("no more shards", "burnhistoryfull"), "No more shards available; burn history storage is full"),
    (("insufficient funds", "insufficientfunds", "insufficient lamports"), "Insufficient SOL or token balance"),
    (("already in use",), "Account already in use; the target record was created earlier"),
    (("instructionfallbacknotfound", "fallback functions are not supported"), "Unknown instruction discriminator; check the operation name"),
    (("accountnotenoughkeys", "not enough account keys"), "Instruction is missing required accounts"),
    (("burnamounttoosmall", "burn amount too small"), "Burn amount below the program minimum"),
    (("burnamountmismatch",), "Burn amount in memo doesn't match the instruction argument"),
    (("invalidburnamount",), "Burn amount must be a whole number of tokens"),
    (("burntoomuch", "burn amount too large"), "Burn amount exceeds the per-transaction maximum"),
    (("memotooshort", "memo too short"), "Memo shorter than 69 bytes"),
    (("memotoolong", "memo too long"), "Memo longer than 800 bytes"),
    (("payloadtoolong", "payload too long"), "Memo payload longer than 787 bytes"),
    (("unsupportedmemoversion", "unsupported memo version"), "Unsupported memo version"),
    (("invalidmemoformat", "invalid memo format"), "Memo is not valid base64-encoded Borsh"),
    (("invalidcategory", "invalid category"), "Payload category doesn't match the target program"),
    (("invalidoperationlength",), "Operation string has an invalid length"),
    (("invalidoperation", "invalid operation"), "Payload operation doesn't match the instruction"),
    (("burnermismatch",), "Burner in memo doesn't match transaction signer"),
    (("creatormismatch",), "Creator in memo doesn't match transaction signer"),
    (("sendermismatch",), "Sender in memo doesn't match transaction signer"),
    (("usermismatch", "userpubkeymismatch"), "User in memo doesn't match transaction signer"),
    (("projectidmismatch",), "Project id in memo doesn't match the instruction argument"),
    (("groupidmismatch",), "Group id in memo doesn't match the next available id"),
    (("postidmismatch",), "Post id in memo doesn't match the instruction argument"),
    (("burnmessagetoolong", "messagetoolong", "message too long"), "Message exceeds the allowed length"),
    (("unauthorizedadmin",), "Signer is not the configured admin"),
    (("unauthorizedprojectaccess", "unauthorizedprofileaccess", "unauthorizedaccess"), "Signer is not authorized for this record"),
    (("unauthorizedmint",), "Mint is not the authorized memo token"),
    (("invalidtokenaccount", "unauthorizedtokenaccount"), "Token account doesn't belong to the signer or mint"),
    (("memotoofrequent",), "Messages sent too frequently for this group"),
    (("groupnotfound",), "Chat group does not exist"),
    (("projectnotfound",), "Project does not exist"),
    (("account does not exist", "accountnotinitialized", "could not find account"), "Account does not exist; initialize it first"),
    (("usernametoolong",), "Username exceeds 32 characters"),
    (("emptyusername",), "Username must not be empty"),
    (("aboutmetoolong",), "About-me exceeds 128 characters"),
    (("profileimagetoolong",), "Profile image exceeds 256 characters"),
    (("blockhash not found", "blockhashnotfound"), "Blockhash expired; rebuild and re-sign the transaction"),
]

RETRYABLE_NEEDLES = (
    "blockhash not found",
    "blockhashnotfound",
    "timed out",
    "timeout",
    "connection",
    "429",
    "503",
    "node is behind",
)

_UNSUPPORTED_VERSION = re.compile(r"unsupported[\w ]*version")
_CUSTOM_CODE = re.compile(r"custom program error: (0x[0-9a-fA-F]+)")


def _haystack(error: Optional[str], logs: Iterable[str] = ()) -> str:
    parts = [error or ""]
    parts.extend(logs or [])
    return "\n".join(parts).lower()


def describe_error(error: Optional[str], logs: Iterable[str] = ()) -> Optional[str]:
    """Return a short, human-readable hint for a known on-chain or RPC error."""
    text = _haystack(error, logs)
    if not text.strip():
        return None
    for needles, hint in ERROR_HINTS:
        if any(needle in text for needle in needles):
            return hint
    if _UNSUPPORTED_VERSION.search(text):
        return "Unsupported payload version"
    match = _CUSTOM_CODE.search(text)
    if match:
        return f"Custom program error {int(match.group(1), 16)}; program-specific constraint failed."
    return None


def classify_error(error: Optional[str], logs: Iterable[str] = ()) -> str:
    text = _haystack(error, logs)
    if not text.strip():
        return "unknown"
    if any(needle in text for needle in RETRYABLE_NEEDLES):
        return "retryable"
    if describe_error(error, logs) is not None:
        return "permanent"
    return "unknown"


def is_retryable(error: Optional[str]) -> bool:
    return classify_error(error) == "retryable"
