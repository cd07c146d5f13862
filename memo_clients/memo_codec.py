"""Structured memo payloads carried by the memo instruction.

Memo bytes are ASCII base64 of a Borsh layout. Burning operations wrap their
operation payload in a ``BurnMemo`` envelope so the program can cross-check the
declared amount; the rest place the payload in the memo directly.
"""

from __future__ import annotations

import base64
import binascii
import random
import string
import time
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Type, Union

from borsh_construct import Bytes, CStruct, I64, Option, String, U8, U64, Vec
from solders.pubkey import Pubkey
from solders.signature import Signature

from .errors import PayloadValidationError

DECIMAL_FACTOR = 1_000_000
MEMO_MIN_LENGTH = 69
MEMO_MAX_LENGTH = 800
BURN_MEMO_VERSION = 1
PAYLOAD_VERSION = 1
# u8 version + u64 burn_amount + u32 payload length
BURN_MEMO_OVERHEAD = 1 + 8 + 4
MAX_PAYLOAD_LENGTH = MEMO_MAX_LENGTH - BURN_MEMO_OVERHEAD
MAX_BURN_PER_TX = 1_000_000_000_000 * DECIMAL_FACTOR

BurnMemoLayout = CStruct(
    "version" / U8,
    "burn_amount" / U64,
    "payload" / Bytes,
)
PayloadHeaderLayout = CStruct(
    "version" / U8,
    "category" / String,
    "operation" / String,
)
# Option<Option<String>>: the inner struct adds no bytes, it only lets the
# outer tag carry an explicit "present but empty" value.
ClearableString = Option(CStruct("value" / Option(String)))


def to_units(tokens: int) -> int:
    return int(tokens) * DECIMAL_FACTOR


def to_tokens(units: int) -> float:
    return units / DECIMAL_FACTOR


def _byte_len(value: str) -> int:
    return len(value.encode("utf-8"))


# Update semantics for clearable fields.
class Unchanged:
    def __repr__(self) -> str:
        return "Unchanged()"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Unchanged)

    def __hash__(self) -> int:
        return hash(Unchanged)


class Cleared:
    def __repr__(self) -> str:
        return "Cleared()"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Cleared)

    def __hash__(self) -> int:
        return hash(Cleared)


@dataclass(frozen=True)
class SetTo:
    value: str


FieldUpdate = Union[Unchanged, Cleared, SetTo]
UNCHANGED = Unchanged()
CLEARED = Cleared()


def update_to_wire(update: FieldUpdate) -> Optional[Dict[str, Optional[str]]]:
    if isinstance(update, Unchanged):
        return None
    if isinstance(update, Cleared):
        return {"value": None}
    if isinstance(update, SetTo):
        return {"value": update.value}
    raise PayloadValidationError(f"Unsupported field update {update!r}")


def update_from_wire(value: Any) -> FieldUpdate:
    if value is None:
        return UNCHANGED
    if value["value"] is None:
        return CLEARED
    return SetTo(value["value"])


def _plain(value: Any) -> Any:
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class MemoPayload:
    """Base for every operation payload.

    Subclasses declare ``WIRE`` (ordered Borsh fields), the expected
    ``CATEGORY``/``OPERATION``, the field naming the signer (``ACTOR_FIELD``)
    and the field naming the target entity id (``ID_FIELD``). ``STRING_BOUNDS``
    maps string fields to inclusive byte-length bounds; optional fields are
    checked only when present.
    """

    CATEGORY: ClassVar[str]
    OPERATION: ClassVar[str]
    VERSION: ClassVar[int] = PAYLOAD_VERSION
    WIRE: ClassVar[Tuple[Tuple[str, Any], ...]]
    LAYOUT: ClassVar[CStruct]
    ACTOR_FIELD: ClassVar[Optional[str]] = None
    ID_FIELD: ClassVar[Optional[str]] = None
    STRING_BOUNDS: ClassVar[Dict[str, Tuple[int, int]]] = {}
    TAG_BOUNDS: ClassVar[Optional[Tuple[int, int, int]]] = None  # max count, min len, max len

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if "WIRE" in cls.__dict__:
            cls.LAYOUT = CStruct(*(name / con for name, con in cls.WIRE))

    def to_wire(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name, _ in self.WIRE}

    @classmethod
    def from_wire(cls, parsed: Any) -> "MemoPayload":
        names = {f.name for f in fields(cls)}
        return cls(**{name: _plain(parsed[name]) for name, _ in cls.WIRE if name in names})

    def encode(self) -> bytes:
        try:
            return self.LAYOUT.build(self.to_wire())
        except Exception as exc:  # noqa: BLE001
            raise PayloadValidationError(f"Cannot serialize {type(self).__name__}: {exc}") from exc

    @classmethod
    def decode(cls, data: bytes) -> "MemoPayload":
        try:
            parsed = cls.LAYOUT.parse(data)
        except Exception as exc:  # noqa: BLE001
            raise PayloadValidationError(f"Invalid memo format: cannot decode {cls.__name__}: {exc}") from exc
        return cls.from_wire(parsed)

    @property
    def actor(self) -> Optional[str]:
        return getattr(self, self.ACTOR_FIELD) if self.ACTOR_FIELD else None

    @property
    def entity_id(self) -> Optional[int]:
        return getattr(self, self.ID_FIELD) if self.ID_FIELD else None

    def validate(self, expected_actor: Optional[Union[str, Pubkey]] = None, expected_id: Optional[int] = None) -> None:
        if self.version != self.VERSION:
            raise PayloadValidationError(f"Unsupported {type(self).__name__} version: {self.version} (expected {self.VERSION})")
        if self.category != self.CATEGORY:
            raise PayloadValidationError(f"Invalid category: expected '{self.CATEGORY}', got '{self.category}'")
        if self.operation != self.OPERATION:
            raise PayloadValidationError(f"Invalid operation: expected '{self.OPERATION}', got '{self.operation}'")
        if self.ACTOR_FIELD and expected_actor is not None and self.actor != str(expected_actor):
            raise PayloadValidationError(
                f"{self.ACTOR_FIELD.capitalize()} mismatch: memo has {self.actor}, signer is {expected_actor}"
            )
        if self.ID_FIELD and expected_id is not None and self.entity_id != expected_id:
            label = self.ID_FIELD.replace("_", " ").capitalize()
            raise PayloadValidationError(f"{label} mismatch: memo has {self.entity_id}, expected {expected_id}")
        if self.ID_FIELD and not 0 <= int(self.entity_id) < 2**64:
            raise PayloadValidationError(f"{self.ID_FIELD} out of u64 range: {self.entity_id}")
        for name, (low, high) in self.STRING_BOUNDS.items():
            self._check_string(name, getattr(self, name), low, high)
        if self.TAG_BOUNDS is not None:
            self._check_tags(getattr(self, "tags"))
        self.validate_extra()

    def validate_extra(self) -> None:
        pass

    def _check_string(self, name: str, value: Any, low: int, high: int) -> None:
        if value is None:
            return
        if isinstance(value, (Unchanged, Cleared)):
            return
        if isinstance(value, SetTo):
            value = value.value
        size = _byte_len(value)
        if size < low:
            if low == 1:
                raise PayloadValidationError(f"Empty {name}: {name} must not be empty")
            raise PayloadValidationError(f"{name} too short: {size} bytes (minimum {low})")
        if size > high:
            raise PayloadValidationError(f"{name} too long: {size} bytes (maximum {high})")

    def _check_tags(self, tags: Optional[Sequence[str]]) -> None:
        if tags is None:
            return
        max_count, low, high = self.TAG_BOUNDS
        if len(tags) > max_count:
            raise PayloadValidationError(f"Too many tags: {len(tags)} (maximum {max_count})")
        for tag in tags:
            self._check_string("tag", tag, low, high)


HEADER = (("version", U8), ("category", String), ("operation", String))
TAGS = (4, 1, 32)


# blog


@dataclass
class BlogCreationData(MemoPayload):
    CATEGORY = "blog"
    OPERATION = "create_blog"
    WIRE = HEADER + (("creator", String), ("name", String), ("description", String), ("image", String))
    ACTOR_FIELD = "creator"
    STRING_BOUNDS = {"name": (1, 64), "description": (0, 256), "image": (0, 256)}

    creator: str
    name: str
    description: str = ""
    image: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "blog"
    operation: str = "create_blog"


@dataclass
class BlogUpdateData(MemoPayload):
    CATEGORY = "blog"
    OPERATION = "update_blog"
    WIRE = HEADER + (
        ("creator", String),
        ("name", Option(String)),
        ("description", Option(String)),
        ("image", Option(String)),
    )
    ACTOR_FIELD = "creator"
    STRING_BOUNDS = {"name": (1, 64), "description": (0, 256), "image": (0, 256)}

    creator: str
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    version: int = PAYLOAD_VERSION
    category: str = "blog"
    operation: str = "update_blog"


@dataclass
class BlogBurnData(MemoPayload):
    CATEGORY = "blog"
    OPERATION = "burn_for_blog"
    WIRE = HEADER + (("burner", String), ("message", String))
    ACTOR_FIELD = "burner"
    STRING_BOUNDS = {"message": (0, 696)}

    burner: str
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "blog"
    operation: str = "burn_for_blog"


@dataclass
class BlogMintData(MemoPayload):
    CATEGORY = "blog"
    OPERATION = "mint_for_blog"
    WIRE = HEADER + (("minter", String), ("message", String))
    ACTOR_FIELD = "minter"
    STRING_BOUNDS = {"message": (0, 696)}

    minter: str
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "blog"
    operation: str = "mint_for_blog"


# chat


@dataclass
class ChatGroupCreationData(MemoPayload):
    CATEGORY = "chat"
    OPERATION = "create_group"
    WIRE = HEADER + (
        ("group_id", U64),
        ("name", String),
        ("description", String),
        ("image", String),
        ("tags", Vec(String)),
        ("min_memo_interval", Option(I64)),
    )
    ID_FIELD = "group_id"
    STRING_BOUNDS = {"name": (1, 64), "description": (0, 256), "image": (0, 256)}
    TAG_BOUNDS = TAGS

    group_id: int
    name: str
    description: str = ""
    image: str = ""
    tags: List[str] = field(default_factory=list)
    min_memo_interval: Optional[int] = None
    version: int = PAYLOAD_VERSION
    category: str = "chat"
    operation: str = "create_group"

    def validate_extra(self) -> None:
        if self.min_memo_interval is not None and self.min_memo_interval < 0:
            raise PayloadValidationError(f"min_memo_interval must not be negative: {self.min_memo_interval}")


@dataclass
class ChatMessageData(MemoPayload):
    CATEGORY = "chat"
    OPERATION = "send_message"
    WIRE = HEADER + (
        ("group_id", U64),
        ("sender", String),
        ("message", String),
        ("receiver", Option(String)),
        ("reply_to_sig", Option(String)),
    )
    ACTOR_FIELD = "sender"
    ID_FIELD = "group_id"
    STRING_BOUNDS = {"message": (1, 512)}

    group_id: int
    sender: str
    message: str
    receiver: Optional[str] = None
    reply_to_sig: Optional[str] = None
    version: int = PAYLOAD_VERSION
    category: str = "chat"
    operation: str = "send_message"

    def validate_extra(self) -> None:
        if self.receiver is not None:
            try:
                Pubkey.from_string(self.receiver)
            except Exception as exc:  # noqa: BLE001
                raise PayloadValidationError(f"Invalid receiver pubkey: {self.receiver}") from exc
        if self.reply_to_sig is not None:
            try:
                Signature.from_string(self.reply_to_sig)
            except Exception as exc:  # noqa: BLE001
                raise PayloadValidationError(f"Invalid reply_to_sig signature: {self.reply_to_sig}") from exc


@dataclass
class ChatGroupBurnData(MemoPayload):
    CATEGORY = "chat"
    OPERATION = "burn_for_group"
    WIRE = HEADER + (("group_id", U64), ("burner", String), ("message", String))
    ACTOR_FIELD = "burner"
    ID_FIELD = "group_id"
    STRING_BOUNDS = {"message": (0, 512)}

    group_id: int
    burner: str
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "chat"
    operation: str = "burn_for_group"


# project


@dataclass
class ProjectCreationData(MemoPayload):
    CATEGORY = "project"
    OPERATION = "create_project"
    WIRE = HEADER + (
        ("project_id", U64),
        ("name", String),
        ("description", String),
        ("image", String),
        ("website", String),
        ("tags", Vec(String)),
    )
    ID_FIELD = "project_id"
    STRING_BOUNDS = {"name": (1, 64), "description": (0, 256), "image": (0, 256), "website": (0, 128)}
    TAG_BOUNDS = TAGS

    project_id: int
    name: str
    description: str = ""
    image: str = ""
    website: str = ""
    tags: List[str] = field(default_factory=list)
    version: int = PAYLOAD_VERSION
    category: str = "project"
    operation: str = "create_project"


@dataclass
class ProjectUpdateData(MemoPayload):
    CATEGORY = "project"
    OPERATION = "update_project"
    WIRE = HEADER + (
        ("project_id", U64),
        ("name", Option(String)),
        ("description", Option(String)),
        ("image", Option(String)),
        ("website", Option(String)),
        ("tags", Option(Vec(String))),
    )
    ID_FIELD = "project_id"
    STRING_BOUNDS = {"name": (1, 64), "description": (0, 256), "image": (0, 256), "website": (0, 128)}
    TAG_BOUNDS = TAGS

    project_id: int
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    website: Optional[str] = None
    tags: Optional[List[str]] = None
    version: int = PAYLOAD_VERSION
    category: str = "project"
    operation: str = "update_project"


@dataclass
class ProjectBurnData(MemoPayload):
    CATEGORY = "project"
    OPERATION = "burn_for_project"
    WIRE = HEADER + (("project_id", U64), ("burner", String), ("message", String))
    ACTOR_FIELD = "burner"
    ID_FIELD = "project_id"
    STRING_BOUNDS = {"message": (0, 696)}

    project_id: int
    burner: str
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "project"
    operation: str = "burn_for_project"


# forum


@dataclass
class PostCreationData(MemoPayload):
    CATEGORY = "forum"
    OPERATION = "create_post"
    WIRE = HEADER + (
        ("creator", String),
        ("post_id", U64),
        ("title", String),
        ("content", String),
        ("image", String),
    )
    ACTOR_FIELD = "creator"
    ID_FIELD = "post_id"
    STRING_BOUNDS = {"title": (1, 128), "content": (1, 512), "image": (0, 256)}

    creator: str
    post_id: int
    title: str
    content: str
    image: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "forum"
    operation: str = "create_post"


@dataclass
class PostBurnData(MemoPayload):
    CATEGORY = "forum"
    OPERATION = "burn_for_post"
    WIRE = HEADER + (("user", String), ("post_id", U64), ("message", String))
    ACTOR_FIELD = "user"
    ID_FIELD = "post_id"
    STRING_BOUNDS = {"message": (0, 696)}

    user: str
    post_id: int
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "forum"
    operation: str = "burn_for_post"


@dataclass
class PostMintData(MemoPayload):
    CATEGORY = "forum"
    OPERATION = "mint_for_post"
    WIRE = HEADER + (("user", String), ("post_id", U64), ("message", String))
    ACTOR_FIELD = "user"
    ID_FIELD = "post_id"
    STRING_BOUNDS = {"message": (0, 696)}

    user: str
    post_id: int
    message: str = ""
    version: int = PAYLOAD_VERSION
    category: str = "forum"
    operation: str = "mint_for_post"


# profile


@dataclass
class ProfileCreationData(MemoPayload):
    CATEGORY = "profile"
    OPERATION = "create_profile"
    WIRE = HEADER + (
        ("user_pubkey", String),
        ("username", String),
        ("image", String),
        ("about_me", Option(String)),
    )
    ACTOR_FIELD = "user_pubkey"
    STRING_BOUNDS = {"username": (1, 32), "image": (0, 256), "about_me": (0, 128)}

    user_pubkey: str
    username: str
    image: str = ""
    about_me: Optional[str] = None
    version: int = PAYLOAD_VERSION
    category: str = "profile"
    operation: str = "create_profile"


@dataclass
class ProfileUpdateData(MemoPayload):
    CATEGORY = "profile"
    OPERATION = "update_profile"
    WIRE = HEADER + (
        ("user_pubkey", String),
        ("username", Option(String)),
        ("image", Option(String)),
        ("about_me", ClearableString),
    )
    ACTOR_FIELD = "user_pubkey"
    STRING_BOUNDS = {"username": (1, 32), "image": (0, 256), "about_me": (0, 128)}

    user_pubkey: str
    username: Optional[str] = None
    image: Optional[str] = None
    about_me: FieldUpdate = UNCHANGED
    version: int = PAYLOAD_VERSION
    category: str = "profile"
    operation: str = "update_profile"

    def to_wire(self) -> Dict[str, Any]:
        wire = super().to_wire()
        wire["about_me"] = update_to_wire(self.about_me)
        return wire

    @classmethod
    def from_wire(cls, parsed: Any) -> "ProfileUpdateData":
        payload = super().from_wire(parsed)
        payload.about_me = update_from_wire(parsed["about_me"])
        return payload


PAYLOAD_TYPES: Dict[Tuple[str, str], Type[MemoPayload]] = {
    (cls.CATEGORY, cls.OPERATION): cls
    for cls in (
        BlogCreationData,
        BlogUpdateData,
        BlogBurnData,
        BlogMintData,
        ChatGroupCreationData,
        ChatMessageData,
        ChatGroupBurnData,
        ProjectCreationData,
        ProjectUpdateData,
        ProjectBurnData,
        PostCreationData,
        PostBurnData,
        PostMintData,
        ProfileCreationData,
        ProfileUpdateData,
    )
}


@dataclass
class BurnMemo:
    burn_amount: int
    payload: bytes
    version: int = BURN_MEMO_VERSION

    def encode(self) -> bytes:
        return BurnMemoLayout.build({"version": self.version, "burn_amount": self.burn_amount, "payload": self.payload})

    @classmethod
    def decode(cls, data: bytes) -> "BurnMemo":
        try:
            parsed = BurnMemoLayout.parse(data)
        except Exception as exc:  # noqa: BLE001
            raise PayloadValidationError(f"Invalid memo format: cannot decode BurnMemo: {exc}") from exc
        return cls(burn_amount=parsed.burn_amount, payload=bytes(parsed.payload), version=parsed.version)

    def validate(self, expected_amount: Optional[int] = None) -> None:
        if self.version != BURN_MEMO_VERSION:
            raise PayloadValidationError(f"Unsupported memo version: {self.version} (expected {BURN_MEMO_VERSION})")
        if expected_amount is not None and self.burn_amount != expected_amount:
            raise PayloadValidationError(
                f"Burn amount mismatch: memo declares {self.burn_amount}, instruction burns {expected_amount}"
            )
        if len(self.payload) > MAX_PAYLOAD_LENGTH:
            raise PayloadValidationError(
                f"Payload too long: {len(self.payload)} bytes (maximum {MAX_PAYLOAD_LENGTH})"
            )


def check_memo_length(memo: bytes) -> bytes:
    if len(memo) < MEMO_MIN_LENGTH:
        raise PayloadValidationError(f"Memo too short: {len(memo)} bytes (minimum {MEMO_MIN_LENGTH})")
    if len(memo) > MEMO_MAX_LENGTH:
        raise PayloadValidationError(f"Memo too long: {len(memo)} bytes (maximum {MEMO_MAX_LENGTH})")
    return memo


def check_burn_amount(amount: int, minimum_tokens: int = 1) -> int:
    if amount < to_units(minimum_tokens):
        raise PayloadValidationError(f"Burn amount too small: {amount} units (minimum {to_units(minimum_tokens)})")
    if amount > MAX_BURN_PER_TX:
        raise PayloadValidationError(f"Burn amount too large: {amount} units (maximum {MAX_BURN_PER_TX})")
    if amount % DECIMAL_FACTOR != 0:
        raise PayloadValidationError(f"Invalid burn amount: {amount} units is not a whole number of tokens")
    return amount


def _payload_bytes(payload: Union[MemoPayload, bytes]) -> bytes:
    if isinstance(payload, MemoPayload):
        return payload.encode()
    return bytes(payload)


def encode_burn_memo(burn_amount: int, payload: Union[MemoPayload, bytes], check_length: bool = True) -> bytes:
    """Wrap ``payload`` in a BurnMemo envelope and return the base64 memo bytes."""
    envelope = BurnMemo(burn_amount=burn_amount, payload=_payload_bytes(payload))
    envelope.validate()
    memo = base64.b64encode(envelope.encode())
    if check_length:
        check_memo_length(memo)
    return memo


def encode_bare_memo(payload: Union[MemoPayload, bytes], check_length: bool = True) -> bytes:
    memo = base64.b64encode(_payload_bytes(payload))
    if check_length:
        check_memo_length(memo)
    return memo


def memo_to_borsh(memo: bytes) -> bytes:
    try:
        return base64.b64decode(memo, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadValidationError(f"Invalid memo format: not base64: {exc}") from exc


def decode_burn_memo(memo: bytes) -> BurnMemo:
    return BurnMemo.decode(memo_to_borsh(memo))


def payload_type(data: bytes) -> Type[MemoPayload]:
    try:
        header = PayloadHeaderLayout.parse(data)
    except Exception as exc:  # noqa: BLE001
        raise PayloadValidationError(f"Invalid memo format: cannot read payload header: {exc}") from exc
    cls = PAYLOAD_TYPES.get((header.category, header.operation))
    if cls is None:
        raise PayloadValidationError(f"Invalid operation: no payload schema for {header.category}/{header.operation}")
    return cls


def decode_payload(data: bytes, cls: Optional[Type[MemoPayload]] = None) -> MemoPayload:
    return (cls or payload_type(data)).decode(data)


def decode_memo(memo: bytes, burn: bool = True) -> Tuple[Optional[BurnMemo], MemoPayload]:
    """Decode memo bytes back into ``(envelope, payload)``; ``envelope`` is None for bare memos."""
    if burn:
        envelope = decode_burn_memo(memo)
        return envelope, decode_payload(envelope.payload)
    return None, decode_payload(memo_to_borsh(memo))


def ascii_memo(prefix: str = "MINT", length: int = MEMO_MIN_LENGTH, rng: Optional[random.Random] = None) -> bytes:
    """Plain ASCII memo of exactly ``length`` bytes for the mint program."""
    rng = rng or random.Random()
    head = f"{prefix}_{time.strftime('%Y%m%d_%H%M%S')}_"
    if len(head) >= length:
        return (head[: length - 4] + "_END").encode("ascii")
    tail = "".join(rng.choice(string.ascii_letters) for _ in range(length - len(head)))
    return (head + tail).encode("ascii")


def check_mint_memo(memo: bytes) -> bytes:
    check_memo_length(memo)
    if b"\x00" in memo:
        raise PayloadValidationError("Invalid memo format: memo must not contain NUL bytes")
    return memo
