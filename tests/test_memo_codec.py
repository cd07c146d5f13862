"""Tests for memo payload encoding and validation."""

import base64
from dataclasses import replace

import pytest
from solders.keypair import Keypair

from memo_clients.errors import PayloadValidationError
from memo_clients.memo_codec import (
    CLEARED,
    MAX_BURN_PER_TX,
    MAX_PAYLOAD_LENGTH,
    MEMO_MIN_LENGTH,
    UNCHANGED,
    PAYLOAD_TYPES,
    BlogBurnData,
    BlogCreationData,
    BlogMintData,
    BlogUpdateData,
    BurnMemo,
    ChatGroupBurnData,
    ChatGroupCreationData,
    ChatMessageData,
    PostBurnData,
    PostCreationData,
    PostMintData,
    ProfileCreationData,
    ProfileUpdateData,
    ProjectBurnData,
    ProjectCreationData,
    ProjectUpdateData,
    SetTo,
    ascii_memo,
    check_burn_amount,
    check_mint_memo,
    decode_memo,
    decode_payload,
    encode_bare_memo,
    encode_burn_memo,
    to_units,
)

ACTOR = str(Keypair.from_seed(bytes(range(32))).pubkey())


class TestBurnMemoEnvelope:
    """Tests for the BurnMemo wrapper."""

    def test_round_trip(self):
        """Should decode back to the same amount and payload."""
        payload = BlogCreationData(creator=ACTOR, name="Smoke Test Blog", description="A comprehensive test blog")
        memo = encode_burn_memo(to_units(1), payload)
        envelope, decoded = decode_memo(memo)
        assert envelope.burn_amount == 1_000_000
        assert envelope.version == 1
        assert decoded == payload

    def test_memo_is_ascii_base64(self):
        """Should produce base64 text within the memo length window."""
        memo = encode_burn_memo(to_units(1), BlogBurnData(burner=ACTOR, message="hi"))
        assert MEMO_MIN_LENGTH <= len(memo) <= 800
        base64.b64decode(memo, validate=True)

    def test_envelope_layout(self):
        """Should serialize as u8 version, u64 amount, u32-prefixed payload."""
        raw = BurnMemo(burn_amount=5, payload=b"abc").encode()
        assert raw == b"\x01" + (5).to_bytes(8, "little") + (3).to_bytes(4, "little") + b"abc"

    def test_payload_at_limit(self):
        """Should accept a payload of exactly 787 bytes."""
        BurnMemo(burn_amount=to_units(1), payload=b"x" * MAX_PAYLOAD_LENGTH).validate()

    def test_payload_over_limit(self):
        """Should reject a payload of 788 bytes."""
        with pytest.raises(PayloadValidationError, match="Payload too long"):
            encode_burn_memo(to_units(1), b"x" * (MAX_PAYLOAD_LENGTH + 1), check_length=False)

    def test_amount_mismatch(self):
        """Should reject an envelope whose amount differs from the instruction."""
        with pytest.raises(PayloadValidationError, match="Burn amount mismatch"):
            BurnMemo(burn_amount=to_units(2), payload=b"").validate(expected_amount=to_units(1))

    def test_bad_version(self):
        """Should reject an unknown envelope version."""
        with pytest.raises(PayloadValidationError, match="Unsupported memo version"):
            BurnMemo(burn_amount=1, payload=b"", version=2).validate()

    def test_not_base64(self):
        """Should report non-base64 memo bytes as an invalid format."""
        with pytest.raises(PayloadValidationError, match="Invalid memo format"):
            decode_memo(b"!!!not base64!!!" * 5)


class TestMemoLength:
    """Tests for the memo length window."""

    def test_too_short(self):
        """Should reject memos under 69 bytes."""
        with pytest.raises(PayloadValidationError, match="Memo too short"):
            encode_bare_memo(b"short")

    def test_too_long(self):
        """Should reject memos over 800 bytes."""
        with pytest.raises(PayloadValidationError, match="Memo too long"):
            encode_bare_memo(b"x" * 700)

    def test_ascii_memo_length(self):
        """Should build an ASCII mint memo of exactly the requested length."""
        memo = ascii_memo()
        assert len(memo) == MEMO_MIN_LENGTH
        assert memo.startswith(b"MINT_")
        check_mint_memo(memo)

    def test_mint_memo_rejects_nul(self):
        """Should reject NUL bytes in mint memos."""
        with pytest.raises(PayloadValidationError, match="NUL"):
            check_mint_memo(b"\x00" * 70)


class TestBurnAmount:
    """Tests for burn amount rules."""

    def test_whole_tokens(self):
        """Should accept whole-token amounts at or above the minimum."""
        assert check_burn_amount(to_units(420), 420) == 420_000_000

    def test_below_minimum(self):
        """Should reject amounts below the operation minimum."""
        with pytest.raises(PayloadValidationError, match="too small"):
            check_burn_amount(to_units(419), 420)

    def test_fractional(self):
        """Should reject amounts that are not whole tokens."""
        with pytest.raises(PayloadValidationError, match="whole number"):
            check_burn_amount(to_units(1) + 1)

    def test_above_maximum(self):
        """Should reject amounts above the per-transaction cap."""
        with pytest.raises(PayloadValidationError, match="too large"):
            check_burn_amount(MAX_BURN_PER_TX + to_units(1))


class TestPayloadValidation:
    """Tests for per-payload validation."""

    def test_valid_payload(self):
        """Should accept a well-formed payload for the signer."""
        BlogBurnData(burner=ACTOR, message="Supporting this awesome blog!").validate(ACTOR)

    def test_wrong_category(self):
        """Should reject a foreign category."""
        with pytest.raises(PayloadValidationError, match="Invalid category"):
            BlogBurnData(burner=ACTOR, category="wrong").validate(ACTOR)

    def test_wrong_operation(self):
        """Should reject a foreign operation."""
        with pytest.raises(PayloadValidationError, match="Invalid operation"):
            BlogBurnData(burner=ACTOR, operation="wrong").validate(ACTOR)

    def test_actor_mismatch(self):
        """Should reject a burner other than the signer."""
        other = str(Keypair().pubkey())
        with pytest.raises(PayloadValidationError, match="Burner mismatch"):
            BlogBurnData(burner=other).validate(ACTOR)

    def test_message_one_over_bound(self):
        """Should reject a message one byte over its bound."""
        BlogBurnData(burner=ACTOR, message="x" * 696).validate(ACTOR)
        with pytest.raises(PayloadValidationError, match="message too long"):
            BlogBurnData(burner=ACTOR, message="x" * 697).validate(ACTOR)

    def test_wrong_version(self):
        """Should reject a payload version other than 1."""
        with pytest.raises(PayloadValidationError, match="version"):
            BlogBurnData(burner=ACTOR, version=2).validate(ACTOR)

    def test_bounds_count_utf8_bytes(self):
        """Should measure string bounds in UTF-8 bytes."""
        with pytest.raises(PayloadValidationError, match="username too long"):
            ProfileCreationData(user_pubkey=ACTOR, username="é" * 17).validate(ACTOR)

    def test_empty_name(self):
        """Should reject an empty required name."""
        with pytest.raises(PayloadValidationError, match="Empty name"):
            BlogCreationData(creator=ACTOR, name="").validate(ACTOR)

    def test_entity_id_mismatch(self):
        """Should reject a payload id other than the instruction argument."""
        with pytest.raises(PayloadValidationError, match="Post id mismatch"):
            PostBurnData(user=ACTOR, post_id=3).validate(ACTOR, expected_id=4)

    def test_too_many_tags(self):
        """Should reject more than four tags."""
        payload = ChatGroupCreationData(group_id=0, name="g", tags=["a", "b", "c", "d", "e"])
        with pytest.raises(PayloadValidationError, match="Too many tags"):
            payload.validate()

    def test_invalid_receiver(self):
        """Should reject a receiver that is not a pubkey."""
        payload = ChatMessageData(group_id=1, sender=ACTOR, message="gm", receiver="not-a-key")
        with pytest.raises(PayloadValidationError, match="Invalid receiver"):
            payload.validate(ACTOR, 1)

    def test_empty_chat_message(self):
        """Should reject an empty chat message."""
        with pytest.raises(PayloadValidationError, match="Empty message"):
            ChatMessageData(group_id=1, sender=ACTOR, message="").validate(ACTOR, 1)


class TestPayloadDecoding:
    """Tests for schema dispatch on decode."""

    def test_dispatch_by_header(self):
        """Should pick the payload class from category and operation."""
        payload = PostBurnData(user=ACTOR, post_id=7, message="Burning for this post")
        decoded = decode_payload(payload.encode())
        assert isinstance(decoded, PostBurnData)
        assert decoded.post_id == 7

    def test_unknown_schema(self):
        """Should reject a header with no registered schema."""
        payload = BlogBurnData(burner=ACTOR, operation="nope")
        with pytest.raises(PayloadValidationError, match="no payload schema"):
            decode_payload(payload.encode())

    def test_optional_tags_round_trip(self):
        """Should keep absent and present tag lists apart."""
        absent = ProjectUpdateData(project_id=1, name="p")
        present = ProjectUpdateData(project_id=1, tags=["defi"])
        assert decode_payload(absent.encode()).tags is None
        assert decode_payload(present.encode()).tags == ["defi"]

    def test_bare_chat_memo(self):
        """Should decode a chat message memo without an envelope."""
        payload = ChatMessageData(group_id=2, sender=ACTOR, message="Hello from the smoke test!")
        envelope, decoded = decode_memo(encode_bare_memo(payload), burn=False)
        assert envelope is None
        assert decoded == payload


class TestProfileUpdateSemantics:
    """Tests for the three-state about_me update."""

    def _wire_tail(self, update):
        return ProfileUpdateData(user_pubkey=ACTOR, about_me=update).encode()

    def test_unchanged_is_outer_none(self):
        """Should encode an untouched field as a single 0 tag."""
        assert self._wire_tail(UNCHANGED).endswith(b"\x00\x00\x00")

    def test_cleared_is_some_none(self):
        """Should encode a cleared field as Some(None)."""
        assert self._wire_tail(CLEARED).endswith(b"\x00\x00\x01\x00")

    def test_set_is_some_some(self):
        """Should encode a new value as Some(Some(value))."""
        assert self._wire_tail(SetTo("hi")).endswith(b"\x01\x01\x02\x00\x00\x00hi")

    @pytest.mark.parametrize("update", [UNCHANGED, CLEARED, SetTo("Updated smoke test profile")])
    def test_round_trip(self, update):
        """Should decode back to the same update state."""
        payload = ProfileUpdateData(user_pubkey=ACTOR, username="UpdatedUser", about_me=update)
        assert decode_payload(payload.encode()).about_me == update

    def test_set_value_is_bounded(self):
        """Should apply the about_me bound to a new value."""
        with pytest.raises(PayloadValidationError, match="about_me too long"):
            ProfileUpdateData(user_pubkey=ACTOR, about_me=SetTo("x" * 129)).validate(ACTOR)


SIGNATURE = str(Keypair.from_seed(bytes(range(32))).sign_message(b"memo-clients"))

SAMPLES = [
    BlogCreationData(creator=ACTOR, name="My Blog", description="Notes on memo tokens", image="ipfs://blog"),
    BlogUpdateData(creator=ACTOR, name="Renamed", description="New description", image="ipfs://new"),
    BlogBurnData(burner=ACTOR, message="burning for the blog"),
    BlogMintData(minter=ACTOR, message="minting for the blog"),
    ChatGroupCreationData(
        group_id=3,
        name="Validators",
        description="A group for validator operators",
        image="ipfs://group",
        tags=["gm", "solana"],
        min_memo_interval=60,
    ),
    ChatMessageData(group_id=3, sender=ACTOR, message="gm everyone", receiver=ACTOR, reply_to_sig=SIGNATURE),
    ChatGroupBurnData(group_id=3, burner=ACTOR, message="burning for the group"),
    ProjectCreationData(
        project_id=0,
        name="Memo Explorer",
        description="Indexes memo transactions",
        image="ipfs://project",
        website="https://example.org",
        tags=["tools"],
    ),
    ProjectUpdateData(project_id=0, name="Memo Explorer 2", description="Now faster", website="https://example.org/v2", tags=["tools", "index"]),
    ProjectBurnData(project_id=0, burner=ACTOR, message="burning for the project"),
    PostCreationData(creator=ACTOR, post_id=5, title="First post", content="Hello forum", image="ipfs://post"),
    PostBurnData(user=ACTOR, post_id=5, message="burning for the post"),
    PostMintData(user=ACTOR, post_id=5, message="minting for the post"),
    ProfileCreationData(user_pubkey=ACTOR, username="alice", image="ipfs://alice", about_me="builder"),
    ProfileUpdateData(user_pubkey=ACTOR, username="alice2", image="ipfs://alice2", about_me=SetTo("still building")),
]
BY_TYPE = {type(sample): sample for sample in SAMPLES}

BOUNDED_FIELDS = [(type(sample), name, high) for sample in SAMPLES for name, (_, high) in sample.STRING_BOUNDS.items()]
TAGGED = [cls for cls in BY_TYPE if cls.TAG_BOUNDS is not None]

# Variable-length field used to grow each enveloped payload to an exact size.
PAD_FIELDS = {
    BlogCreationData: "description",
    BlogUpdateData: "description",
    BlogBurnData: "message",
    BlogMintData: "message",
    ChatGroupCreationData: "description",
    ChatGroupBurnData: "message",
    ProjectCreationData: "description",
    ProjectUpdateData: "description",
    ProjectBurnData: "message",
    PostCreationData: "content",
    PostBurnData: "message",
    PostMintData: "message",
    ProfileCreationData: "image",
    ProfileUpdateData: "image",
}


def with_value(payload, name, value):
    if isinstance(payload, ProfileUpdateData) and name == "about_me":
        value = SetTo(value)
    return replace(payload, **{name: value})


def padded_to(payload, name, size):
    base = len(replace(payload, **{name: ""}).encode())
    return replace(payload, **{name: "x" * (size - base)})


class TestEverySchema:
    """Tests applied to each payload schema in turn."""

    def test_samples_cover_every_schema(self):
        """Should have one sample per registered payload type."""
        assert set(BY_TYPE) == set(PAYLOAD_TYPES.values())
        assert set(PAD_FIELDS) == set(PAYLOAD_TYPES.values()) - {ChatMessageData}

    @pytest.mark.parametrize("payload", SAMPLES, ids=lambda p: type(p).__name__)
    def test_round_trip(self, payload):
        """Should validate, encode and decode back to an equal payload inside a memo."""
        payload.validate(payload.actor, payload.entity_id)
        assert decode_payload(payload.encode()) == payload
        if isinstance(payload, ChatMessageData):
            envelope, decoded = decode_memo(encode_bare_memo(payload), burn=False)
            assert envelope is None
        else:
            envelope, decoded = decode_memo(encode_burn_memo(to_units(7), payload))
            assert envelope.burn_amount == to_units(7)
        assert decoded == payload

    @pytest.mark.parametrize(
        "cls, name, high", BOUNDED_FIELDS, ids=[f"{cls.__name__}-{name}" for cls, name, _ in BOUNDED_FIELDS]
    )
    def test_string_upper_bound(self, cls, name, high):
        """Should accept a field at its byte limit and reject one byte more."""
        with_value(BY_TYPE[cls], name, "x" * high).validate()
        with pytest.raises(PayloadValidationError, match=f"{name} too long: {high + 1} bytes"):
            with_value(BY_TYPE[cls], name, "x" * (high + 1)).validate()

    @pytest.mark.parametrize("cls", TAGGED, ids=lambda cls: cls.__name__)
    def test_tag_bounds(self, cls):
        """Should bound every tag to 1..32 bytes and at most four tags."""
        replace(BY_TYPE[cls], tags=["t" * 32]).validate()
        with pytest.raises(PayloadValidationError, match="tag too long: 33 bytes"):
            replace(BY_TYPE[cls], tags=["t" * 33]).validate()
        with pytest.raises(PayloadValidationError, match="Empty tag"):
            replace(BY_TYPE[cls], tags=[""]).validate()
        with pytest.raises(PayloadValidationError, match="Too many tags"):
            replace(BY_TYPE[cls], tags=["a", "b", "c", "d", "e"]).validate()

    @pytest.mark.parametrize("cls", list(PAD_FIELDS), ids=lambda cls: cls.__name__)
    def test_payload_size_limit(self, cls):
        """Should envelope a 787-byte payload and refuse a 788-byte one."""
        name = PAD_FIELDS[cls]
        at_limit = padded_to(BY_TYPE[cls], name, MAX_PAYLOAD_LENGTH)
        assert len(at_limit.encode()) == MAX_PAYLOAD_LENGTH
        memo = encode_burn_memo(to_units(1), at_limit, check_length=False)
        assert decode_memo(memo)[1] == at_limit

        over = padded_to(BY_TYPE[cls], name, MAX_PAYLOAD_LENGTH + 1)
        assert len(over.encode()) == MAX_PAYLOAD_LENGTH + 1
        with pytest.raises(PayloadValidationError, match=f"Payload too long: {MAX_PAYLOAD_LENGTH + 1} bytes"):
            encode_burn_memo(to_units(1), over, check_length=False)
