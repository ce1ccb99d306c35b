"""Signature-Input, Signature-Key, Signature and Content-Digest header codecs."""

import hashlib
from typing import Any

from evp.core.errors import TokenFormatError
from evp.crypto.types import JWK
from evp.httpsig.structured import (
    InnerList,
    Item,
    Token,
    parse_dictionary,
    serialize_dictionary,
    serialize_member,
)
from evp.httpsig.types import (
    JwksSignatureKey,
    JwtSignatureKey,
    ParsedSignatureInput,
    ParsedSignatureKey,
    SignatureKey,
)

HWK_PARAMETERS = ("kty", "crv", "x", "y", "n", "e")
SIGNATURE_KEY_SCHEMES = ("hwk", "jwt", "jwks")


def generate_content_digest(body: bytes | str) -> str:
    """``sha-256=:<base64>:`` over the raw body bytes."""
    raw = body.encode() if isinstance(body, str) else bytes(body)
    digest = hashlib.sha256(raw).digest()
    return serialize_dictionary({"sha-256": Item(digest)})


def signature_params_member(components: list[str], params: dict[str, Any]) -> InnerList:
    return InnerList([Item(component) for component in components], dict(params))


def serialize_signature_params(components: list[str], params: dict[str, Any]) -> str:
    """The ``@signature-params`` value, e.g. ``("@method" "@path");created=1``."""
    return serialize_member(signature_params_member(components, params))


def generate_signature_input_header(
    label: str, components: list[str], created: int, **params: Any
) -> str:
    member = signature_params_member(components, {"created": created, **params})
    return serialize_dictionary({label: member})


def generate_signature_key_header(
    label: str, signature_key: SignatureKey, public_jwk: JWK | None = None
) -> str:
    if isinstance(signature_key, JwtSignatureKey):
        return serialize_dictionary({label: Item(Token("jwt"), {"jwt": signature_key.jwt})})
    if isinstance(signature_key, JwksSignatureKey):
        params = {"id": signature_key.id}
        if signature_key.well_known:
            params["well-known"] = signature_key.well_known
        params["kid"] = signature_key.kid
        return serialize_dictionary({label: Item(Token("jwks"), params)})
    if not public_jwk:
        raise TokenFormatError("Public JWK required for hwk signature key type")
    params = {name: public_jwk[name] for name in HWK_PARAMETERS if public_jwk.get(name)}
    return serialize_dictionary({label: Item(Token("hwk"), params)})


def generate_signature_header(label: str, signature: bytes) -> str:
    return serialize_dictionary({label: Item(signature)})


def parse_signature_input(header: str) -> list[ParsedSignatureInput]:
    entries = []
    for label, member in parse_dictionary(header).items():
        if not isinstance(member, InnerList):
            raise TokenFormatError(f"Signature-Input member '{label}' must be an inner list")
        components = []
        for item in member.items:
            if not isinstance(item.value, str) or isinstance(item.value, Token):
                raise TokenFormatError("Covered components must be strings")
            if item.params:
                raise TokenFormatError(
                    f"Unsupported parameters on covered component '{item.value}'"
                )
            components.append(item.value)
        created = member.params.get("created")
        if isinstance(created, bool) or not isinstance(created, int):
            raise TokenFormatError("Signature-Input missing required parameter: created")
        entries.append(
            ParsedSignatureInput(
                label=label,
                components=components,
                params=member.params,
                created=created,
            )
        )
    return entries


def parse_signature_key(header: str) -> ParsedSignatureKey:
    """Parse a Signature-Key dictionary that must hold exactly one member."""
    members = parse_dictionary(header)
    if len(members) != 1:
        raise TokenFormatError(
            f"Signature-Key must contain exactly one member, found {len(members)}"
        )
    label, member = next(iter(members.items()))
    if not isinstance(member, Item) or not isinstance(member.value, Token):
        raise TokenFormatError("Signature-Key member must be a token naming the scheme")
    scheme = str(member.value)
    if scheme not in SIGNATURE_KEY_SCHEMES:
        raise TokenFormatError(f"Unsupported Signature-Key type: {scheme}")
    params = member.params
    for name, value in params.items():
        if not isinstance(value, str) or isinstance(value, Token):
            raise TokenFormatError(f"Signature-Key parameter '{name}' must be a string")
    required = {"hwk": ("kty",), "jwt": ("jwt",), "jwks": ("id", "kid")}[scheme]
    missing = [name for name in required if not params.get(name)]
    if missing:
        raise TokenFormatError(
            f"Signature-Key {scheme} type missing required parameters: {', '.join(missing)}"
        )
    return ParsedSignatureKey(label=label, type=scheme, params=dict(params))


def parse_signature(header: str) -> dict[str, bytes]:
    signatures = {}
    for label, member in parse_dictionary(header).items():
        if not isinstance(member, Item) or not isinstance(member.value, bytes):
            raise TokenFormatError(f"Signature member '{label}' must be a byte sequence")
        signatures[label] = member.value
    return signatures

