"""Covered-component values and the signature base they are joined into."""

from collections.abc import Iterable, Mapping
from typing import Any

from evp.core.errors import TokenFormatError
from evp.httpsig.headers import serialize_signature_params

GET_COMPONENTS = ("@method", "@authority", "@path", "signature-key")
BODY_COMPONENTS = (
    "@method",
    "@authority",
    "@path",
    "content-type",
    "content-digest",
    "signature-key",
)
DERIVED_COMPONENTS = frozenset(
    {"@method", "@target-uri", "@authority", "@scheme", "@request-target", "@path", "@query"}
)


def default_components(has_body: bool) -> list[str]:
    return list(BODY_COMPONENTS if has_body else GET_COMPONENTS)


def normalize_headers(headers: Mapping[str, Any] | Iterable[tuple[str, str]]) -> dict[str, str]:
    """Lower-case names, trim values, join repeated fields with ', '."""
    pairs = headers.items() if isinstance(headers, Mapping) else headers
    collected: dict[str, list[str]] = {}
    for name, value in pairs:
        values = value if isinstance(value, list | tuple) else [value]
        collected.setdefault(name.lower(), []).extend(str(v).strip() for v in values)
    return {name: ", ".join(values) for name, values in collected.items()}


def derive_component_values(
    method: str, authority: str, path: str, query: str | None
) -> dict[str, str]:
    """Values of the derived (``@``) components for one request."""
    path = path or "/"
    query_part = f"?{query}" if query else ""
    authority = authority.lower()
    return {
        "@method": method.upper(),
        "@target-uri": f"https://{authority}{path}{query_part}",
        "@authority": authority,
        "@scheme": "https",
        "@request-target": f"{path}{query_part}",
        "@path": path,
        "@query": query_part or "?",
    }


def build_signature_base(
    components: list[str],
    derived: Mapping[str, str],
    headers: Mapping[str, str],
    signature_params: dict[str, Any],
) -> str:
    """Join ``"<component>": <value>`` lines, ending with ``@signature-params``."""
    lines = []
    seen = set()
    for component in components:
        if component in seen:
            raise TokenFormatError(f"Duplicate covered component: {component}")
        seen.add(component)
        if component.startswith("@"):
            if component not in DERIVED_COMPONENTS:
                raise TokenFormatError(f"Unsupported derived component: {component}")
            value = derived[component]
        else:
            if component != component.lower():
                raise TokenFormatError(f"Header component must be lower case: {component}")
            value = headers.get(component)
            if value is None:
                raise TokenFormatError(f"Missing header for component: {component}")
        if "\n" in value or "\r" in value:
            raise TokenFormatError(f"Component value contains a line break: {component}")
        lines.append(f'"{component}": {value}')
    params_value = serialize_signature_params(components, signature_params)
    lines.append(f'"@signature-params": {params_value}')
    return "\n".join(lines)
