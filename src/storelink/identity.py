import dataclasses
import hashlib
import re
from typing import Optional, Tuple

from storelink.exceptions import InvariantViolationError

VIRTUAL_PROTOCOL = "virtual:"
SLUG_HASH_LENGTH = 10

_IDENT_RE = re.compile(r"^(?:@([^/]+?)/)?([^@/]+)$")
_DESCRIPTOR_RE = re.compile(r"^(?:@([^/]+?)/)?([^@/]+?)(?:@(.+))$")
_FILENAME_UNSAFE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_SEMVER_RE = re.compile(
    r"""
    ^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)
    (?:-(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*)?
    (?:\+[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*)?$
""",
    re.VERBOSE | re.ASCII,
)


def make_hash(*parts: str) -> str:
    h = hashlib.sha512()
    for part in parts:
        h.update(part.encode("utf-8"))
    return h.hexdigest()


@dataclasses.dataclass(slots=True, frozen=True)
class PackageIdent:
    scope: Optional[str]
    name: str
    ident_hash: str

    def __str__(self) -> str:
        return stringify_ident(self)


@dataclasses.dataclass(slots=True, frozen=True)
class Descriptor(PackageIdent):
    range: str
    descriptor_hash: str

    def __str__(self) -> str:
        return stringify_descriptor(self)


@dataclasses.dataclass(slots=True, frozen=True)
class Locator(PackageIdent):
    reference: str
    locator_hash: str

    def __str__(self) -> str:
        return stringify_locator(self)

    @property
    def is_virtual(self) -> bool:
        return is_virtual_locator(self)


def make_ident(scope: Optional[str], name: str) -> PackageIdent:
    ident_hash = make_hash(f"@{scope}/{name}" if scope else name)
    return PackageIdent(scope, name, ident_hash)


def make_descriptor(ident: PackageIdent, range: str) -> Descriptor:
    return Descriptor(
        ident.scope,
        ident.name,
        ident.ident_hash,
        range,
        make_hash(ident.ident_hash, range),
    )


def make_locator(ident: PackageIdent, reference: str) -> Locator:
    return Locator(
        ident.scope,
        ident.name,
        ident.ident_hash,
        reference,
        make_hash(ident.ident_hash, reference),
    )


def parse_ident(text: str) -> PackageIdent:
    m = _IDENT_RE.match(text)
    if not m:
        raise ValueError(f'Invalid package ident "{text}"')
    scope, name = m.groups()
    return make_ident(scope, name)


def _parse_with_suffix(text: str, kind: str) -> Tuple[PackageIdent, str]:
    # The suffix may itself contain "@" (e.g. "virtual:...#npm:a@1"), so the split
    # happens on the first "@" that follows the ident.
    m = _DESCRIPTOR_RE.match(text)
    if not m:
        raise ValueError(f'Invalid {kind} "{text}"')
    scope, name, suffix = m.groups()
    return make_ident(scope, name), suffix


def parse_descriptor(text: str) -> Descriptor:
    ident, range = _parse_with_suffix(text, "descriptor")
    return make_descriptor(ident, range)


def parse_locator(text: str) -> Locator:
    ident, reference = _parse_with_suffix(text, "locator")
    return make_locator(ident, reference)


def stringify_ident(ident: PackageIdent) -> str:
    if ident.scope:
        return f"@{ident.scope}/{ident.name}"
    return ident.name


def stringify_descriptor(descriptor: Descriptor) -> str:
    return f"{stringify_ident(descriptor)}@{descriptor.range}"


def stringify_locator(locator: Locator) -> str:
    return f"{stringify_ident(locator)}@{locator.reference}"


def is_virtual_locator(locator: Locator) -> bool:
    return locator.reference.startswith(VIRTUAL_PROTOCOL)


def virtualize_locator(locator: Locator, discriminator: str) -> Locator:
    if is_virtual_locator(locator):
        locator = devirtualize_locator(locator)
    return make_locator(
        locator, f"{VIRTUAL_PROTOCOL}{discriminator}#{locator.reference}"
    )


def devirtualize_locator(locator: Locator) -> Locator:
    if not is_virtual_locator(locator):
        raise InvariantViolationError(
            f"Cannot devirtualize {stringify_locator(locator)}: it is not a virtual locator"
        )
    _, sep, inner_reference = locator.reference.partition("#")
    if not sep or not inner_reference:
        raise InvariantViolationError(
            f"The virtual locator {stringify_locator(locator)} does not wrap a reference"
        )
    return make_locator(locator, inner_reference)


def slugify_ident(ident: PackageIdent) -> str:
    if ident.scope:
        return f"@{ident.scope}-{ident.name}"
    return ident.name


def _human_reference(reference: str) -> str:
    protocol, sep, selector = reference.partition(":")
    if not sep:
        return "exotic"
    if _SEMVER_RE.match(selector):
        return f"{protocol}-{selector}"
    return protocol


def slugify_locator(locator: Locator) -> str:
    """Deterministic, filename-safe name of the store slot for a locator

    The same locator always yields the same slug, which is what makes a store slot
    reusable across runs.
    """
    slug = "-".join(
        (
            slugify_ident(locator),
            _human_reference(locator.reference),
            locator.locator_hash[:SLUG_HASH_LENGTH],
        )
    )
    return _FILENAME_UNSAFE.sub("-", slug)
