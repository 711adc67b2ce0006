"""
Providers used by the LocalEngine to "create" resources.

A provider turns (urn, type, name, inputs) into (id, outputs). Nothing
here touches real infrastructure:
- EchoProvider: outputs mirror the inputs, id derived from the urn
- RandomProvider: the random package (RandomId, RandomString)

Resource handles for provider types live next to their provider so a
program can write create_resource(RandomId, "user-id", {"byte_length": 32}).
"""

import base64
import hashlib
import random
import secrets
import string
from abc import ABC, abstractmethod
from typing import Any, Optional

from .errors import ResolutionFailure
from .resource import Resource


class Provider(ABC):
    """Base provider: subclasses implement create()."""

    @abstractmethod
    def create(self, urn: str, type_: str, name: str, inputs: dict) -> tuple[Optional[str], dict]:
        """Create a resource and return (id, outputs)."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class EchoProvider(Provider):
    """Outputs are the inputs; the id is a stable hash of the urn."""

    def create(self, urn: str, type_: str, name: str, inputs: dict) -> tuple[Optional[str], dict]:
        digest = hashlib.sha256(urn.encode()).hexdigest()[:12]
        return f"{name}-{digest}", dict(inputs)


def _input(inputs: dict, snake: str, camel: str, default: Any = None) -> Any:
    if snake in inputs:
        return inputs[snake]
    return inputs.get(camel, default)


class RandomProvider(Provider):
    """
    Random values, matching the shape of the random package outputs.

    Args:
        seed: Optional seed for reproducible values (tests)
    """

    RANDOM_ID = "random:index/randomId:RandomId"
    RANDOM_STRING = "random:index/randomString:RandomString"

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed) if seed is not None else None

    def _bytes(self, count: int) -> bytes:
        if self._rng is not None:
            return self._rng.randbytes(count)
        return secrets.token_bytes(count)

    def _choice(self, alphabet: str) -> str:
        if self._rng is not None:
            return self._rng.choice(alphabet)
        return secrets.choice(alphabet)

    def create(self, urn: str, type_: str, name: str, inputs: dict) -> tuple[Optional[str], dict]:
        if type_ == self.RANDOM_ID:
            return self._random_id(inputs)
        if type_ == self.RANDOM_STRING:
            return self._random_string(inputs)
        raise ResolutionFailure(f"Unsupported random resource type: {type_}")

    def _random_id(self, inputs: dict) -> tuple[str, dict]:
        byte_length = _input(inputs, "byte_length", "byteLength")
        if not isinstance(byte_length, int) or byte_length < 1:
            raise ResolutionFailure(f"byte_length must be a positive integer, got {byte_length!r}")
        prefix = inputs.get("prefix") or ""

        raw = self._bytes(byte_length)
        b64_url = base64.urlsafe_b64encode(raw).decode().rstrip("=")
        outputs = dict(inputs)
        outputs.update({
            "hex": prefix + raw.hex(),
            "b64_url": prefix + b64_url,
            "b64_std": prefix + base64.b64encode(raw).decode(),
            "dec": prefix + str(int.from_bytes(raw, "big")),
        })
        return b64_url, outputs

    def _random_string(self, inputs: dict) -> tuple[str, dict]:
        length = inputs.get("length")
        if not isinstance(length, int) or length < 1:
            raise ResolutionFailure(f"length must be a positive integer, got {length!r}")

        alphabet = ""
        if inputs.get("upper", True):
            alphabet += string.ascii_uppercase
        if inputs.get("lower", True):
            alphabet += string.ascii_lowercase
        if inputs.get("numeric", True):
            alphabet += string.digits
        if inputs.get("special", False):
            alphabet += _input(inputs, "override_special", "overrideSpecial", "!@#$%&*()-_=+[]{}<>:?")
        if not alphabet:
            raise ResolutionFailure("RandomString needs at least one character class")

        result = "".join(self._choice(alphabet) for _ in range(length))
        outputs = dict(inputs)
        outputs["result"] = result
        return result, outputs


class RandomId(Resource):
    """Random bytes exposed as hex, b64_url, b64_std and dec outputs."""
    type_token = RandomProvider.RANDOM_ID


class RandomString(Resource):
    """Random string exposed as the result output."""
    type_token = RandomProvider.RANDOM_STRING


def default_providers() -> dict[str, Provider]:
    """Providers every LocalEngine starts with, keyed by package."""
    return {"random": RandomProvider()}
