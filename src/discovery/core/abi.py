"""Human-readable ABI fragments: parsing, call encoding and log decoding.

Handler definitions name methods and events the way they are written in
Solidity, e.g. ``"function owner() view returns (address)"`` or
``"event OwnerChanged(address indexed previous, address current)"``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector

from discovery.core.dto import LogEntry
from discovery.core.errors import ConfigurationError, DecodeFormatError

_FRAGMENT_RE = re.compile(
    r"^\s*(?:(function|event)\s+)?(?P<name>[A-Za-z_$][A-Za-z0-9_$]*)\s*\((?P<rest>.*)$",
    re.DOTALL,
)
_MODIFIERS = {"view", "pure", "payable", "nonpayable", "external", "public", "anonymous"}


@dataclass(frozen=True)
class FunctionAbi:
    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, args: Sequence[Any]) -> bytes:
        if len(args) != len(self.inputs):
            raise ValueError(f"{self.signature} expects {len(self.inputs)} argument(s), got {len(args)}")
        values = [coerce_arg(t, a) for t, a in zip(self.inputs, args)]
        return self.selector + encode(list(self.inputs), values)

    def decode_output(self, data: bytes) -> tuple:
        if not self.outputs:
            return ()
        return tuple(decode(list(self.outputs), data))


@dataclass(frozen=True)
class EventParam:
    type: str
    name: str
    indexed: bool


@dataclass(frozen=True)
class EventAbi:
    name: str
    params: Tuple[EventParam, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.params)})"

    @property
    def topic(self) -> str:
        return "0x" + event_signature_to_log_topic(self.signature).hex()

    def decode_log(self, log: LogEntry) -> dict:
        indexed = [p for p in self.params if p.indexed]
        plain = [p for p in self.params if not p.indexed]
        if len(log.topics) - 1 != len(indexed):
            raise DecodeFormatError(
                f"{self.name}: expected {len(indexed)} indexed topic(s), log has {max(len(log.topics) - 1, 0)}"
            )

        out = {}
        for p, topic in zip(indexed, log.topics[1:]):
            raw = bytes.fromhex(topic[2:] if topic.startswith("0x") else topic)
            if _is_dynamic(p.type):
                # only the hash of a dynamic indexed value is logged
                out[p.name] = "0x" + raw.hex()
            else:
                out[p.name] = decode([p.type], raw)[0]

        values = decode([p.type for p in plain], log.data) if plain else ()
        for p, v in zip(plain, values):
            out[p.name] = v
        return out


def parse_function(fragment: str) -> FunctionAbi:
    name, params, tail = _split_fragment(fragment)
    outputs: List[str] = []
    m = re.search(r"returns\s*\(", tail)
    if m:
        inner, _ = _take_group(tail, m.end() - 1)
        outputs = [_param_type(p) for p in _split_top_level(inner)]
    return FunctionAbi(name=name, inputs=tuple(_param_type(p) for p in params), outputs=tuple(outputs))


def parse_event(fragment: str) -> EventAbi:
    name, params, _ = _split_fragment(fragment)
    parsed = []
    for i, p in enumerate(params):
        type_, words = _type_and_words(p)
        indexed = "indexed" in words
        names = [w for w in words if w != "indexed"]
        parsed.append(EventParam(type=type_, name=names[-1] if names else f"arg{i}", indexed=indexed))
    return EventAbi(name=name, params=tuple(parsed))


def coerce_arg(abi_type: str, value: Any) -> Any:
    if abi_type.endswith("]") and isinstance(value, (list, tuple)):
        inner = abi_type[: abi_type.rindex("[")]
        return [coerce_arg(inner, v) for v in value]
    if abi_type.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    if abi_type.startswith("bytes") and isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    if abi_type == "bool" and isinstance(value, str):
        return value.lower() == "true"
    return value


# -------------------------
# Fragment parsing
# -------------------------

def _split_fragment(fragment: str) -> Tuple[str, List[str], str]:
    m = _FRAGMENT_RE.match(fragment or "")
    if not m:
        raise ConfigurationError(f"Cannot parse ABI fragment: {fragment!r}")
    rest = "(" + m.group("rest")
    inner, end = _take_group(rest, 0)
    return m.group("name"), _split_top_level(inner), rest[end:]


def _take_group(text: str, start: int) -> Tuple[str, int]:
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "(":
            depth += 1
        elif text[i] == ")":
            depth -= 1
            if depth == 0:
                return text[start + 1 : i], i + 1
    raise ConfigurationError(f"Unbalanced parentheses in ABI fragment: {text!r}")


def _split_top_level(inner: str) -> List[str]:
    parts: List[str] = []
    depth = 0
    current = ""
    for ch in inner:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _type_and_words(param: str) -> Tuple[str, List[str]]:
    param = param.strip()
    if param.startswith("tuple"):
        param = param[len("tuple"):]
    if param.startswith("("):
        inner, end = _take_group(param, 0)
        suffix = re.match(r"(\[\d*\])*", param[end:]).group(0)
        type_ = "(" + ",".join(_param_type(p) for p in _split_top_level(inner)) + ")" + suffix
        words = param[end + len(suffix):].split()
    else:
        head, *words = param.split()
        type_ = _canonical_elementary(head)
    words = [w for w in words if w not in _MODIFIERS and w not in ("memory", "calldata", "storage")]
    return type_, words


def _param_type(param: str) -> str:
    return _type_and_words(param)[0]


def _canonical_elementary(type_: str) -> str:
    m = re.match(r"^(uint|int)(\[.*)?$", type_)
    if m:
        return f"{m.group(1)}256{m.group(2) or ''}"
    return type_


def _is_dynamic(abi_type: str) -> bool:
    return abi_type in ("bytes", "string") or abi_type.endswith("[]") or abi_type.startswith("(")
