import unittest

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak

from discovery.adapters.chain.static_chain_adapter import StaticChainAdapter
from discovery.core.abi import parse_event
from discovery.core.dto import LogEntry, Tier
from discovery.core.errors import ConfigurationError, DataSourceError
from discovery.core.models import FieldResult, normalize_address
from discovery.handlers.base import Handler
from discovery.handlers.registry import build_handler, build_handlers, order_handlers
from discovery.handlers.event_handler import to_topic
from discovery.handlers.storage_handler import compute_slot
from discovery.provider.caching_provider import CachingProvider

TARGET = normalize_address("0x" + "12" * 20)
OWNER = normalize_address("0x" + "34" * 20)
OTHER = normalize_address("0x" + "56" * 20)

# keccak256("eip1967.proxy.implementation") - 1
IMPLEMENTATION_SLOT = "0x360894a13ba1a3210667c828492db98dca3e2076cc3735a920a3ca505d382bbc"

OWNER_CHANGED = parse_event("event OwnerChanged(address indexed previousOwner, address newOwner)")


def _topic_for(address: str) -> str:
    return "0x" + "00" * 12 + address[2:].lower()


def _provider(**kwargs) -> CachingProvider:
    return CachingProvider(StaticChainAdapter(**kwargs), 50)


def _run(fields, provider):
    resolved = {}
    for h in build_handlers(fields):
        resolved[h.field] = h.execute(provider, TARGET, resolved)
    return resolved


class HandlerOrderingTests(unittest.TestCase):
    def test_dependencies_run_first_and_declaration_order_is_kept_otherwise(self) -> None:
        handlers = build_handlers({
            "c": {"type": "call", "method": "function f(address) view returns (uint256)", "args": ["{{ b }}"]},
            "a": {"type": "constant", "value": 1},
            "b": {"type": "constant", "value": OWNER},
        })
        self.assertEqual([h.field for h in handlers], ["a", "b", "c"])
        self.assertEqual(handlers[2].dependencies, ["b"])

    def test_two_field_cycle_is_a_configuration_error(self) -> None:
        x = build_handler("x", {"type": "call", "method": "function f(uint256) view returns (uint256)", "args": ["{{ y }}"]})
        y = build_handler("y", {"type": "call", "method": "function f(uint256) view returns (uint256)", "args": ["{{ x }}"]})
        with self.assertRaises(ConfigurationError) as ctx:
            order_handlers([x, y])
        self.assertIn("Cyclic", str(ctx.exception))

    def test_unknown_dependency_and_type_are_configuration_errors(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_handlers({"x": {"type": "storage", "slot": "{{ nope }}"}})
        with self.assertRaises(ConfigurationError):
            build_handler("x", {"type": "magic"})
        with self.assertRaises(ConfigurationError):
            build_handler("x", {"type": "call"})
        with self.assertRaises(ConfigurationError):
            build_handler("x", {"type": "call", "method": "function f(uint256) view returns (uint256)"})

    def test_failed_dependency_fails_dependent_without_executing(self) -> None:
        provider = _provider()
        resolved = _run({
            "owner": {"type": "call", "method": "function owner() view returns (address)"},
            "balance": {"type": "call", "method": "function balanceOf(address) view returns (uint256)", "args": ["{{ owner }}"]},
        }, provider)

        self.assertFalse(resolved["owner"].ok)
        self.assertEqual(resolved["balance"].error, "dependency owner failed")
        self.assertEqual(provider.stats.count(Tier.LOW_LEVEL, "call"), 1)


class CallHandlerTests(unittest.TestCase):
    def test_templated_arguments(self) -> None:
        provider = _provider(calls={
            (TARGET, "owner", ()): OWNER,
            (TARGET, "isAdmin", (OWNER,)): True,
            (TARGET, "getThreshold", ()): (2, 3),
        })
        resolved = _run({
            "owner": {"type": "call", "method": "function owner() view returns (address)"},
            "ownerIsAdmin": {"type": "call", "method": "function isAdmin(address) view returns (bool)", "args": ["{{ owner }}"]},
            "threshold": {"type": "call", "method": "function getThreshold() view returns (uint256, uint256)"},
        }, provider)

        self.assertEqual(resolved["owner"].value, OWNER)
        self.assertIs(resolved["ownerIsAdmin"].value, True)
        self.assertEqual(resolved["threshold"].value, [2, 3])

    def test_revert_is_a_field_error_unless_expected(self) -> None:
        provider = _provider()
        method = "function paused() view returns (bool)"

        failed = build_handler("paused", {"type": "call", "method": method}).execute(provider, TARGET, {})
        expected = build_handler("paused", {"type": "call", "method": method, "expectRevert": True}).execute(provider, TARGET, {})

        self.assertFalse(failed.ok)
        self.assertEqual(expected, FieldResult("paused", value=None))


class StorageHandlerTests(unittest.TestCase):
    def test_address_from_implementation_slot(self) -> None:
        provider = _provider(storage={(TARGET, int(IMPLEMENTATION_SLOT, 16)): "0x" + "00" * 12 + OTHER[2:]})
        result = build_handler("implementation", {
            "type": "storage", "slot": IMPLEMENTATION_SLOT, "returnType": "address",
        }).execute(provider, TARGET, {})

        self.assertEqual(result.value, OTHER)

    def test_number_with_offset_and_raw_bytes(self) -> None:
        provider = _provider(storage={(TARGET, 5): 7})
        number = build_handler("n", {"type": "storage", "slot": 4, "offset": 1, "returnType": "number"})
        raw = build_handler("r", {"type": "storage", "slot": "0x5"})

        self.assertEqual(number.execute(provider, TARGET, {}).value, 7)
        self.assertEqual(raw.execute(provider, TARGET, {}).value, "0x" + "00" * 31 + "07")

    def test_mapping_slot(self) -> None:
        expected = int.from_bytes(keccak(encode(["address", "uint256"], [OWNER, 3])), "big")
        self.assertEqual(compute_slot([3, OWNER]), expected)

        provider = _provider(storage={(TARGET, expected): 1})
        resolved = _run({
            "owner": {"type": "constant", "value": OWNER},
            "isMember": {"type": "storage", "slot": [3, "{{ owner }}"], "returnType": "number"},
        }, provider)
        self.assertEqual(resolved["isMember"].value, 1)

    def test_bad_return_type(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_handler("x", {"type": "storage", "slot": 0, "returnType": "float"})


class EventHandlerTests(unittest.TestCase):
    def _log(self, previous, new, block, index=0):
        return LogEntry(
            address=TARGET,
            topics=(OWNER_CHANGED.topic, _topic_for(previous)),
            data=encode(["address"], [new]),
            block_number=block,
            log_index=index,
        )

    def test_latest_log_wins(self) -> None:
        provider = _provider(logs=[self._log(OWNER, OTHER, 20), self._log(OTHER, OWNER, 10)])
        handler = build_handler("owner", {
            "type": "event",
            "event": "event OwnerChanged(address indexed previousOwner, address newOwner)",
            "select": "newOwner",
        })

        self.assertEqual(normalize_address(handler.execute(provider, TARGET, {}).value), OTHER)

    def test_no_logs_and_topic_filter(self) -> None:
        provider = _provider(logs=[self._log(OWNER, OTHER, 20)])
        definition = {
            "type": "event",
            "event": "event OwnerChanged(address indexed previousOwner, address newOwner)",
            "topics": [_topic_for(OTHER)],
        }
        self.assertIsNone(build_handler("x", definition).execute(provider, TARGET, {}).value)

        definition["topics"] = [_topic_for(OWNER)]
        value = build_handler("x", definition).execute(provider, TARGET, {}).value
        self.assertEqual(normalize_address(value["previousOwner"]), OWNER)

    def test_templated_topic_is_padded_to_a_word(self) -> None:
        provider = _provider(logs=[self._log(OWNER, OTHER, 20)])
        resolved = _run({
            "previous": {"type": "constant", "value": OWNER},
            "next": {
                "type": "event",
                "event": "event OwnerChanged(address indexed previousOwner, address newOwner)",
                "select": "newOwner",
                "topics": ["{{ previous }}"],
            },
        }, provider)

        self.assertEqual(normalize_address(resolved["next"].value), OTHER)

    def test_topic_values(self) -> None:
        self.assertEqual(to_topic(OWNER), _topic_for(OWNER))
        self.assertEqual(to_topic(1), "0x" + "00" * 31 + "01")
        self.assertEqual(to_topic([None, b"\x02"]), [None, "0x" + "00" * 31 + "02"])
        with self.assertRaises(ConfigurationError):
            build_handler("x", {
                "type": "event",
                "event": "event OwnerChanged(address indexed previousOwner, address newOwner)",
                "topics": ["owner"],
            })

    def test_bad_select_and_topics_are_configuration_errors(self) -> None:
        base = {"type": "event", "event": "event OwnerChanged(address indexed previousOwner, address newOwner)"}
        for extra in ({"select": 3}, {"topics": "0x01"}, {"topics": [None, None, None, None]}):
            with self.subTest(extra=extra):
                with self.assertRaises(ConfigurationError):
                    build_handler("x", dict(base, **extra))

    def test_unknown_select(self) -> None:
        with self.assertRaises(ConfigurationError):
            build_handler("x", {
                "type": "event",
                "event": "event OwnerChanged(address indexed previousOwner, address newOwner)",
                "select": "owner",
            })


class ArrayHandlerTests(unittest.TestCase):
    METHOD = "function validators(uint256) view returns (address)"

    def test_enumerates_until_revert(self) -> None:
        provider = _provider(calls={
            (TARGET, "validators", (0,)): OWNER,
            (TARGET, "validators", (1,)): OTHER,
        })
        result = build_handler("validators", {"type": "array", "method": self.METHOD}).execute(provider, TARGET, {})

        self.assertEqual(result.value, [OWNER, OTHER])

    def test_max_length_exceeded_is_an_error(self) -> None:
        provider = _provider(calls={(TARGET, "validators", (i,)): OWNER for i in range(3)})
        result = build_handler("v", {"type": "array", "method": self.METHOD, "maxLength": 2}).execute(provider, TARGET, {})

        self.assertFalse(result.ok)
        self.assertIn("maxLength", result.error)

    def test_bad_parameters_are_configuration_errors(self) -> None:
        for extra in ({"maxLength": "lots"}, {"startIndex": True}, {"maxLength": -1}):
            with self.subTest(extra=extra):
                with self.assertRaises(ConfigurationError):
                    build_handler("v", dict({"type": "array", "method": self.METHOD}, **extra))


class FirstOfHandlerTests(unittest.TestCase):
    def test_first_success_wins(self) -> None:
        provider = _provider(calls={(TARGET, "implementation", ()): OTHER})
        handler = build_handler("implementation", {
            "type": "firstOf",
            "handlers": [
                {"type": "call", "method": "function getImplementation() view returns (address)"},
                {"type": "call", "method": "function implementation() view returns (address)"},
                {"type": "constant", "value": OWNER},
            ],
        })

        self.assertEqual(handler.execute(provider, TARGET, {}).value, OTHER)

    def test_all_failures_are_reported(self) -> None:
        handler = build_handler("implementation", {
            "type": "firstOf",
            "handlers": [
                {"type": "call", "method": "function getImplementation() view returns (address)"},
                {"type": "call", "method": "function implementation() view returns (address)"},
            ],
        })
        result = handler.execute(_provider(), TARGET, {})

        self.assertFalse(result.ok)
        self.assertIn("getImplementation", result.error)
        self.assertIn("implementation()", result.error)

    def test_nested_templates_are_dependencies(self) -> None:
        handler = build_handler("x", {
            "type": "firstOf",
            "handlers": [{"type": "storage", "slot": "{{ base }}"}],
        })
        self.assertEqual(handler.dependencies, ["base"])



class _Failing(Handler):
    type = "failing"

    def __init__(self, error) -> None:
        super().__init__("failing", {})
        self.error = error

    def resolve(self, provider, address, resolved):
        raise self.error


class HandlerExecuteTests(unittest.TestCase):
    def test_decode_and_lookup_failures_become_field_errors(self) -> None:
        for error in (KeyError("tokenId"), TypeError("unhashable"), EncodingError("negative"), OverflowError("too big")):
            with self.subTest(error=error):
                result = _Failing(error).execute(_provider(), TARGET, {})
                self.assertFalse(result.ok)
                self.assertIn(error.__class__.__name__, result.error)

    def test_data_source_errors_propagate(self) -> None:
        with self.assertRaises(DataSourceError):
            _Failing(DataSourceError("502 Bad Gateway")).execute(_provider(), TARGET, {})

    def test_bad_storage_parameters_are_configuration_errors(self) -> None:
        for extra in ({"offset": "x"}, {"slot": -1}, {"slot": [3, -5]}, {"slot": "slot0"}):
            with self.subTest(extra=extra):
                with self.assertRaises(ConfigurationError):
                    build_handler("s", dict({"type": "storage", "slot": 0}, **extra))

    def test_malformed_definitions_are_configuration_errors(self) -> None:
        for definition in (
            {"type": "call", "method": 42},
            {"type": "call", "method": "function f(uint256) view returns (uint256)", "args": 5},
            {"type": ["call"]},
        ):
            with self.subTest(definition=definition):
                with self.assertRaises(ConfigurationError):
                    build_handler("x", definition)


if __name__ == "__main__":
    unittest.main()
