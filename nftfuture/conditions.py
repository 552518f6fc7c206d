"""
Access-control conditions for time-locked messages.

A predicate is held as an explicit expression tree: leaf conditions
combined by AnyOf (OR) and AllOf (AND) nodes. The key network consumes
a flat wire list in which boolean operators sit *between* their operands:

    [wallet_leaf, {"conditionType": "operator", "operator": "or"}, time_leaf]

Nested groups are encoded as nested lists. Conversion in both directions
preserves order exactly; the parser is fail-closed and rejects any list
where operands and operators do not alternate.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from .util import ms_to_epoch

DEFAULT_CHAIN = "base"
USER_ADDRESS_PARAM = ":userAddress"
ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')


class ConditionError(ValueError):
    """Raised for malformed or unsupported access-control conditions."""


class Comparator(str, Enum):
    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="


class Operator(str, Enum):
    OR = "or"
    AND = "and"


def _compare(comparator: Comparator, observed: Any, expected: Any) -> bool:
    if comparator == Comparator.EQ:
        return observed == expected
    if comparator == Comparator.NE:
        return observed != expected
    if comparator == Comparator.GT:
        return observed > expected
    if comparator == Comparator.GTE:
        return observed >= expected
    if comparator == Comparator.LT:
        return observed < expected
    return observed <= expected


def _comparator(value: Any) -> Comparator:
    try:
        return Comparator(value)
    except ValueError:
        raise ConditionError(f"unsupported comparator: {value!r}") from None


class Condition(ABC):
    """A node of a predicate tree."""

    @abstractmethod
    def evaluate(self, requester: Optional[str], block_time: int) -> bool:
        """Evaluate against the requesting identity and chain block time."""

    @abstractmethod
    def to_unified(self) -> Any:
        """Wire form: a dict for leaves, a list for groups."""


@dataclass(frozen=True)
class WalletCondition(Condition):
    """True iff the requester is ``address``."""
    address: str
    chain: str = DEFAULT_CHAIN
    comparator: Comparator = Comparator.EQ

    def __post_init__(self):
        if self.comparator not in (Comparator.EQ, Comparator.NE):
            raise ConditionError("wallet conditions only support '=' and '!='")

    def evaluate(self, requester: Optional[str], block_time: int) -> bool:
        if not requester:
            return False
        return _compare(self.comparator, requester.lower(), self.address.lower())

    def to_unified(self) -> Dict[str, Any]:
        return {
            "conditionType": "evmBasic",
            "contractAddress": "",
            "standardContractType": "",
            "chain": self.chain,
            "method": "",
            "parameters": [USER_ADDRESS_PARAM],
            "returnValueTest": {
                "comparator": self.comparator.value,
                "value": self.address,
            },
        }


@dataclass(frozen=True)
class TimeCondition(Condition):
    """True iff the latest block time is at or past ``unlock_at`` (unix seconds)."""
    unlock_at: int
    chain: str = DEFAULT_CHAIN
    comparator: Comparator = Comparator.GTE

    def evaluate(self, requester: Optional[str], block_time: int) -> bool:
        return _compare(self.comparator, int(block_time), self.unlock_at)

    def to_unified(self) -> Dict[str, Any]:
        return {
            "conditionType": "evmBasic",
            "contractAddress": "",
            "standardContractType": "timestamp",
            "chain": self.chain,
            "method": "eth_getBlockByNumber",
            "parameters": ["latest"],
            "returnValueTest": {
                "comparator": self.comparator.value,
                "value": str(self.unlock_at),
            },
        }


class Group(Condition):
    """Boolean combination of two or more conditions."""
    operator: Operator

    def __init__(self, *children: Condition):
        if len(children) < 2:
            raise ConditionError(f"{type(self).__name__} needs at least two conditions, got {len(children)}")
        self.children: Tuple[Condition, ...] = tuple(children)

    def __eq__(self, other):
        return type(self) is type(other) and self.children == other.children

    def __hash__(self):
        return hash((type(self).__name__, self.children))

    def __repr__(self):
        return f"{type(self).__name__}({', '.join(map(repr, self.children))})"

    def to_unified(self) -> List[Any]:
        out: List[Any] = []
        for index, child in enumerate(self.children):
            if index:
                out.append({"conditionType": "operator", "operator": self.operator.value})
            out.append(child.to_unified())
        return out


class AnyOf(Group):
    operator = Operator.OR

    def evaluate(self, requester: Optional[str], block_time: int) -> bool:
        return any(c.evaluate(requester, block_time) for c in self.children)


class AllOf(Group):
    operator = Operator.AND

    def evaluate(self, requester: Optional[str], block_time: int) -> bool:
        return all(c.evaluate(requester, block_time) for c in self.children)


# ============================================================
# Wire conversion
# ============================================================

def to_unified(expr: Optional[Condition]) -> List[Any]:
    """Flatten a predicate tree into the key network's condition list."""
    if expr is None:
        return []
    if isinstance(expr, Group):
        return expr.to_unified()
    return [expr.to_unified()]


def from_unified(items: Sequence[Any]) -> Optional[Condition]:
    """
    Parse a flat condition list back into a predicate tree.

    Returns None for an empty list.

    Raises:
        ConditionError: On any structural or leaf error
    """
    if not isinstance(items, (list, tuple)):
        raise ConditionError("conditions must be a list")
    if not items:
        return None
    return _parse_group(items)


def _is_operator(item: Any) -> bool:
    return isinstance(item, dict) and item.get("conditionType") == "operator"


def _parse_group(items: Sequence[Any]) -> Condition:
    if not items:
        raise ConditionError("empty condition group")
    if len(items) % 2 == 0:
        raise ConditionError("condition list must not end with an operator")

    children: List[Condition] = []
    operator: Optional[Operator] = None
    for index, item in enumerate(items):
        expect_operand = index % 2 == 0
        if _is_operator(item):
            if expect_operand:
                raise ConditionError(f"operator at position {index} has no left operand")
            try:
                op = Operator(item.get("operator"))
            except ValueError:
                raise ConditionError(f"unsupported operator: {item.get('operator')!r}") from None
            if operator is not None and op != operator:
                raise ConditionError("mixed operators in one group")
            operator = op
        else:
            if not expect_operand:
                raise ConditionError(f"missing operator before position {index}")
            children.append(_parse_operand(item))

    if len(children) == 1:
        return children[0]
    return AnyOf(*children) if operator == Operator.OR else AllOf(*children)


def _parse_operand(item: Any) -> Condition:
    if isinstance(item, (list, tuple)):
        return _parse_group(item)
    if isinstance(item, dict):
        return _parse_leaf(item)
    raise ConditionError(f"unexpected condition entry: {item!r}")


def _parse_leaf(item: Dict[str, Any]) -> Condition:
    test = item.get("returnValueTest")
    if not isinstance(test, dict) or "value" not in test:
        raise ConditionError("condition is missing returnValueTest")
    comparator = _comparator(test.get("comparator"))
    chain = item.get("chain") or DEFAULT_CHAIN
    params = list(item.get("parameters") or [])

    if item.get("standardContractType") == "timestamp" and item.get("method") == "eth_getBlockByNumber":
        try:
            unlock_at = int(test["value"])
        except (TypeError, ValueError):
            raise ConditionError(f"invalid timestamp value: {test['value']!r}") from None
        return TimeCondition(unlock_at=unlock_at, chain=chain, comparator=comparator)

    if params == [USER_ADDRESS_PARAM] and not item.get("method"):
        return WalletCondition(address=str(test["value"]), chain=chain, comparator=comparator)

    raise ConditionError(f"unsupported condition: {item.get('method')!r}")


# ============================================================
# Builders
# ============================================================

def iter_leaves(expr: Optional[Condition]) -> Iterator[Condition]:
    """Yield leaf conditions in construction order."""
    if expr is None:
        return
    if isinstance(expr, Group):
        for child in expr.children:
            yield from iter_leaves(child)
    else:
        yield expr


def time_lock(unlock_at_ms: int, chain: str = DEFAULT_CHAIN) -> TimeCondition:
    """Time-only predicate; ``unlock_at_ms`` is floored to whole seconds."""
    return TimeCondition(unlock_at=ms_to_epoch(unlock_at_ms), chain=chain)


def build_time_lock(recipient: Optional[str], unlock_at_ms: int, chain: str = DEFAULT_CHAIN) -> AnyOf:
    """
    Build the pre-mint predicate: recipient wallet OR unlock time reached.

    Args:
        recipient: Wallet allowed to decrypt before the unlock time
        unlock_at_ms: Unlock time in unix milliseconds
        chain: Chain the conditions are evaluated on

    Raises:
        ConditionError: If the recipient is missing or not an address
    """
    if not recipient:
        raise ConditionError("recipient wallet is required for a time lock")
    if not ADDRESS_PATTERN.match(recipient):
        raise ConditionError(f"invalid wallet address: {recipient!r}")
    return AnyOf(
        WalletCondition(address=recipient, chain=chain),
        time_lock(unlock_at_ms, chain),
    )


def narrow_to_time_lock(expr: Optional[Condition]) -> TimeCondition:
    """
    Narrow a predicate to its time condition.

    Used to re-wrap a message for public reading: the wallet leaf and the
    operator are dropped. Exactly one time leaf must be present.
    """
    times = [leaf for leaf in iter_leaves(expr) if isinstance(leaf, TimeCondition)]
    if len(times) != 1:
        raise ConditionError(f"expected exactly one time condition, found {len(times)}")
    return times[0]


def unlock_time(expr: Optional[Condition]) -> Optional[int]:
    """Unix seconds of the first time condition, if any."""
    for leaf in iter_leaves(expr):
        if isinstance(leaf, TimeCondition):
            return leaf.unlock_at
    return None


def evaluate(expr: Optional[Condition], requester: Optional[str], block_time: int) -> bool:
    """
    Evaluate a predicate tree.

    An empty predicate is rejected rather than treated as always-true.
    """
    if expr is None:
        raise ConditionError("empty predicate")
    return expr.evaluate(requester, block_time)
