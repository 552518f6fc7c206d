"""
Access-control predicate tests.

Covers construction, wire conversion in both directions, narrowing and
fail-closed evaluation.
"""

import unittest

from nftfuture.conditions import (
    AllOf,
    AnyOf,
    Comparator,
    ConditionError,
    TimeCondition,
    WalletCondition,
    build_time_lock,
    evaluate,
    from_unified,
    iter_leaves,
    narrow_to_time_lock,
    time_lock,
    to_unified,
    unlock_time,
)

SERVER = "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A"
OTHER = "0x1563915e194D8CfBA1943570603F7606A3115508"
UNLOCK_MS = 1_900_000_000_500


class TestTimeLock(unittest.TestCase):
    """Pre-mint predicate: recipient wallet OR time reached."""

    def test_shape(self):
        expr = build_time_lock(SERVER, UNLOCK_MS)
        self.assertIsInstance(expr, AnyOf)
        wallet, time = expr.children
        self.assertEqual(wallet, WalletCondition(address=SERVER, chain="base"))
        self.assertEqual(time, TimeCondition(unlock_at=1_900_000_000, chain="base"))

    def test_unlock_floors_milliseconds(self):
        self.assertEqual(time_lock(1_900_000_000_999).unlock_at, 1_900_000_000)
        self.assertEqual(unlock_time(build_time_lock(SERVER, UNLOCK_MS)), 1_900_000_000)

    def test_missing_recipient_fails(self):
        with self.assertRaises(ConditionError):
            build_time_lock(None, UNLOCK_MS)
        with self.assertRaises(ConditionError):
            build_time_lock("", UNLOCK_MS)
        with self.assertRaises(ConditionError):
            build_time_lock("not-an-address", UNLOCK_MS)

    def test_evaluation(self):
        expr = build_time_lock(SERVER, UNLOCK_MS)
        before, after = 1_899_999_999, 1_900_000_000
        self.assertTrue(evaluate(expr, SERVER, before))
        self.assertTrue(evaluate(expr, SERVER.lower(), before))
        self.assertFalse(evaluate(expr, OTHER, before))
        self.assertFalse(evaluate(expr, None, before))
        self.assertTrue(evaluate(expr, OTHER, after))
        self.assertTrue(evaluate(expr, None, after))

    def test_empty_predicate_rejected(self):
        with self.assertRaises(ConditionError):
            evaluate(None, SERVER, 0)
        with self.assertRaises(ConditionError):
            AnyOf()

    def test_single_child_group_rejected(self):
        with self.assertRaises(ConditionError):
            AnyOf(TimeCondition(5))
        with self.assertRaises(ConditionError):
            AllOf(WalletCondition(SERVER))
        # a bracketed single leaf still parses to the leaf itself
        self.assertEqual(from_unified([to_unified(TimeCondition(5))]), TimeCondition(5))


class TestWireFormat(unittest.TestCase):
    """Flat unified condition list with positional operators."""

    def test_time_lock_wire_layout(self):
        wire = to_unified(build_time_lock(SERVER, UNLOCK_MS))
        self.assertEqual(len(wire), 3)
        self.assertEqual(wire[1], {"conditionType": "operator", "operator": "or"})
        self.assertEqual(wire[0]["parameters"], [":userAddress"])
        self.assertEqual(wire[0]["returnValueTest"], {"comparator": "=", "value": SERVER})
        self.assertEqual(wire[2]["standardContractType"], "timestamp")
        self.assertEqual(wire[2]["method"], "eth_getBlockByNumber")
        self.assertEqual(wire[2]["parameters"], ["latest"])
        self.assertEqual(wire[2]["returnValueTest"], {"comparator": ">=", "value": "1900000000"})

    def test_round_trip(self):
        exprs = [
            time_lock(UNLOCK_MS),
            build_time_lock(SERVER, UNLOCK_MS),
            AllOf(WalletCondition(SERVER), TimeCondition(5)),
            AnyOf(AllOf(WalletCondition(SERVER), TimeCondition(5)), TimeCondition(10)),
        ]
        for expr in exprs:
            with self.subTest(expr=expr):
                self.assertEqual(from_unified(to_unified(expr)), expr)

    def test_empty_list_is_no_predicate(self):
        self.assertIsNone(from_unified([]))
        self.assertEqual(to_unified(None), [])

    def test_malformed_lists_rejected(self):
        wallet = WalletCondition(SERVER).to_unified()
        time = TimeCondition(5).to_unified()
        op_or = {"conditionType": "operator", "operator": "or"}
        op_and = {"conditionType": "operator", "operator": "and"}
        bad = [
            [op_or],
            [wallet, op_or],
            [op_or, wallet],
            [wallet, time],
            [wallet, op_or, time, op_and, wallet],
            [wallet, {"conditionType": "operator", "operator": "xor"}, time],
            [{"conditionType": "evmBasic", "method": "balanceOf", "returnValueTest": {"value": "1"}}],
            [{"conditionType": "evmBasic"}],
            [[]],
            ["text"],
        ]
        for items in bad:
            with self.subTest(items=items):
                with self.assertRaises(ConditionError):
                    from_unified(items)
        with self.assertRaises(ConditionError):
            from_unified({"conditionType": "evmBasic"})

    def test_wallet_comparator_limited_to_equality(self):
        with self.assertRaises(ConditionError):
            WalletCondition(SERVER, comparator=Comparator.GT)


class TestNarrowing(unittest.TestCase):
    """Re-wrapping keeps only the time condition."""

    def test_narrow_equals_wire_suffix(self):
        expr = build_time_lock(SERVER, UNLOCK_MS)
        narrowed = narrow_to_time_lock(expr)
        self.assertEqual(narrowed, time_lock(UNLOCK_MS))
        self.assertEqual(to_unified(narrowed), to_unified(expr)[2:])

    def test_narrowed_predicate_ignores_wallet(self):
        narrowed = narrow_to_time_lock(build_time_lock(SERVER, UNLOCK_MS))
        self.assertFalse(evaluate(narrowed, SERVER, 1_899_999_999))
        self.assertTrue(evaluate(narrowed, OTHER, 1_900_000_000))

    def test_needs_exactly_one_time_condition(self):
        with self.assertRaises(ConditionError):
            narrow_to_time_lock(WalletCondition(SERVER))
        with self.assertRaises(ConditionError):
            narrow_to_time_lock(AnyOf(TimeCondition(1), TimeCondition(2)))
        with self.assertRaises(ConditionError):
            narrow_to_time_lock(None)

    def test_iter_leaves_depth_first(self):
        expr = AnyOf(AllOf(WalletCondition(SERVER), TimeCondition(5)), TimeCondition(10))
        self.assertEqual(
            list(iter_leaves(expr)),
            [WalletCondition(SERVER), TimeCondition(5), TimeCondition(10)],
        )


if __name__ == "__main__":
    unittest.main()
