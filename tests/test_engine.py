"""
Test Suite for the Staking Policy Engine

Run with: python run_tests.py   (or: pytest)

Tests cover:
- Policy priority order (Soros, invalid, negative EV, fixed, Kelly)
- Reference scenarios at the default business config
- EV floor and the Soros bypass
- Clamp to [min stake, bankroll]
- Settlement and Soros transitions
- Config / state validation
"""

import math
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from engine import (
    MIN_STAKE,
    ProgressionState,
    StakingPolicyConfig,
    clamp_stake,
    format_money,
    kelly_fraction,
    next_stake,
    settle,
)

CFG = StakingPolicyConfig(
    win_rate=0.807,
    low_odd_threshold=1.27,
    fixed_stake_fraction=0.05,
    minimum_viable_odd=1.24,
)


class TestReferenceScenarios(unittest.TestCase):

    def test_scenario_a_fixed_stake_at_floor(self):
        """Odd exactly at the floor and under the threshold -> 5% fixed."""
        d = next_stake(CFG, ProgressionState(bankroll=100.0), 1.24)
        self.assertAlmostEqual(d.stake, 5.00, places=9)
        self.assertEqual(d.label, "fixed stake")

    def test_scenario_b_kelly(self):
        """Above the threshold -> Kelly fraction of the bankroll."""
        d = next_stake(CFG, ProgressionState(bankroll=100.0), 1.35)
        expected_f = (0.807 * 0.35 - 0.193) / 0.35
        self.assertAlmostEqual(d.stake, 100.0 * expected_f, places=9)
        self.assertAlmostEqual(d.stake, 25.557, places=2)
        self.assertEqual(d.label, f"Kelly {expected_f * 100:.2f}%")
        self.assertEqual(d.label, "Kelly 25.56%")

    def test_scenario_c_below_floor(self):
        d = next_stake(CFG, ProgressionState(bankroll=100.0), 1.20)
        self.assertEqual(d.stake, 0.0)
        self.assertEqual(d.label, "negative EV")
        self.assertTrue(d.is_refusal)


class TestPolicyPriority(unittest.TestCase):

    def test_soros_wins_over_everything(self):
        state = ProgressionState(bankroll=100.0, soros_active=True, soros_carry_amount=6.4)
        for odd in (1.10, 1.24, 1.28, 2.5):
            d = next_stake(CFG, state, odd)
            self.assertEqual(d.stake, 6.4)
            self.assertEqual(d.label, "Soros level 1")

    def test_soros_bypasses_invalid_odd_too(self):
        state = ProgressionState(bankroll=100.0, soros_active=True, soros_carry_amount=3.0)
        self.assertEqual(next_stake(CFG, state, float("nan")).label, "Soros level 1")

    def test_invalid_odds(self):
        state = ProgressionState(bankroll=100.0)
        for odd in (1.0, 0.5, -2.0, float("nan"), float("inf"), "abc", None):
            d = next_stake(CFG, state, odd)
            self.assertEqual(d.stake, 0.0, f"odd={odd!r}")
            self.assertEqual(d.label, "invalid", f"odd={odd!r}")

    def test_ev_floor_for_any_non_soros_state(self):
        """Every odd under the floor yields 0 regardless of bankroll."""
        for bankroll in (0.0, 0.5, 100.0, 12345.67):
            state = ProgressionState(bankroll=bankroll)
            for odd in (1.01, 1.1, 1.2, 1.2399):
                d = next_stake(CFG, state, odd)
                self.assertEqual(d.stake, 0.0)
                self.assertEqual(d.label, "negative EV")

    def test_threshold_is_inclusive(self):
        d = next_stake(CFG, ProgressionState(bankroll=200.0), 1.27)
        self.assertEqual(d.label, "fixed stake")
        self.assertAlmostEqual(d.stake, 10.0)

    def test_kelly_negative_when_floor_is_permissive(self):
        """With a floor below break-even, Kelly itself refuses."""
        cfg = StakingPolicyConfig(win_rate=0.5, low_odd_threshold=1.05,
                                  fixed_stake_fraction=0.05, minimum_viable_odd=1.01)
        d = next_stake(cfg, ProgressionState(bankroll=100.0), 1.8)
        self.assertEqual(d.stake, 0.0)
        self.assertEqual(d.label, "Kelly EV-")

    def test_kelly_fraction_formula(self):
        self.assertAlmostEqual(kelly_fraction(0.5, 3.0), 0.25)
        self.assertLess(kelly_fraction(0.807, 1.2), 0)


class TestClamp(unittest.TestCase):

    def test_floor_at_min_stake(self):
        self.assertEqual(clamp_stake(0.0, 100.0), MIN_STAKE)
        self.assertEqual(clamp_stake(0.001, 100.0), MIN_STAKE)

    def test_capped_at_bankroll(self):
        self.assertEqual(clamp_stake(150.0, 100.0), 100.0)

    def test_empty_bankroll_gives_zero(self):
        self.assertEqual(clamp_stake(5.0, 0.0), 0.0)

    def test_passthrough(self):
        self.assertEqual(clamp_stake(5.0, 100.0), 5.0)


class TestSettle(unittest.TestCase):

    def test_first_win_arms_soros_with_stake_plus_profit(self):
        s = settle(ProgressionState(bankroll=100.0), 5.0, 1.28, won=True)
        self.assertAlmostEqual(s.profit_or_loss, 1.4)
        self.assertAlmostEqual(s.state.bankroll, 101.4)
        self.assertTrue(s.state.soros_active)
        self.assertAlmostEqual(s.state.soros_carry_amount, 6.4)

    def test_soros_win_resets_progression(self):
        state = ProgressionState(bankroll=101.4, soros_active=True, soros_carry_amount=6.4)
        s = settle(state, 6.4, 1.28, won=True)
        self.assertAlmostEqual(s.state.bankroll, 103.192)
        self.assertFalse(s.state.soros_active)
        self.assertEqual(s.state.soros_carry_amount, 0.0)

    def test_loss_always_resets(self):
        for active, carry in ((False, 0.0), (True, 6.4)):
            state = ProgressionState(bankroll=100.0, soros_active=active, soros_carry_amount=carry)
            s = settle(state, 5.0, 1.28, won=False)
            self.assertEqual(s.profit_or_loss, -5.0)
            self.assertEqual(s.state.bankroll, 95.0)
            self.assertFalse(s.state.soros_active)
            self.assertEqual(s.state.soros_carry_amount, 0.0)

    def test_settle_does_not_mutate_input(self):
        state = ProgressionState(bankroll=100.0)
        settle(state, 5.0, 1.28, won=True)
        self.assertEqual(state.bankroll, 100.0)
        self.assertFalse(state.soros_active)


class TestValidation(unittest.TestCase):

    def test_win_rate_bounds(self):
        for bad in (0.0, 1.0, -0.1, 1.5):
            with self.assertRaises(ValueError):
                StakingPolicyConfig(win_rate=bad)

    def test_fixed_fraction_bounds(self):
        with self.assertRaises(ValueError):
            StakingPolicyConfig(fixed_stake_fraction=0.0)

    def test_non_finite_thresholds(self):
        with self.assertRaises(ValueError):
            StakingPolicyConfig(low_odd_threshold=math.inf)

    def test_carry_requires_active_soros(self):
        with self.assertRaises(ValueError):
            ProgressionState(bankroll=100.0, soros_active=False, soros_carry_amount=1.0)

    def test_negative_bankroll_rejected(self):
        with self.assertRaises(ValueError):
            ProgressionState(bankroll=-1.0)

    def test_defaults_match_business_policy(self):
        cfg = StakingPolicyConfig()
        self.assertEqual(cfg.win_rate, 0.807)
        self.assertEqual(cfg.low_odd_threshold, 1.27)
        self.assertEqual(cfg.fixed_stake_fraction, 0.05)
        self.assertEqual(cfg.minimum_viable_odd, 1.24)


class TestFormatting(unittest.TestCase):

    def test_two_decimals(self):
        self.assertEqual(format_money(103.192), "103.19")
        self.assertEqual(format_money(5), "5.00")


if __name__ == "__main__":
    unittest.main()
