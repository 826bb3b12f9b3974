#!/usr/bin/env python3
"""
Test Suite for the step ledger engine.

Run with: python run_tests.py

Tests cover:
- Profit math (win = amount*odds - amount, loss = -amount)
- Step numbering + running totals
- State machine (failed on loss / balance <= 0, completed at threshold, manual finish)
- Policy variants (manual completion, stake cap, permissive odds)
- Input validation errors
- Invariant checker
"""

import unittest
from datetime import datetime, timezone

from engine import (
    Challenge,
    ChallengeTerminated,
    InsufficientFunds,
    InvalidInput,
    LedgerPolicy,
    apply_bet,
    calculate_bet_profit,
    finish_challenge,
    potential_win,
    preview_bet,
    start_challenge,
    verify_ledger,
)

DAY = "2025-06-01"


class TestProfit(unittest.TestCase):
    """Profit per bet result."""

    def test_win_profit(self):
        self.assertAlmostEqual(calculate_bet_profit(100, 2.0, "win"), 100.0)
        self.assertAlmostEqual(calculate_bet_profit(300, 1.5, "win"), 150.0)

    def test_loss_profit(self):
        self.assertEqual(calculate_bet_profit(100, 1.5, "loss"), -100)

    def test_pending_has_no_profit(self):
        self.assertEqual(calculate_bet_profit(100, 1.5, "pending"), 0.0)

    def test_potential_win_incomplete_form(self):
        """Blank or zero fields preview as 0."""
        self.assertEqual(potential_win(0, 2.0), 0.0)
        self.assertEqual(potential_win(100, 0), 0.0)
        self.assertEqual(potential_win(None, 2.0), 0.0)
        self.assertAlmostEqual(potential_win(50, 3.0), 100.0)


class TestStartAndFinish(unittest.TestCase):

    def test_start_challenge_is_empty_and_in_progress(self):
        ch = start_challenge(DAY)
        self.assertEqual(ch.date, DAY)
        self.assertEqual(ch.steps, ())
        self.assertEqual(ch.total_profit, 0.0)
        self.assertEqual(ch.final_result, "in_progress")
        self.assertEqual(ch.current_total, 0.0)

    def test_start_uses_given_id_and_timestamp(self):
        ts = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        ch = start_challenge(DAY, challenge_id="abc", now=ts)
        self.assertEqual(ch.id, "abc")
        self.assertEqual(ch.created_at, ts)
        self.assertEqual(ch.updated_at, ts)

    def test_start_rejects_bad_date(self):
        with self.assertRaises(InvalidInput):
            start_challenge("06/01/2025")

    def test_start_rejects_negative_balance(self):
        with self.assertRaises(InvalidInput):
            start_challenge(DAY, starting_balance=-5)

    def test_finish_forces_completed(self):
        ch = apply_bet(start_challenge(DAY), 100, 2.0, "win")
        done = finish_challenge(ch)
        self.assertEqual(done.final_result, "completed")
        self.assertEqual(done.steps, ch.steps)

    def test_finish_on_empty_challenge(self):
        self.assertEqual(finish_challenge(start_challenge(DAY)).final_result, "completed")

    def test_finish_twice_raises(self):
        done = finish_challenge(start_challenge(DAY))
        with self.assertRaises(ChallengeTerminated):
            finish_challenge(done)


class TestLedgerScenarios(unittest.TestCase):
    """Scenarios from the staking rules."""

    def test_single_win_stays_in_progress(self):
        ch = apply_bet(start_challenge(DAY), 100, 2.0, "win")
        step = ch.steps[0]
        self.assertAlmostEqual(step.profit, 100.0)
        self.assertAlmostEqual(step.total_before, 0.0)
        self.assertAlmostEqual(step.total_after, 100.0)
        self.assertEqual(ch.final_result, "in_progress")

    def test_loss_fails_challenge(self):
        ch = apply_bet(start_challenge(DAY, starting_balance=250), 100, 1.5, "loss")
        step = ch.steps[0]
        self.assertEqual(step.profit, -100)
        self.assertEqual(step.total_after, step.total_before - 100)
        self.assertEqual(ch.final_result, "failed")

    def test_three_wins_complete(self):
        ch = start_challenge(DAY)
        ch = apply_bet(ch, 100, 2.0, "win")
        self.assertEqual(ch.final_result, "in_progress")
        ch = apply_bet(ch, 100, 1.5, "win")
        self.assertEqual(ch.final_result, "in_progress")
        ch = apply_bet(ch, 100, 1.8, "win")
        self.assertEqual(ch.final_result, "completed")
        self.assertEqual(len(ch.steps), 3)

    def test_balance_exactly_zero_fails(self):
        ch = apply_bet(start_challenge(DAY, starting_balance=100), 100, 2.0, "loss")
        self.assertEqual(ch.steps[-1].total_after, 0)
        self.assertEqual(ch.final_result, "failed")

    def test_win_below_zero_fails_with_permissive_odds(self):
        """Odds under 1 lose money even on a win; balance <= 0 fails."""
        policy = LedgerPolicy(min_odds=0.0)
        ch = apply_bet(start_challenge(DAY), 100, 0.5, "win", policy)
        self.assertAlmostEqual(ch.steps[0].profit, -50.0)
        self.assertEqual(ch.final_result, "failed")

    def test_terminal_rejects_more_steps(self):
        ch = apply_bet(start_challenge(DAY), 100, 2.0, "loss")
        with self.assertRaises(ChallengeTerminated):
            apply_bet(ch, 100, 2.0, "win")

    def test_input_not_mutated(self):
        ch = start_challenge(DAY)
        apply_bet(ch, 100, 2.0, "win")
        self.assertEqual(ch.steps, ())
        self.assertEqual(ch.total_profit, 0.0)


class TestLedgerInvariants(unittest.TestCase):

    def _run(self, start=0.0):
        ch = start_challenge(DAY, starting_balance=start)
        policy = LedgerPolicy(completion_steps=None)
        for amount, odds in [(100, 2.0), (150, 1.5), (80, 3.1), (40, 1.25)]:
            ch = apply_bet(ch, amount, odds, "win", policy)
        return ch

    def test_step_numbers_are_sequential(self):
        ch = self._run()
        for i, s in enumerate(ch.steps):
            self.assertEqual(s.step_number, i + 1)

    def test_totals_chain(self):
        ch = self._run(start=500)
        self.assertEqual(ch.steps[0].total_before, 500)
        for prev, nxt in zip(ch.steps, ch.steps[1:]):
            self.assertEqual(nxt.total_before, prev.total_after)

    def test_last_total_matches_profit(self):
        for start in (0.0, 500.0):
            ch = self._run(start=start)
            self.assertAlmostEqual(ch.steps[-1].total_after, start + ch.total_profit)
            self.assertAlmostEqual(ch.total_profit, sum(s.profit for s in ch.steps))

    def test_verify_ledger_clean(self):
        self.assertEqual(verify_ledger(self._run(start=200)), [])

    def test_verify_ledger_detects_gap(self):
        ch = self._run()
        broken = Challenge(date=DAY, steps=(ch.steps[0], ch.steps[2]), total_profit=ch.total_profit)
        problems = verify_ledger(broken)
        self.assertTrue(any("numbered" in p for p in problems))
        self.assertTrue(any("total_profit" in p for p in problems))


class TestPolicyVariants(unittest.TestCase):

    def test_manual_completion_never_auto_completes(self):
        policy = LedgerPolicy(completion_steps=None)
        ch = start_challenge(DAY)
        for _ in range(6):
            ch = apply_bet(ch, 10, 2.0, "win", policy)
        self.assertEqual(ch.final_result, "in_progress")
        self.assertEqual(finish_challenge(ch).final_result, "completed")

    def test_custom_completion_threshold(self):
        policy = LedgerPolicy(completion_steps=1)
        ch = apply_bet(start_challenge(DAY), 10, 2.0, "win", policy)
        self.assertEqual(ch.final_result, "completed")

    def test_stake_cap_blocks_overbet(self):
        policy = LedgerPolicy(cap_stake=True)
        ch = start_challenge(DAY, starting_balance=100)
        with self.assertRaises(InsufficientFunds):
            apply_bet(ch, 150, 2.0, "win", policy)
        ch = apply_bet(ch, 100, 2.0, "win", policy)
        self.assertEqual(ch.current_total, 200)

    def test_stake_cap_skips_opening_stake_of_unfunded_ledger(self):
        policy = LedgerPolicy(cap_stake=True)
        ch = apply_bet(start_challenge(DAY), 100, 2.0, "win", policy)
        self.assertEqual(ch.current_total, 100)
        with self.assertRaises(InsufficientFunds):
            apply_bet(ch, 101, 2.0, "win", policy)

    def test_uncapped_allows_overbet(self):
        ch = apply_bet(start_challenge(DAY, starting_balance=50), 500, 2.0, "win")
        self.assertEqual(ch.current_total, 550)

    def test_strict_odds_rejects_one(self):
        with self.assertRaises(InvalidInput):
            apply_bet(start_challenge(DAY), 100, 1.0, "win")

    def test_permissive_odds_accepts_below_one(self):
        ch = apply_bet(start_challenge(DAY), 100, 0.9, "win", LedgerPolicy(min_odds=0.0))
        self.assertEqual(len(ch.steps), 1)


class TestValidation(unittest.TestCase):

    def test_non_positive_amount(self):
        for amount in (0, -10, float("nan"), "abc"):
            with self.assertRaises(InvalidInput):
                apply_bet(start_challenge(DAY), amount, 2.0, "win")

    def test_non_positive_odds(self):
        for odds in (0, -1.5):
            with self.assertRaises(InvalidInput):
                apply_bet(start_challenge(DAY), 100, odds, "win", LedgerPolicy(min_odds=0.0))

    def test_boolean_stake_and_odds_rejected(self):
        with self.assertRaises(InvalidInput):
            apply_bet(start_challenge(DAY), True, 2.0, "win")
        with self.assertRaises(InvalidInput):
            apply_bet(start_challenge(DAY), 100, True, "win", LedgerPolicy(min_odds=0.0))

    def test_pending_result_rejected(self):
        with self.assertRaises(InvalidInput):
            apply_bet(start_challenge(DAY), 100, 2.0, "pending")

    def test_terminal_checked_before_input(self):
        done = finish_challenge(start_challenge(DAY))
        with self.assertRaises(ChallengeTerminated):
            apply_bet(done, -1, 0, "pending")


class TestPreview(unittest.TestCase):

    def test_preview_next_step(self):
        ch = apply_bet(start_challenge(DAY), 100, 2.0, "win")
        p = preview_bet(ch, 200, 1.5)
        self.assertEqual(p["step_number"], 2)
        self.assertAlmostEqual(p["potential_profit"], 100.0)
        self.assertAlmostEqual(p["total_if_win"], 200.0)
        self.assertAlmostEqual(p["total_if_loss"], -100.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
