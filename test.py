import unittest
from contracting.stdlib.bridge.time import Datetime, Timedelta
from contracting.client import ContractingClient

from greenbond.sources import CONTRACTS_DIR

E18 = 10 ** 18


class TestGreenBondEscrow(unittest.TestCase):
    def setUp(self):
        self.client = ContractingClient()
        self.client.flush() # Ensures a clean state

        # Define user accounts
        self.operator = 'sys' # Submits contracts, owns oracle and escrow
        self.issuer = 'issuer'
        self.updater = 'updater'
        self.alice = 'alice'
        self.bob = 'bob'
        self.mallory = 'mallory'

        # Define contract names for easy reference
        self.escrow_name = "con_green_bond_escrow"
        self.oracle_name = "con_impact_oracle"
        self.token_name = "con_bond_token"
        self.currency_name = "con_payment_token"

        self.base_time = Datetime(year=2024, month=1, day=1, hour=0, minute=0, second=0)
        self.sale_start = self._get_future_time(self.base_time, hours=1)
        self.sale_end = self._get_future_time(self.base_time, days=1)
        self.during_sale = self._get_future_time(self.base_time, hours=2)
        self.after_sale = self._get_future_time(self.base_time, days=2)

        # Cap of 1000 whole tokens at 0.01 per token
        self.cap_tokens = 1000 * E18
        self.price = 10 ** 16

        with open(CONTRACTS_DIR / "con_payment_token.py") as f:
            self.client.submit(f.read(), name=self.currency_name, signer=self.operator,
                               constructor_args={"initial_supply": 10 ** 27})
        with open(CONTRACTS_DIR / "con_impact_oracle.py") as f:
            self.client.submit(f.read(), name=self.oracle_name, signer=self.operator,
                               constructor_args={"updater": self.updater})
        with open(CONTRACTS_DIR / "con_bond_token.py") as f:
            self.client.submit(f.read(), name=self.token_name, signer=self.operator,
                               constructor_args={"name": "Green Bond", "symbol": "GBOND",
                                                 "cap_tokens": self.cap_tokens, "owner": self.issuer})
        with open(CONTRACTS_DIR / "con_green_bond_escrow.py") as f:
            self.client.submit(f.read(), name=self.escrow_name, signer=self.operator,
                               constructor_args=self._escrow_args())

        self.con_escrow = self.client.get_contract(self.escrow_name)
        self.con_oracle = self.client.get_contract(self.oracle_name)
        self.con_token = self.client.get_contract(self.token_name)
        self.con_currency = self.client.get_contract(self.currency_name)

        # --- Wiring ---
        self.con_token.set_minter(minter=self.escrow_name, signer=self.issuer)
        self.con_oracle.set_escrow(escrow=self.escrow_name, signer=self.operator)

        # --- Currency distribution and approvals ---
        for investor in (self.alice, self.bob):
            self.con_currency.transfer(amount=10 ** 22, to=investor, signer=self.operator)
            self.con_currency.approve(amount=10 ** 22, to=self.escrow_name, signer=investor)

    def tearDown(self):
        self.client.flush()

    def _get_future_time(self, base_dt: Datetime, days=0, hours=0, minutes=0, seconds=0) -> Datetime:
        delta = Timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
        return base_dt + delta

    def _escrow_args(self, **overrides):
        args = {
            "issuer": self.issuer,
            "oracle_address": self.oracle_name,
            "name": "Green Bond",
            "symbol": "GBOND",
            "cap_tokens": self.cap_tokens,
            "price_wei_per_token": self.price,
            "sale_start": self.sale_start,
            "sale_end": self.sale_end,
            "thresholds": [100, 200],
            "bps": [5000, 5000],
            "maturity_months": 12,
            "annual_yield_bps": 800,
            "token": self.token_name,
            "payment_token": self.currency_name,
        }
        args.update(overrides)
        return args

    def _invest(self, investor, token_amount, value, now=None):
        return self.con_escrow.invest(
            token_amount=token_amount, value=value, signer=investor,
            environment={"now": now or self.during_sale}
        )

    def _sale_state(self, now=None):
        return self.con_escrow.get_sale_state(environment={"now": now or self.during_sale})

    def _achieved(self):
        return [self.con_escrow.get_milestone(index=i)['achieved']
                for i in range(self.con_escrow.get_milestones_count())]

    def test_invest_mints_tokens(self):
        print("\n--- Test: Invest Mints Tokens ---")
        token_amount = 100 * E18 # 100 tokens
        cost = E18                # 100 * 0.01

        self._invest(self.alice, token_amount, cost)

        self.assertEqual(self.con_token.balance_of(address=self.alice), token_amount)
        self.assertEqual(self.con_currency.balance_of(address=self.escrow_name), cost)
        self.assertEqual(self.con_currency.balance_of(address=self.alice), 10 ** 22 - cost)
        state = self._sale_state()
        self.assertEqual(state['tokens_sold'], token_amount)
        self.assertEqual(state['total_raised'], cost)
        self.assertEqual(state['status'], 'Open')
        self.assertEqual(self.con_escrow.get_investment(investor=self.alice), {"tokens": token_amount, "paid": cost})

    def test_full_cap_closes_sale_and_further_investment_exceeds_cap(self):
        print("\n--- Test: Full Cap Then CapExceeded ---")
        self._invest(self.alice, 1000 * E18, 10 ** 19)

        state = self._sale_state()
        self.assertEqual(state['tokens_sold'], self.cap_tokens)
        self.assertEqual(state['status'], 'Closed')

        with self.assertRaisesRegex(AssertionError, "CapExceeded"):
            self._invest(self.bob, 1, 0)
        self.assertEqual(self._sale_state()['tokens_sold'], self.cap_tokens)

    def test_one_unit_over_cap_changes_nothing(self):
        print("\n--- Test: One Unit Over Cap ---")
        self._invest(self.alice, 400 * E18, 4 * E18)
        remaining = self.cap_tokens - 400 * E18

        with self.assertRaisesRegex(AssertionError, "CapExceeded"):
            self._invest(self.bob, remaining + 1, (remaining + 1) * self.price // E18)

        state = self._sale_state()
        self.assertEqual(state['tokens_sold'], 400 * E18)
        self.assertEqual(state['total_raised'], 4 * E18)
        self.assertEqual(self.con_token.balance_of(address=self.bob), 0)
        self.assertEqual(self.con_currency.balance_of(address=self.bob), 10 ** 22)

        # Exactly the remainder still fits
        self._invest(self.bob, remaining, remaining * self.price // E18)
        self.assertEqual(self._sale_state()['status'], 'Closed')
        self.assertEqual(self.con_token.total_supply(), self.cap_tokens)

    def test_incorrect_payment_rejected_both_ways(self):
        print("\n--- Test: Incorrect Payment ---")
        token_amount = 10 * E18
        cost = token_amount * self.price // E18

        with self.assertRaisesRegex(AssertionError, "IncorrectPayment"):
            self._invest(self.alice, token_amount, cost - 1)
        with self.assertRaisesRegex(AssertionError, "IncorrectPayment"):
            self._invest(self.alice, token_amount, cost + 1)

        self.assertEqual(self.con_currency.balance_of(address=self.alice), 10 ** 22)
        self.assertEqual(self._sale_state()['total_raised'], 0)

        self._invest(self.alice, token_amount, cost)
        self.assertEqual(self._sale_state()['total_raised'], cost)

    def test_zero_and_unpriceable_amounts_rejected(self):
        with self.assertRaisesRegex(AssertionError, "InvalidAmount"):
            self._invest(self.alice, 0, 0)
        # 1 base unit at 1e16 per 1e18 units costs less than 1 wei
        with self.assertRaisesRegex(AssertionError, "InvalidAmount"):
            self._invest(self.alice, 1, 0)

    def test_invest_outside_sale_window(self):
        print("\n--- Test: Sale Window ---")
        with self.assertRaisesRegex(AssertionError, "SaleNotOpen"):
            self._invest(self.alice, E18, self.price, now=self.base_time)
        self.assertEqual(self._sale_state(now=self.base_time)['status'], 'Pending')

        with self.assertRaisesRegex(AssertionError, "SaleNotOpen"):
            self._invest(self.alice, E18, self.price, now=self.after_sale)
        # The boundary itself is already closed
        with self.assertRaisesRegex(AssertionError, "SaleNotOpen"):
            self._invest(self.alice, E18, self.price, now=self.sale_end)

        state = self._sale_state(now=self.after_sale)
        self.assertEqual(state['status'], 'Closed')
        self.assertEqual(state['tokens_sold'], 0)
        self.assertEqual(state['total_raised'], 0)

    def test_milestones_release_in_tranches(self):
        print("\n--- Test: Milestones Release In Tranches ---")
        # 10000 base units at 1e16 per 1e18 units raise exactly 100 wei
        self._invest(self.alice, 10000, 100)
        self.assertEqual(self._sale_state()['total_raised'], 100)

        pushed = self.con_oracle.push_impact(delta_kwh=100, delta_co2_kg=0, signer=self.updater)
        self.assertEqual(pushed['cumulative_kwh'], 100)
        self.assertEqual(pushed['escrow'], self.escrow_name)
        # The push alone moves no funds
        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 0)

        report = self.con_escrow.evaluate_milestones(signer=self.bob)
        self.assertEqual(report['released'], [0])
        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 50)
        self.assertEqual(self._achieved(), [True, False])

        self.con_oracle.push_impact(delta_kwh=100, delta_co2_kg=0, signer=self.updater)
        report = self.con_escrow.evaluate_milestones(signer=self.bob)
        self.assertEqual(report['released'], [1])
        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 100)
        self.assertEqual(self._achieved(), [True, True])

        state = self._sale_state()
        self.assertEqual(state['total_released'], 100)
        self.assertEqual(state['total_released'], state['total_raised'])
        self.assertEqual(self.con_currency.balance_of(address=self.escrow_name), 0)

    def test_single_push_crossing_two_thresholds(self):
        self._invest(self.alice, 10000, 100)

        self.con_oracle.push_impact(delta_kwh=250, delta_co2_kg=175, signer=self.updater)
        report = self.con_escrow.evaluate_milestones(signer=self.bob)

        self.assertEqual(report['released'], [0, 1])
        self.assertEqual(report['released_amount'], 100)
        self.assertEqual(report['cumulative_kwh'], 250)
        self.assertEqual(self._achieved(), [True, True])
        self.assertEqual(self.con_oracle.cumulative_co2_kg(), 175)

    def test_thresholds_out_of_numeric_order(self):
        with open(CONTRACTS_DIR / "con_green_bond_escrow.py") as f:
            self.client.submit(f.read(), name="con_unordered_escrow", signer=self.operator,
                               constructor_args=self._escrow_args(thresholds=[300, 100],
                                                                  bps=[7000, 3000]))
        escrow = self.client.get_contract("con_unordered_escrow")
        self.con_token.transfer_minter(new_minter="con_unordered_escrow", signer=self.issuer)
        self.con_currency.approve(amount=10 ** 22, to="con_unordered_escrow", signer=self.alice)
        escrow.invest(token_amount=10000, value=100, signer=self.alice, environment={"now": self.during_sale})

        self.con_oracle.push_impact(delta_kwh=150, delta_co2_kg=0, signer=self.updater)
        report = escrow.evaluate_milestones(signer=self.bob)

        self.assertEqual(report['released'], [1])
        self.assertFalse(escrow.get_milestone(index=0)['achieved'])
        self.assertTrue(escrow.get_milestone(index=1)['achieved'])
        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 30)

    def test_evaluate_milestones_is_idempotent(self):
        print("\n--- Test: Evaluation Idempotence ---")
        self._invest(self.alice, 10000, 100)
        self.con_oracle.push_impact(delta_kwh=150, delta_co2_kg=0, signer=self.updater)

        first = self.con_escrow.evaluate_milestones(signer=self.bob)
        state_after_first = self._sale_state()
        second = self.con_escrow.release_funds(signer=self.issuer)
        third = self.con_escrow.evaluate_milestones(signer=self.bob)

        self.assertEqual(first['released'], [0])
        self.assertEqual(second['released'], [])
        self.assertEqual(third['released'], [])
        self.assertEqual(self._sale_state(), state_after_first)
        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 50)
        self.assertEqual(self._achieved(), [True, False])

    def test_push_by_non_updater_is_unauthorized(self):
        print("\n--- Test: Unauthorized Push ---")
        with self.assertRaisesRegex(AssertionError, "Unauthorized"):
            self.con_oracle.push_impact(delta_kwh=500, delta_co2_kg=10, signer=self.mallory)

        self.assertEqual(self.con_oracle.cumulative_kwh(), 0)
        self.assertEqual(self.con_oracle.cumulative_co2_kg(), 0)
        self.assertEqual(self._achieved(), [False, False])

    def test_release_continues_after_sale_closes(self):
        self._invest(self.alice, 10000, 100)
        self._invest(self.bob, 20000, 200)

        self.con_oracle.push_impact(delta_kwh=200, delta_co2_kg=80, signer=self.updater)
        self.con_escrow.release_funds(signer=self.issuer, environment={"now": self.after_sale})

        self.assertEqual(self.con_currency.balance_of(address=self.issuer), 300)
        state = self._sale_state(now=self.after_sale)
        self.assertEqual(state['status'], 'Closed')
        self.assertEqual(state['total_released'], 300)

    def test_token_supply_tracks_tokens_sold(self):
        for investor, amount in ((self.alice, 3 * E18), (self.bob, 7 * E18), (self.alice, E18)):
            self._invest(investor, amount, amount * self.price // E18)
            self.assertEqual(self.con_token.total_supply(), self._sale_state()['tokens_sold'])

        self.assertEqual(self.con_token.balance_of(address=self.alice), 4 * E18)
        self.assertEqual(self.con_token.balance_of(address=self.bob), 7 * E18)

    def test_failed_payment_pull_leaves_no_trace(self):
        self.con_currency.approve(amount=5, to=self.escrow_name, signer=self.alice)

        with self.assertRaisesRegex(AssertionError, "exceeds allowance"):
            self._invest(self.alice, E18, self.price)

        self.assertEqual(self._sale_state()['tokens_sold'], 0)
        self.assertEqual(self.con_token.balance_of(address=self.alice), 0)
        self.assertEqual(self.con_escrow.get_investment(investor=self.alice), {"tokens": 0, "paid": 0})

    def test_milestone_table_must_sum_to_10000(self):
        print("\n--- Test: Invalid Milestone Tables ---")
        with open(CONTRACTS_DIR / "con_green_bond_escrow.py") as f:
            code = f.read()

        with self.assertRaisesRegex(AssertionError, "InvalidMilestones"):
            self.client.submit(code, name="con_bad_escrow_1", signer=self.operator,
                               constructor_args=self._escrow_args(bps=[5000, 4000]))
        with self.assertRaisesRegex(AssertionError, "InvalidMilestones"):
            self.client.submit(code, name="con_bad_escrow_2", signer=self.operator,
                               constructor_args=self._escrow_args(thresholds=[100], bps=[5000, 5000]))
        with self.assertRaisesRegex(AssertionError, "InvalidMilestones"):
            self.client.submit(code, name="con_bad_escrow_3", signer=self.operator,
                               constructor_args=self._escrow_args(thresholds=[], bps=[]))
        with self.assertRaisesRegex(AssertionError, "InvalidConfig"):
            self.client.submit(code, name="con_bad_escrow_4", signer=self.operator,
                               constructor_args=self._escrow_args(sale_end=self.sale_start))

    def test_projected_yield(self):
        # 100 tokens cost 1e18; 8% for 12 months
        self.assertEqual(self.con_escrow.get_projected_yield(token_amount=100 * E18), 8 * 10 ** 16)


if __name__ == '__main__':
    unittest.main()
