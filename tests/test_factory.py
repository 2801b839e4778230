import unittest
from datetime import datetime, timedelta

from contracting.client import ContractingClient

from greenbond import BondFactory, InvalidMilestones, SaleStatus, deploy_payment_token

E18 = 10 ** 18


class TestBondFactory(unittest.TestCase):
    def setUp(self):
        self.client = ContractingClient()
        self.client.flush()

        self.operator = 'sys'
        self.alice = 'alice'
        self.start = datetime(2024, 3, 1, 12)

        self.currency = deploy_payment_token(self.client, signer=self.operator)
        self.currency.transfer(amount=10 ** 22, to=self.alice, signer=self.operator)

        self.factory = BondFactory(self.client, "con_payment_token", operator=self.operator,
                                   clock=lambda: self.start)

    def tearDown(self):
        self.factory.close()
        self.client.flush()

    def _create(self, issuer, project_name, **overrides):
        values = dict(
            issuer=issuer,
            project_name=project_name,
            description=f"{project_name} generation project",
            token_name=f"{project_name} Bond",
            token_symbol=project_name[:4].upper(),
            cap_tokens=1000 * E18,
            price_wei_per_token=10 ** 16,
            sale_duration=timedelta(days=30),
            thresholds=[100, 200],
            bps=[5000, 5000],
            maturity_months=60,
            annual_yield_bps=450,
        )
        values.update(overrides)
        return self.factory.create_project(**values)

    def test_create_project_records_and_names(self):
        solar = self._create('solar_co', 'Solar')
        wind = self._create('wind_co', 'Wind')

        self.assertEqual(self.factory.project_count(), 2)
        record = self.factory.get_project(0)
        self.assertEqual(record.index, 0)
        self.assertEqual(record.project_name, 'Solar')
        self.assertEqual(record.issuer, 'solar_co')
        self.assertEqual(record.escrow, 'con_gb0_escrow')
        self.assertEqual(record.created_at, self.start)
        self.assertEqual(self.factory.get_project(1).oracle, 'con_gb1_oracle')

        self.assertIs(self.factory.project(1), wind)
        self.assertEqual(solar.names.token, 'con_gb0_token')
        self.assertEqual([r.project_name for r in self.factory.projects_of('wind_co')], ['Wind'])

    def test_sale_opens_at_creation(self):
        project = self._create('solar_co', 'Solar')

        self.assertEqual(project.status(), SaleStatus.OPEN)
        self.assertEqual(project.sale_end(), self.start + timedelta(days=30))
        self.assertEqual(project.onchain_config()['maturity_months'], 60)

    def test_projects_are_independent(self):
        solar = self._create('solar_co', 'Solar')
        wind = self._create('wind_co', 'Wind')

        solar.buy(self.alice, 10000)
        wind.buy(self.alice, 20000)
        solar.push_impact('solar_co', 150, 20)

        self.assertEqual(solar.payment_balance('solar_co'), 50)
        self.assertEqual(wind.payment_balance('wind_co'), 0)
        self.assertEqual(wind.cumulative_kwh(), 0)
        self.assertEqual(solar.tokens_sold(), 10000)
        self.assertEqual(wind.tokens_sold(), 20000)
        self.assertEqual(wind.token_balance(self.alice), 20000)

    def test_invalid_project_is_not_recorded(self):
        with self.assertRaises(InvalidMilestones):
            self._create('solar_co', 'Solar', bps=[5000, 4000])
        self.assertEqual(self.factory.project_count(), 0)

        self._create('solar_co', 'Solar')
        self.assertEqual(self.factory.get_project(0).escrow, 'con_gb0_escrow')

    def test_shared_notifier_sees_every_project(self):
        notices = []
        self.factory.notifier.subscribe(notices.append)

        solar = self._create('solar_co', 'Solar')
        wind = self._create('wind_co', 'Wind')

        solar.buy(self.alice, 10000)
        wind.buy(self.alice, 10000)
        self.factory.close()

        self.assertEqual(
            [(n.project, n.operation) for n in notices if n.operation == "invest"],
            [('con_gb0_escrow', 'invest'), ('con_gb1_escrow', 'invest')],
        )


if __name__ == '__main__':
    unittest.main()
