"""Multi-project factory.

Contracts cannot deploy contracts, so the factory lives on the host: each
``create_project`` call submits a fresh oracle, token and escrow under
names derived from the project index, wires them, and keeps a record.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from contracting.client import ContractingClient

from greenbond.config import ProjectConfig
from greenbond.notify import CommitNotifier
from greenbond.project import BondProject, Clock, ContractNames

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectRecord:
    index: int
    project_name: str
    description: str
    issuer: str
    escrow: str
    token: str
    oracle: str
    created_at: datetime


class BondFactory:
    def __init__(
        self,
        client: ContractingClient,
        payment_token: str,
        *,
        operator: str = "sys",
        clock: Clock | None = None,
        notifier: CommitNotifier | None = None,
    ) -> None:
        self.client = client
        self.payment_token = payment_token
        self.operator = operator
        self._clock = clock or datetime.now
        # One driver behind every project, so one lock for all of them
        self._lock = threading.RLock()
        self.notifier = notifier if notifier is not None else CommitNotifier()
        self._records: list[ProjectRecord] = []
        self._projects: list[BondProject] = []

    def create_project(
        self,
        *,
        issuer: str,
        project_name: str,
        description: str,
        token_name: str,
        token_symbol: str,
        cap_tokens: int,
        price_wei_per_token: int,
        sale_duration: timedelta,
        thresholds: Sequence[int],
        bps: Sequence[int],
        maturity_months: int,
        annual_yield_bps: int,
        updater: str | None = None,
    ) -> BondProject:
        """Deploy a project whose sale opens now and lasts ``sale_duration``."""
        with self._lock:
            index = len(self._records)
            start = self._clock()
            config = ProjectConfig(
                issuer=issuer,
                oracle_address="",
                name=token_name,
                symbol=token_symbol,
                cap_tokens=cap_tokens,
                price_wei_per_token=price_wei_per_token,
                sale_start=start,
                sale_end=start + sale_duration,
                thresholds=tuple(thresholds),
                bps=tuple(bps),
                maturity_months=maturity_months,
                annual_yield_bps=annual_yield_bps,
                description=description,
            )
            project = BondProject.deploy(
                self.client,
                config,
                payment_token=self.payment_token,
                deployer=self.operator,
                updater=updater,
                names=ContractNames.with_prefix(f"gb{index}"),
                lock=self._lock,
                notifier=self.notifier,
                clock=self._clock,
            )
            record = ProjectRecord(
                index=index,
                project_name=project_name,
                description=description,
                issuer=issuer,
                escrow=project.names.escrow,
                token=project.names.token,
                oracle=project.names.oracle,
                created_at=start,
            )
            self._records.append(record)
            self._projects.append(project)
            logger.info("Factory created project #%d %r for %s", index, project_name, issuer)
            return project

    def project_count(self) -> int:
        return len(self._records)

    def get_project(self, index: int) -> ProjectRecord:
        return self._records[index]

    def project(self, index: int) -> BondProject:
        return self._projects[index]

    def projects_of(self, issuer: str) -> list[ProjectRecord]:
        return [record for record in self._records if record.issuer == issuer]

    def close(self) -> None:
        self.notifier.close()
