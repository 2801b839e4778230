"""Host-side handle on one deployed green bond project.

The contracts hold all state and enforce every rule; this module is the
seam between them and ordinary Python callers. It adds what the contract
runtime cannot do on its own:

- one lock around every call, so a project's transitions are serialized
  exactly as a chain would order them;
- typed exceptions instead of assertion strings;
- logging of committed and rejected operations;
- a commit notice per successful mutation, delivered asynchronously.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from contracting.client import ContractingClient

from greenbond.config import PRICE_SCALE, ProjectConfig, from_contract_time, to_contract_time
from greenbond.errors import GreenBondError, ReleaseOverflow, translate
from greenbond.notify import CommitNotice, CommitNotifier, Listener
from greenbond.sources import ESCROW_SOURCE, ORACLE_SOURCE, TOKEN_SOURCE, submit_contract

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

READER = "sys"


class SaleStatus(str, Enum):
    PENDING = "Pending"
    OPEN = "Open"
    CLOSED = "Closed"


@dataclass(frozen=True)
class ContractNames:
    escrow: str = "con_green_bond_escrow"
    token: str = "con_bond_token"
    oracle: str = "con_impact_oracle"

    @classmethod
    def with_prefix(cls, prefix: str) -> "ContractNames":
        return cls(
            escrow=f"con_{prefix}_escrow",
            token=f"con_{prefix}_token",
            oracle=f"con_{prefix}_oracle",
        )


@dataclass(frozen=True)
class MilestoneState:
    index: int
    threshold: int
    release_bps: int
    achieved: bool


@dataclass(frozen=True)
class ReleaseReport:
    """Outcome of one evaluation pass over the milestone table."""

    cumulative_kwh: int
    released: tuple[int, ...]
    deferred: tuple[int, ...]
    released_amount: int
    total_released: int

    @classmethod
    def from_result(cls, result: dict[str, Any]) -> "ReleaseReport":
        return cls(
            cumulative_kwh=result["cumulative_kwh"],
            released=tuple(result["released"]),
            deferred=tuple(result["deferred"]),
            released_amount=result["released_amount"],
            total_released=result["total_released"],
        )

    def overflow(self) -> ReleaseOverflow | None:
        """The deferred milestones as an exception, for callers that want to raise."""
        if not self.deferred:
            return None
        return ReleaseOverflow(
            f"ReleaseOverflow: milestones {list(self.deferred)} left pending "
            f"with {self.total_released} already released"
        )


@dataclass(frozen=True)
class ImpactReceipt:
    cumulative_kwh: int
    cumulative_co2_kg: int
    release: ReleaseReport | None = None
    release_error: GreenBondError | None = None  # evaluation failed, reading kept


@dataclass(frozen=True)
class ProjectSnapshot:
    status: SaleStatus
    tokens_sold: int
    cap_tokens: int
    total_raised: int
    total_released: int
    cumulative_kwh: int
    cumulative_co2_kg: int
    milestones: tuple[MilestoneState, ...]


class BondProject:
    """Oracle, token and escrow of one project, driven through one client."""

    def __init__(
        self,
        client: ContractingClient,
        names: ContractNames,
        *,
        payment_token: str,
        config: ProjectConfig | None = None,
        lock: threading.RLock | None = None,
        notifier: CommitNotifier | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.client = client
        self.names = names
        self.payment_token = payment_token
        self.config = config
        # Projects sharing a client must share this lock: they share its driver
        self._lock = lock if lock is not None else threading.RLock()
        self._owns_notifier = notifier is None
        self.notifier = notifier if notifier is not None else CommitNotifier()
        self._clock = clock or datetime.now
        self._handles: dict[str, Any] = {}

    @classmethod
    def deploy(
        cls,
        client: ContractingClient,
        config: ProjectConfig,
        *,
        payment_token: str,
        deployer: str = "sys",
        updater: str | None = None,
        names: ContractNames | None = None,
        lock: threading.RLock | None = None,
        notifier: CommitNotifier | None = None,
        clock: Clock | None = None,
    ) -> "BondProject":
        """Deploy token and escrow (and an oracle unless one is given) and wire them.

        ``deployer`` becomes owner of the oracle and the escrow; the issuer
        owns the token and hands minting to the escrow. The configuration is
        validated before anything is submitted.
        """
        config.validate()
        names = names or ContractNames()
        lock = lock if lock is not None else threading.RLock()
        own_oracle = not config.oracle_address
        oracle_name = names.oracle if own_oracle else config.oracle_address

        with lock:
            if own_oracle:
                submit_contract(
                    client, ORACLE_SOURCE, names.oracle, deployer,
                    {"updater": updater or config.issuer},
                )
            submit_contract(
                client, TOKEN_SOURCE, names.token, deployer,
                {
                    "name": config.name,
                    "symbol": config.symbol,
                    "cap_tokens": config.cap_tokens,
                    "owner": config.issuer,
                },
            )
            submit_contract(
                client, ESCROW_SOURCE, names.escrow, deployer,
                config.constructor_args(
                    oracle=oracle_name, token=names.token, payment_token=payment_token
                ),
            )

            project = cls(
                client,
                ContractNames(escrow=names.escrow, token=names.token, oracle=oracle_name),
                payment_token=payment_token,
                config=config,
                lock=lock,
                notifier=notifier,
                clock=clock,
            )
            project.set_minter(config.issuer, names.escrow)
            if own_oracle:
                project.set_escrow(deployer, names.escrow)

        logger.info(
            "Deployed project %s (%s): escrow=%s token=%s oracle=%s",
            config.name, config.symbol, names.escrow, names.token, oracle_name,
        )
        return project

    # --- plumbing ---

    def _contract(self, name: str):
        handle = self._handles.get(name)
        if handle is None:
            handle = self._handles[name] = self.client.get_contract(name)
        return handle

    def _call(self, contract_name: str, function: str, caller: str, **kwargs: Any) -> Any:
        method = getattr(self._contract(contract_name), function)
        with self._lock:
            try:
                return method(
                    signer=caller,
                    environment={"now": to_contract_time(self._clock())},
                    **kwargs,
                )
            except AssertionError as exc:
                error = translate(exc)
                logger.warning("%s.%s rejected for %s: %s", contract_name, function, caller, error)
                raise error from exc

    def _commit(self, operation: str, caller: str, result: Any = None) -> None:
        # Called with the lock held so notices keep commit order
        self.notifier.publish(
            CommitNotice(project=self.names.escrow, operation=operation, caller=caller, result=result)
        )

    def _log_release(self, report: ReleaseReport) -> None:
        if report.released:
            logger.info(
                "%s released %d wei for milestones %s (total released %d)",
                self.names.escrow, report.released_amount, list(report.released), report.total_released,
            )
        overflow = report.overflow()
        if overflow is not None:
            logger.error("%s: %s", self.names.escrow, overflow)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    def close(self) -> None:
        if self._owns_notifier:
            self.notifier.close()

    # --- commands ---

    def invest(self, investor: str, token_amount: int, value: int) -> int:
        """Buy ``token_amount`` base units paying exactly ``value`` wei.

        The investor must have approved the escrow on the payment token.
        Returns the new ``tokens_sold``.
        """
        with self._lock:
            tokens_sold = self._call(
                self.names.escrow, "invest", investor, token_amount=token_amount, value=value
            )
            logger.info(
                "%s: %s bought %d tokens for %d wei (sold %d)",
                self.names.escrow, investor, token_amount, value, tokens_sold,
            )
            self._commit(
                "invest", investor,
                {"token_amount": token_amount, "value": value, "tokens_sold": tokens_sold},
            )
            return tokens_sold

    def approve_payment(self, investor: str, amount: int) -> None:
        self._call(self.payment_token, "approve", investor, amount=amount, to=self.names.escrow)

    def buy(self, investor: str, token_amount: int) -> int:
        """Approve the exact cost and invest in one step.

        The investor's standing allowance to the escrow is put back
        afterwards, whether or not the investment went through.
        """
        with self._lock:
            cost = self.quote(token_amount)
            previous = self.payment_allowance(investor)
            self.approve_payment(investor, cost)
            try:
                return self.invest(investor, token_amount, cost)
            finally:
                self.approve_payment(investor, previous)

    def push_impact(self, updater: str, delta_kwh: int, delta_co2_kg: int) -> ImpactReceipt:
        """Record an impact delta, then evaluate the wired escrow.

        The push and the evaluation are separate transactions: a failing
        evaluation is reported on the receipt and never undoes the reading.
        """
        with self._lock:
            result = self._call(
                self.names.oracle, "push_impact", updater,
                delta_kwh=delta_kwh, delta_co2_kg=delta_co2_kg,
            )
            logger.info(
                "%s: impact +%d kWh +%d kg CO2 (cumulative %d kWh)",
                self.names.oracle, delta_kwh, delta_co2_kg, result["cumulative_kwh"],
            )
            release = release_error = None
            escrow = result.get("escrow")
            if escrow:
                try:
                    release = ReleaseReport.from_result(
                        self._call(escrow, "evaluate_milestones", updater)
                    )
                except GreenBondError as exc:
                    logger.error("%s: evaluation after impact push failed: %s", escrow, exc)
                    release_error = exc
                else:
                    self._log_release(release)
            receipt = ImpactReceipt(
                cumulative_kwh=result["cumulative_kwh"],
                cumulative_co2_kg=result["cumulative_co2_kg"],
                release=release,
                release_error=release_error,
            )
            self._commit("push_impact", updater, receipt)
            return receipt

    def evaluate_milestones(self, caller: str = READER) -> ReleaseReport:
        return self._evaluate("evaluate_milestones", caller)

    def release_funds(self, caller: str = READER) -> ReleaseReport:
        return self._evaluate("release_funds", caller)

    def _evaluate(self, function: str, caller: str) -> ReleaseReport:
        with self._lock:
            report = ReleaseReport.from_result(self._call(self.names.escrow, function, caller))
            self._log_release(report)
            if report.released or report.deferred:
                self._commit(function, caller, report)
            return report

    def set_updater(self, caller: str, updater: str) -> None:
        with self._lock:
            previous = self.updater()
            self._call(self.names.oracle, "set_updater", caller, updater=updater)
            logger.info("%s: updater %s -> %s", self.names.oracle, previous, updater)
            self._commit("set_updater", caller, {"previous": previous, "current": updater})

    def set_escrow(self, caller: str, escrow: str) -> None:
        with self._lock:
            self._call(self.names.oracle, "set_escrow", caller, escrow=escrow)
            logger.info("%s: escrow set to %s", self.names.oracle, escrow or "<none>")
            self._commit("set_escrow", caller, {"escrow": escrow})

    def set_oracle(self, caller: str, oracle: str) -> None:
        with self._lock:
            previous = self.names.oracle
            self._call(self.names.escrow, "set_oracle", caller, oracle_address=oracle)
            self.names = ContractNames(escrow=self.names.escrow, token=self.names.token, oracle=oracle)
            logger.info("%s: oracle %s -> %s", self.names.escrow, previous, oracle)
            self._commit("set_oracle", caller, {"previous": previous, "current": oracle})

    def set_minter(self, caller: str, minter: str) -> None:
        with self._lock:
            self._call(self.names.token, "set_minter", caller, minter=minter)
            logger.info("%s: minter set to %s", self.names.token, minter)
            self._commit("set_minter", caller, {"previous": "", "current": minter})

    def transfer_minter(self, caller: str, new_minter: str) -> None:
        with self._lock:
            previous = self.minter()
            self._call(self.names.token, "transfer_minter", caller, new_minter=new_minter)
            logger.info("%s: minter %s -> %s", self.names.token, previous, new_minter)
            self._commit("transfer_minter", caller, {"previous": previous, "current": new_minter})

    def close_sale(self, caller: str) -> None:
        with self._lock:
            self._call(self.names.escrow, "close_sale", caller)
            logger.info("%s: sale closed by %s", self.names.escrow, caller)
            self._commit("close_sale", caller)

    def withdraw_remainder(self, caller: str) -> int:
        with self._lock:
            amount = self._call(self.names.escrow, "withdraw_remainder", caller)
            logger.info("%s: remainder of %d wei withdrawn by %s", self.names.escrow, amount, caller)
            self._commit("withdraw_remainder", caller, {"amount": amount})
            return amount

    # --- queries ---

    def status(self) -> SaleStatus:
        return SaleStatus(self._call(self.names.escrow, "get_sale_status", READER))

    def sale_state(self) -> dict[str, Any]:
        return self._call(self.names.escrow, "get_sale_state", READER)

    def tokens_sold(self) -> int:
        return self.sale_state()["tokens_sold"]

    def total_raised(self) -> int:
        return self.sale_state()["total_raised"]

    def total_released(self) -> int:
        return self.sale_state()["total_released"]

    def onchain_config(self) -> dict[str, Any]:
        return self._call(self.names.escrow, "get_config", READER)

    def cap_tokens(self) -> int:
        return self.onchain_config()["cap_tokens"]

    def price_wei_per_token(self) -> int:
        return self.onchain_config()["price_wei_per_token"]

    def issuer(self) -> str:
        return self.onchain_config()["issuer"]

    def sale_end(self) -> datetime:
        return from_contract_time(self.onchain_config()["sale_end"])

    def quote(self, token_amount: int) -> int:
        return token_amount * self.price_wei_per_token() // PRICE_SCALE

    def projected_yield(self, token_amount: int) -> int:
        return self._call(self.names.escrow, "get_projected_yield", READER, token_amount=token_amount)

    def milestones_count(self) -> int:
        return self._call(self.names.escrow, "get_milestones_count", READER)

    def milestone(self, index: int) -> MilestoneState:
        entry = self._call(self.names.escrow, "get_milestone", READER, index=index)
        return MilestoneState(
            index=index,
            threshold=entry["threshold"],
            release_bps=entry["release_bps"],
            achieved=entry["achieved"],
        )

    def milestones(self) -> tuple[MilestoneState, ...]:
        with self._lock:
            return tuple(self.milestone(i) for i in range(self.milestones_count()))

    def investment_of(self, investor: str) -> dict[str, int]:
        return self._call(self.names.escrow, "get_investment", READER, investor=investor)

    def cumulative_kwh(self) -> int:
        return self._call(self.names.oracle, "cumulative_kwh", READER)

    def cumulative_co2_kg(self) -> int:
        return self._call(self.names.oracle, "cumulative_co2_kg", READER)

    def updater(self) -> str:
        return self._call(self.names.oracle, "get_updater", READER)

    def minter(self) -> str:
        return self._call(self.names.token, "get_minter", READER)

    def token_balance(self, address: str) -> int:
        return self._call(self.names.token, "balance_of", READER, address=address)

    def token_total_supply(self) -> int:
        return self._call(self.names.token, "total_supply", READER)

    def payment_balance(self, address: str) -> int:
        return self._call(self.payment_token, "balance_of", READER, address=address)

    def payment_allowance(self, investor: str) -> int:
        return self._call(
            self.payment_token, "allowance", READER, owner=investor, spender=self.names.escrow
        )

    def snapshot(self) -> ProjectSnapshot:
        """Consistent view of the whole project, read under the lock."""
        with self._lock:
            state = self.sale_state()
            return ProjectSnapshot(
                status=SaleStatus(state["status"]),
                tokens_sold=state["tokens_sold"],
                cap_tokens=self.cap_tokens(),
                total_raised=state["total_raised"],
                total_released=state["total_released"],
                cumulative_kwh=self.cumulative_kwh(),
                cumulative_co2_kg=self.cumulative_co2_kg(),
                milestones=self.milestones(),
            )
