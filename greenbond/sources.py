"""Access to the contract sources shipped with the package."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from contracting.client import ContractingClient

from greenbond.errors import translate

logger = logging.getLogger(__name__)

CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"

ORACLE_SOURCE = "con_impact_oracle.py"
TOKEN_SOURCE = "con_bond_token.py"
ESCROW_SOURCE = "con_green_bond_escrow.py"
PAYMENT_TOKEN_SOURCE = "con_payment_token.py"


def read_source(filename: str | Path) -> str:
    path = Path(filename)
    if not path.is_absolute():
        path = CONTRACTS_DIR / path
    with open(path) as f:
        return f.read()


def submit_contract(
    client: ContractingClient,
    filename: str | Path,
    name: str,
    signer: str,
    constructor_args: dict[str, Any] | None = None,
):
    """Submit one contract and return its client handle.

    A failing constructor surfaces as a typed
    :class:`~greenbond.errors.GreenBondError`.
    """
    try:
        client.submit(
            read_source(filename),
            name=name,
            constructor_args=constructor_args or {},
            signer=signer,
        )
    except AssertionError as exc:
        logger.warning("Constructor of %s rejected: %s", name, exc)
        raise translate(exc) from exc
    logger.info("Submitted %s as %s (signer=%s)", Path(filename).name, name, signer)
    return client.get_contract(name)


def deploy_payment_token(
    client: ContractingClient,
    name: str = "con_payment_token",
    *,
    signer: str = "sys",
    initial_supply: int = 10**27,
):
    """Deploy the settlement currency; the whole supply goes to ``signer``."""
    return submit_contract(
        client,
        PAYMENT_TOKEN_SOURCE,
        name,
        signer,
        constructor_args={"initial_supply": initial_supply},
    )
