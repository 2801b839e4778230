# con_reentrant_payment_token.py
I = importlib

balances = Hash(default_value=0)
metadata = Hash()

re_entry_owner = Variable()
re_entry_target_escrow = Variable()
re_entry_attempt_count = Variable()
re_entry_max_attempts = Variable() # Only re-enter once

@construct
def seed(initial_supply: int):
    balances[ctx.caller] = initial_supply
    metadata['total_supply'] = initial_supply
    re_entry_owner.set(ctx.caller)
    re_entry_target_escrow.set('')
    re_entry_attempt_count.set(0)
    re_entry_max_attempts.set(1)

@export
def configure_re_entrancy(escrow_name: str):
    assert ctx.caller == re_entry_owner.get(), "Only owner can configure re-entrancy."
    re_entry_target_escrow.set(escrow_name)
    re_entry_attempt_count.set(0)

@export
def transfer(amount: int, to: str):
    assert amount > 0, "Transfer amount must be positive"
    sender = ctx.caller

    sender_bal = balances[sender]
    assert sender_bal >= amount, f"Insufficient balance for sender {sender}"

    balances[sender] = sender_bal - amount
    balances[to] += amount

    # A release paid out by the targeted escrow calls straight back into it
    target_escrow = re_entry_target_escrow.get()
    current_attempts = re_entry_attempt_count.get()
    if target_escrow and sender == target_escrow and current_attempts < re_entry_max_attempts.get():
        re_entry_attempt_count.set(current_attempts + 1)
        escrow_contract = I.import_module(target_escrow)
        escrow_contract.release_funds()

    return True

@export
def approve(amount: int, to: str):
    assert amount >= 0, "Approve amount must be non-negative"
    balances[ctx.caller, to] = amount
    return True

@export
def transfer_from(amount: int, to: str, main_account: str):
    assert amount > 0, "Transfer amount must be positive"
    spender = ctx.caller

    owner_balance = balances[main_account]
    assert owner_balance >= amount, f"Insufficient balance for owner {main_account}"

    spender_allowance = balances[main_account, spender]
    assert spender_allowance >= amount, f"Insufficient allowance for spender {spender} from owner {main_account}"

    balances[main_account] = owner_balance - amount
    balances[main_account, spender] = spender_allowance - amount
    balances[to] += amount
    return True

@export
def balance_of(address: str):
    return balances[address]

@export
def allowance(owner: str, spender: str):
    return balances[owner, spender]
