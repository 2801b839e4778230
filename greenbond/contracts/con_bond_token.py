balances = Hash(default_value=0)
metadata = Hash()

MinterTransferred = LogEvent(
    event="MinterTransferred",
    params={
        "previous": {'type': str, 'idx': False},
        "current": {'type': str, 'idx': True}
    })

Minted = LogEvent(
    event="Minted",
    params={
        "to": {'type': str, 'idx': True},
        "amount": {'type': int, 'idx': False},
        "total_supply": {'type': int, 'idx': False}
    })

@construct
def seed(name: str, symbol: str, cap_tokens: int, owner: str):
    assert cap_tokens > 0, 'InvalidConfig: token cap must be positive.'
    metadata['token_name'] = name
    metadata['token_symbol'] = symbol
    metadata['cap_tokens'] = cap_tokens
    metadata['total_supply'] = 0
    metadata['owner'] = owner if owner else ctx.caller
    metadata['minter'] = ''

@export
def set_minter(minter: str):
    assert ctx.caller == metadata['owner'], 'Unauthorized: only owner can set the minter!'
    assert minter, 'InvalidConfig: minter cannot be empty.'
    assert not metadata['minter'], 'MinterAlreadySet: use transfer_minter to rotate the minter.'
    metadata['minter'] = minter
    MinterTransferred({"previous": '', "current": minter})

@export
def transfer_minter(new_minter: str):
    assert ctx.caller == metadata['owner'], 'Unauthorized: only owner can transfer the minter!'
    assert new_minter, 'InvalidConfig: minter cannot be empty.'
    previous = metadata['minter']
    metadata['minter'] = new_minter
    MinterTransferred({"previous": previous if previous else '', "current": new_minter})

@export
def mint(to: str, amount: int):
    assert metadata['minter'] and ctx.caller == metadata['minter'], 'Unauthorized: only the minter can mint!'
    assert amount > 0, 'InvalidAmount: mint amount must be positive.'
    new_supply = metadata['total_supply'] + amount
    assert new_supply <= metadata['cap_tokens'], \
        f"CapExceeded: minting {amount} would exceed cap {metadata['cap_tokens']}."

    balances[to] += amount
    metadata['total_supply'] = new_supply
    Minted({"to": to, "amount": amount, "total_supply": new_supply})

@export
def transfer(amount: int, to: str):
    assert amount > 0, 'Cannot transfer zero or negative!'
    sender = ctx.caller

    sender_bal = balances[sender]
    assert sender_bal >= amount, f'Transfer amount exceeds balance for sender {sender}!'

    balances[sender] = sender_bal - amount
    balances[to] += amount

@export
def balance_of(address: str):
    return balances[address]

@export
def total_supply():
    return metadata['total_supply']

@export
def cap():
    return metadata['cap_tokens']

@export
def get_minter():
    return metadata['minter']

@export
def get_owner():
    return metadata['owner']
