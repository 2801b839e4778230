I = importlib

config = Hash() # immutable project configuration, written once in seed()
sale = Hash(default_value=0) # 'tokens_sold', 'total_raised', 'total_released'
milestones = Hash() # index -> {"threshold", "release_bps", "achieved"}
milestone_count = Variable()
investments = Hash() # investor -> {"tokens": X, "paid": Y}
sale_closed = Variable()
oracle = Variable()

# Re-entrancy guard
escrowBusy = Variable(default_value=False)

BPS_DENOMINATOR = 10000
PRICE_SCALE = 1000000000000000000 # price is quoted per 1e18 token base units
MAX_UINT128 = 340282366920938463463374607431768211455

token_interface = [
    I.Func('transfer_from', args=('amount', 'to', 'main_account')),
    I.Func('transfer', args=('amount', 'to')),
    I.Func('balance_of', args=('address',)),
]

# Events
Invested = LogEvent(
    event="Invested",
    params={
        "investor": {'type': str, 'idx': True},
        "token_amount": {'type': int, 'idx': False},
        "value": {'type': int, 'idx': False},
        "tokens_sold": {'type': int, 'idx': False},
        "total_raised": {'type': int, 'idx': False}
    })

MilestoneAchieved = LogEvent(
    event="MilestoneAchieved",
    params={
        "index": {'type': int, 'idx': False},
        "threshold": {'type': int, 'idx': False},
        "release_amount": {'type': int, 'idx': False}
    })

FundsReleased = LogEvent(
    event="FundsReleased",
    params={
        "issuer": {'type': str, 'idx': True},
        "amount": {'type': int, 'idx': False},
        "total_released": {'type': int, 'idx': False}
    })

ReleaseDeferred = LogEvent(
    event="ReleaseDeferred",
    params={
        "index": {'type': int, 'idx': False},
        "release_amount": {'type': int, 'idx': False},
        "total_released": {'type': int, 'idx': False},
        "total_raised": {'type': int, 'idx': False}
    })

OracleChanged = LogEvent(
    event="OracleChanged",
    params={
        "previous": {'type': str, 'idx': False},
        "current": {'type': str, 'idx': True}
    })

SaleClosed = LogEvent(
    event="SaleClosed",
    params={
        "closed_by": {'type': str, 'idx': True},
        "tokens_sold": {'type': int, 'idx': False},
        "total_raised": {'type': int, 'idx': False}
    })

RemainderWithdrawn = LogEvent(
    event="RemainderWithdrawn",
    params={
        "issuer": {'type': str, 'idx': True},
        "amount": {'type': int, 'idx': False}
    })

@construct
def seed(issuer: str, oracle_address: str, name: str, symbol: str, cap_tokens: int,
         price_wei_per_token: int, sale_start: datetime.datetime, sale_end: datetime.datetime,
         thresholds: list, bps: list, maturity_months: int, annual_yield_bps: int,
         token: str, payment_token: str):
    assert issuer, 'InvalidConfig: issuer cannot be empty.'
    assert token and payment_token, 'InvalidConfig: token and payment_token are required.'
    assert 0 < cap_tokens <= MAX_UINT128, 'InvalidConfig: cap_tokens must be a positive u128.'
    assert price_wei_per_token > 0, 'InvalidConfig: price must be positive.'
    assert sale_end > sale_start, 'InvalidConfig: sale must end after it starts.'
    assert maturity_months >= 0 and annual_yield_bps >= 0, \
        'InvalidConfig: maturity and yield cannot be negative.'

    assert len(thresholds) > 0, 'InvalidMilestones: at least one milestone is required.'
    assert len(thresholds) == len(bps), 'InvalidMilestones: thresholds and bps differ in length.'
    bps_total = 0
    for index in range(len(bps)):
        assert thresholds[index] >= 0, f'InvalidMilestones: threshold {index} is negative.'
        assert bps[index] > 0, f'InvalidMilestones: release share {index} must be positive.'
        bps_total += bps[index]
    assert bps_total == BPS_DENOMINATOR, \
        f'InvalidMilestones: release shares sum to {bps_total}, expected {BPS_DENOMINATOR}.'

    payment_contract = I.import_module(payment_token)
    assert I.enforce_interface(payment_contract, token_interface), \
        'InvalidConfig: payment_token contract not XSC001-compliant'

    config['owner'] = ctx.caller
    config['issuer'] = issuer
    config['name'] = name
    config['symbol'] = symbol
    config['cap_tokens'] = cap_tokens
    config['price_wei_per_token'] = price_wei_per_token
    config['sale_start'] = sale_start
    config['sale_end'] = sale_end
    config['maturity_months'] = maturity_months
    config['annual_yield_bps'] = annual_yield_bps
    config['token'] = token
    config['payment_token'] = payment_token

    for index in range(len(thresholds)):
        milestones[index] = {
            "threshold": thresholds[index],
            "release_bps": bps[index],
            "achieved": False
        }
    milestone_count.set(len(thresholds))

    oracle.set(oracle_address)
    sale_closed.set(False)
    sale['tokens_sold'] = 0
    sale['total_raised'] = 0
    sale['total_released'] = 0
    escrowBusy.set(False)

def window_status():
    # Sale window only; a sold-out sale is handled by the cap check
    if sale_closed.get():
        return 'Closed'
    if now < config['sale_start']:
        return 'Pending'
    if now >= config['sale_end']:
        return 'Closed'
    return 'Open'

def status():
    current = window_status()
    if current == 'Open' and sale['tokens_sold'] >= config['cap_tokens']:
        return 'Closed'
    return current

def price_of(token_amount: int):
    return token_amount * config['price_wei_per_token'] // PRICE_SCALE

def evaluate(reading: int):
    released = []
    deferred = []
    released_amount = 0
    issuer_account = config['issuer']
    payment_contract = I.import_module(config['payment_token'])

    # Index order, every milestone judged against the same reading
    for index in range(milestone_count.get()):
        entry = milestones[index]
        if entry['achieved'] or reading < entry['threshold']:
            continue

        raised = sale['total_raised']
        already_released = sale['total_released']
        release_amount = raised * entry['release_bps'] // BPS_DENOMINATOR

        if already_released + release_amount > raised:
            # ReleaseOverflow: milestone stays pending, the pass goes on
            ReleaseDeferred({
                "index": index,
                "release_amount": release_amount,
                "total_released": already_released,
                "total_raised": raised
            })
            deferred.append(index)
            continue

        entry['achieved'] = True
        milestones[index] = entry
        sale['total_released'] = already_released + release_amount
        released.append(index)
        released_amount += release_amount

        MilestoneAchieved({
            "index": index,
            "threshold": entry['threshold'],
            "release_amount": release_amount
        })

        if release_amount > 0:
            payment_contract.transfer(amount=release_amount, to=issuer_account)
            FundsReleased({
                "issuer": issuer_account,
                "amount": release_amount,
                "total_released": sale['total_released']
            })

    return {
        "cumulative_kwh": reading,
        "released": released,
        "deferred": deferred,
        "released_amount": released_amount,
        "total_released": sale['total_released']
    }

def guarded_evaluate():
    assert not escrowBusy.get(), 'EscrowBusy: escrow is busy, please try again.'
    escrowBusy.set(True)
    report = evaluate(read_oracle())
    escrowBusy.set(False)
    return report

def read_oracle():
    oracle_address = oracle.get()
    assert oracle_address, 'InvalidConfig: no oracle configured.'
    oracle_contract = I.import_module(oracle_address)
    return oracle_contract.cumulative_kwh()

@export
def set_oracle(oracle_address: str):
    assert ctx.caller == config['owner'], 'Unauthorized: only owner can set the oracle!'
    assert oracle_address, 'InvalidConfig: oracle cannot be empty.'
    previous = oracle.get()
    oracle.set(oracle_address)
    OracleChanged({"previous": previous if previous else '', "current": oracle_address})

@export
def invest(token_amount: int, value: int):
    assert not escrowBusy.get(), 'EscrowBusy: escrow is busy, please try again.'
    escrowBusy.set(True)

    assert window_status() == 'Open', 'SaleNotOpen: the sale window is not open.'
    assert token_amount > 0, 'InvalidAmount: token amount must be positive.'
    assert sale['tokens_sold'] + token_amount <= config['cap_tokens'], \
        'CapExceeded: investment exceeds the token cap.'

    cost = price_of(token_amount)
    assert cost > 0, 'InvalidAmount: token amount is too small to be priced.'
    # Exact payment only, overpayment is rejected rather than kept
    assert value == cost, f'IncorrectPayment: expected exactly {cost}, got {value}.'

    investor = ctx.caller

    # --- EFFECTS ---
    sale['tokens_sold'] += token_amount
    sale['total_raised'] += value

    record = investments[investor]
    if record:
        record["tokens"] += token_amount
        record["paid"] += value
    else:
        record = {"tokens": token_amount, "paid": value}
    investments[investor] = record

    # --- INTERACTIONS --- (a failure in either reverts the whole investment)
    payment_contract = I.import_module(config['payment_token'])
    payment_contract.transfer_from(amount=value, to=ctx.this, main_account=investor)

    token_contract = I.import_module(config['token'])
    token_contract.mint(to=investor, amount=token_amount)

    Invested({
        "investor": investor,
        "token_amount": token_amount,
        "value": value,
        "tokens_sold": sale['tokens_sold'],
        "total_raised": sale['total_raised']
    })

    escrowBusy.set(False)
    return sale['tokens_sold']

@export
def evaluate_milestones():
    return guarded_evaluate()

@export
def release_funds():
    # Same pass as evaluate_milestones: only newly crossed milestones pay out
    return guarded_evaluate()

@export
def close_sale():
    assert ctx.caller == config['issuer'] or ctx.caller == config['owner'], \
        'Unauthorized: only issuer or owner can close the sale!'
    assert now >= config['sale_start'], 'SaleNotOpen: the sale has not started yet.'
    assert not sale_closed.get(), 'SaleNotOpen: the sale is already closed.'
    sale_closed.set(True)
    SaleClosed({
        "closed_by": ctx.caller,
        "tokens_sold": sale['tokens_sold'],
        "total_raised": sale['total_raised']
    })

@export
def withdraw_remainder():
    assert not escrowBusy.get(), 'EscrowBusy: escrow is busy, please try again.'
    escrowBusy.set(True)

    issuer_account = config['issuer']
    assert ctx.caller == issuer_account, 'Unauthorized: only issuer can withdraw the remainder!'
    assert status() == 'Closed', 'SaleNotOpen: the sale must be closed first.'
    for index in range(milestone_count.get()):
        assert milestones[index]['achieved'], \
            f'NothingToRelease: milestone {index} has not been achieved.'

    remainder = sale['total_raised'] - sale['total_released']
    assert remainder > 0, 'NothingToRelease: all raised funds were already released.'

    sale['total_released'] += remainder
    payment_contract = I.import_module(config['payment_token'])
    payment_contract.transfer(amount=remainder, to=issuer_account)

    RemainderWithdrawn({"issuer": issuer_account, "amount": remainder})

    escrowBusy.set(False)
    return remainder

# --- Helper/View functions ---
@export
def get_sale_status():
    return status()

@export
def get_sale_state():
    return {
        "status": status(),
        "tokens_sold": sale['tokens_sold'],
        "total_raised": sale['total_raised'],
        "total_released": sale['total_released']
    }

@export
def get_config():
    return {
        "owner": config['owner'],
        "issuer": config['issuer'],
        "oracle": oracle.get(),
        "name": config['name'],
        "symbol": config['symbol'],
        "cap_tokens": config['cap_tokens'],
        "price_wei_per_token": config['price_wei_per_token'],
        "sale_start": config['sale_start'],
        "sale_end": config['sale_end'],
        "maturity_months": config['maturity_months'],
        "annual_yield_bps": config['annual_yield_bps'],
        "token": config['token'],
        "payment_token": config['payment_token']
    }

@export
def get_oracle():
    return oracle.get()

@export
def get_milestones_count():
    return milestone_count.get()

@export
def get_milestone(index: int):
    assert 0 <= index < milestone_count.get(), f'InvalidAmount: no milestone at index {index}.'
    return milestones[index]

@export
def get_investment(investor: str):
    record = investments[investor]
    if record:
        return record
    return {"tokens": 0, "paid": 0}

@export
def get_projected_yield(token_amount: int):
    cost = price_of(token_amount)
    return cost * config['annual_yield_bps'] * config['maturity_months'] // (12 * BPS_DENOMINATOR)
