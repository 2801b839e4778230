I = importlib

impact = Hash(default_value=0) # cumulative counters: 'kwh' and 'co2_kg'
roles = Hash() # 'owner', 'updater', 'escrow'

MAX_UINT128 = 340282366920938463463374607431768211455

escrow_interface = [
    I.Func('evaluate_milestones', args=()),
]

# Events
ImpactUpdate = LogEvent(
    event="ImpactUpdate",
    params={
        "updater": {'type': str, 'idx': True},
        "cumulative_kwh": {'type': int, 'idx': False},
        "cumulative_co2_kg": {'type': int, 'idx': False},
        "delta_kwh": {'type': int, 'idx': False},
        "delta_co2_kg": {'type': int, 'idx': False}
    })

UpdaterChanged = LogEvent(
    event="UpdaterChanged",
    params={
        "previous": {'type': str, 'idx': False},
        "current": {'type': str, 'idx': False}
    })

EscrowChanged = LogEvent(
    event="EscrowChanged",
    params={
        "previous": {'type': str, 'idx': False},
        "current": {'type': str, 'idx': False}
    })

@construct
def seed(updater: str):
    roles['owner'] = ctx.caller
    roles['updater'] = updater
    roles['escrow'] = ''
    impact['kwh'] = 0
    impact['co2_kg'] = 0

@export
def set_updater(updater: str):
    assert ctx.caller == roles['owner'], 'Unauthorized: only owner can set the updater!'
    previous = roles['updater']
    # Re-setting the current updater is allowed and still audited; '' revokes
    roles['updater'] = updater
    UpdaterChanged({"previous": previous, "current": updater})

@export
def set_escrow(escrow: str):
    assert ctx.caller == roles['owner'], 'Unauthorized: only owner can set the escrow!'
    if escrow:
        escrow_contract = I.import_module(escrow)
        assert I.enforce_interface(escrow_contract, escrow_interface), \
            'InvalidConfig: escrow contract cannot evaluate milestones.'
    previous = roles['escrow']
    roles['escrow'] = escrow
    EscrowChanged({"previous": previous if previous else '', "current": escrow})

@export
def push_impact(delta_kwh: int, delta_co2_kg: int):
    assert ctx.caller == roles['updater'], 'Unauthorized: only the updater can push impact!'
    assert delta_kwh >= 0 and delta_co2_kg >= 0, 'InvalidAmount: impact deltas cannot be negative.'

    new_kwh = impact['kwh'] + delta_kwh
    new_co2_kg = impact['co2_kg'] + delta_co2_kg
    # Both counters are checked before either is written
    assert new_kwh <= MAX_UINT128, 'Overflow: cumulative kWh would exceed u128.'
    assert new_co2_kg <= MAX_UINT128, 'Overflow: cumulative CO2 would exceed u128.'

    impact['kwh'] = new_kwh
    impact['co2_kg'] = new_co2_kg

    ImpactUpdate({
        "updater": ctx.caller,
        "cumulative_kwh": new_kwh,
        "cumulative_co2_kg": new_co2_kg,
        "delta_kwh": delta_kwh,
        "delta_co2_kg": delta_co2_kg
    })

    return {
        "cumulative_kwh": new_kwh,
        "cumulative_co2_kg": new_co2_kg,
        "escrow": roles['escrow']
    }

# --- View functions ---
@export
def cumulative_kwh():
    return impact['kwh']

@export
def cumulative_co2_kg():
    return impact['co2_kg']

@export
def get_updater():
    return roles['updater']

@export
def get_owner():
    return roles['owner']

@export
def get_escrow():
    return roles['escrow']
