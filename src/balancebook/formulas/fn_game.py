"""Game-balance formula functions: combat, economy, stage and utility math.

These formulas are consumed by other parts of the product (curve charts,
simulators, exports), so their numeric behavior is fixed.
"""

from __future__ import annotations

import math

from balancebook.formulas.library import FunctionSpec
from balancebook.values import (
    ieee_ceil,
    ieee_div,
    ieee_exp,
    ieee_floor,
    ieee_log,
    ieee_max,
    ieee_min,
    ieee_pow,
)

CURVE_TYPES = ("linear", "exponential", "logarithmic", "quadratic", "scurve")


def scale(
    base: float,
    level: float,
    rate: float,
    curve: str = "linear",
    max_value: float = 100.0,
    mid: float = 50.0,
) -> float:
    """SCALE(base, level, rate, curve, [max, mid]) -- level scaling on a growth curve.

    Unknown curve names fall back to linear.
    """
    kind = curve.lower()
    if kind == "exponential":
        return base * ieee_pow(rate, level)
    if kind == "logarithmic":
        return base + rate * ieee_log(ieee_max(1.0, level))
    if kind == "quadratic":
        return base + rate * level * level
    if kind in ("scurve", "s-curve"):
        return base + ieee_div(max_value, 1 + ieee_exp(-rate * (level - mid)))
    return base + level * rate


def damage(atk: float, defense: float, mult: float = 1.0) -> float:
    """DAMAGE(atk, def, mult=1) -- armor-style reduction: ATK * 100/(100+DEF)."""
    return atk * ieee_div(100.0, 100.0 + defense) * mult


def dps(dmg: float, atk_speed: float, crit_rate: float = 0.0, crit_dmg: float = 2.0) -> float:
    """DPS(damage, atkSpeed, critRate=0, critDmg=2) -- expected damage per second."""
    return dmg * (1 + crit_rate * (crit_dmg - 1)) * atk_speed


def ttk(hp: float, dmg: float, atk_speed: float) -> float:
    """TTK(hp, damage, atkSpeed) -- seconds to kill; the final hit has no cooldown."""
    if dmg <= 0 or atk_speed <= 0:
        return math.inf
    hits = ieee_ceil(hp / dmg)
    return (hits - 1) / atk_speed


def ehp(hp: float, defense: float, reduction: float = 0.0) -> float:
    """EHP(hp, def, reduction=0) -- effective HP; reduction is capped at 0.99."""
    return hp * (1 + defense / 100) / (1 - ieee_min(reduction, 0.99))


def drop_rate(base_rate: float, luck: float = 0.0, level_diff: float = 0.0) -> float:
    """DROP_RATE(baseRate, luck=0, levelDiff=0).

    100 luck doubles the rate; each level the monster is above the player
    removes 5%, down to a floor of 10% of the base.
    """
    luck_mult = 1 + luck / 100
    level_mult = ieee_max(0.1, 1 - level_diff * 0.05)
    return ieee_min(1.0, base_rate * luck_mult * level_mult)


def gacha_pity(
    base_rate: float, pull: float, soft_start: float = 74.0, hard: float = 90.0
) -> float:
    """GACHA_PITY(baseRate, pull, softStart=74, hard=90) -- pity-adjusted pull rate."""
    if pull >= hard:
        return 1.0
    if pull < soft_start:
        return base_rate
    into_pity = pull - soft_start
    pity_span = hard - soft_start
    bonus = (1 - base_rate) * ieee_div(into_pity, pity_span) * 0.5
    return ieee_min(1.0, base_rate + bonus)


def cost(base: float, level: float, rate: float = 1.5, curve: str = "exponential") -> float:
    """COST(base, level, rate=1.5, curve="exponential") -- floored upgrade cost."""
    return ieee_floor(scale(base, level, rate, curve))


def wave_power(base_power: float, wave: float, rate: float = 1.1) -> float:
    return base_power * ieee_pow(rate, wave - 1)


def chance(base_chance: float, attempts: float) -> float:
    """CHANCE(p, n) -- probability of at least one success in n tries."""
    return 1 - ieee_pow(1 - clamp(base_chance, 0.0, 1.0), attempts)


def expected_attempts(success_rate: float) -> float:
    if success_rate <= 0:
        return math.inf
    if success_rate >= 1:
        return 1.0
    return 1 / success_rate


def compound(principal: float, rate: float, periods: float) -> float:
    return principal * ieee_pow(1 + rate, periods)


def element_mult(
    atk_element: float, def_element: float, strong: float = 1.5, weak: float = 0.5
) -> float:
    """ELEMENT_MULT -- rock-paper-scissors affinity: 0 beats 1 beats 2 beats 0."""
    delta = atk_element - def_element
    if not math.isfinite(delta):
        return 1.0
    diff = math.fmod(math.fmod(delta, 3) + 3, 3)
    if diff == 1:
        return strong
    if diff == 2:
        return weak
    return 1.0


def combo_mult(
    combo: float, base_mult: float = 1.0, per_combo: float = 0.1, max_bonus: float = 2.0
) -> float:
    return base_mult + ieee_min(combo * per_combo, max_bonus)


def clamp(value: float, lo: float, hi: float) -> float:
    return ieee_max(lo, ieee_min(hi, value))


def lerp(start: float, end: float, t: float) -> float:
    return start + (end - start) * clamp(t, 0.0, 1.0)


def inverse_lerp(start: float, end: float, value: float) -> float:
    if start == end:
        return 0.0
    return clamp((value - start) / (end - start), 0.0, 1.0)


def remap(value: float, in_min: float, in_max: float, out_min: float, out_max: float) -> float:
    return lerp(out_min, out_max, inverse_lerp(in_min, in_max, value))


def diminishing(base: float, value: float, softcap: float, hardcap: float = math.inf) -> float:
    """DIMINISHING(base, input, softcap, hardcap=inf) -- returns shrink past the softcap."""
    if value <= softcap:
        return base + value
    over = value - softcap
    result = base + softcap + over * (1 - ieee_div(over, over + softcap))
    return ieee_min(result, hardcap)


def stamina_regen(max_stamina: float, regen_time: float, elapsed: float) -> float:
    return ieee_min(max_stamina, ieee_div(max_stamina, regen_time) * elapsed)


def star_rating(value: float, max_value: float, max_stars: float = 5.0) -> float:
    """STAR_RATING -- ratio mapped onto stars in half-star steps."""
    if max_value <= 0:
        return 0.0
    return ieee_floor(value / max_value * max_stars * 2 + 0.5) / 2


def tier_index(value: float, *thresholds: float) -> float:
    """TIER_INDEX(value, t1, t2, ...) -- 1-based index of the highest threshold reached."""
    for i in range(len(thresholds) - 1, -1, -1):
        if value >= thresholds[i]:
            return float(i + 1)
    return 0.0


GAME_FUNCTIONS: list[FunctionSpec] = [
    # combat
    FunctionSpec(
        "SCALE", scale, 3, 6, "combat",
        "SCALE(base, level, rate, curveType, [max, mid])",
        'SCALE(100, 10, 1.5, "exponential")',
        "Level scaling on a linear/exponential/logarithmic/quadratic/scurve curve",
        text_args=frozenset({3}),
    ),
    FunctionSpec(
        "DAMAGE", damage, 2, 3, "combat",
        "DAMAGE(atk, def, multiplier?)", "DAMAGE(150, 50)",
        "Damage after defense reduction",
    ),
    FunctionSpec(
        "DPS", dps, 2, 4, "combat",
        "DPS(damage, attackSpeed, critRate?, critDamage?)", "DPS(100, 2, 0.3, 2)",
        "Damage per second including crits",
    ),
    FunctionSpec(
        "TTK", ttk, 3, 3, "combat",
        "TTK(targetHP, damage, attackSpeed)", "TTK(1000, 100, 2)",
        "Time to kill in seconds",
    ),
    FunctionSpec(
        "EHP", ehp, 2, 3, "combat",
        "EHP(hp, def, damageReduction?)", "EHP(1000, 50)",
        "Effective HP",
    ),
    # economy
    FunctionSpec(
        "DROP_RATE", drop_rate, 1, 3, "economy",
        "DROP_RATE(baseRate, luck?, levelDiff?)", "DROP_RATE(0.1, 50, 5)",
        "Drop chance adjusted for luck and level difference",
    ),
    FunctionSpec(
        "GACHA_PITY", gacha_pity, 2, 4, "economy",
        "GACHA_PITY(baseRate, currentPull, softPityStart?, hardPity?)", "GACHA_PITY(0.006, 75)",
        "Gacha rate with soft and hard pity",
    ),
    FunctionSpec(
        "COST", cost, 2, 4, "economy",
        "COST(baseCost, level, rate?, curveType?)", "COST(100, 5, 1.5)",
        "Upgrade cost (floored)",
        text_args=frozenset({3}),
    ),
    FunctionSpec(
        "CHANCE", chance, 2, 2, "economy",
        "CHANCE(baseChance, attempts)", "CHANCE(0.1, 10)",
        "Chance of at least one success over N attempts",
    ),
    FunctionSpec(
        "EXPECTED_ATTEMPTS", expected_attempts, 1, 1, "economy",
        "EXPECTED_ATTEMPTS(successRate)", "EXPECTED_ATTEMPTS(0.01)",
        "Average attempts until the first success",
    ),
    FunctionSpec(
        "COMPOUND", compound, 3, 3, "economy",
        "COMPOUND(principal, rate, periods)", "COMPOUND(1000, 0.1, 10)",
        "Compound growth",
    ),
    # stage
    FunctionSpec(
        "WAVE_POWER", wave_power, 2, 3, "stage",
        "WAVE_POWER(basePower, wave, rate?)", "WAVE_POWER(100, 10, 1.1)",
        "Enemy power for a wave or stage",
    ),
    FunctionSpec(
        "ELEMENT_MULT", element_mult, 2, 4, "stage",
        "ELEMENT_MULT(atkElement, defElement, strong?, weak?)", "ELEMENT_MULT(0, 1, 1.5, 0.5)",
        "Elemental affinity multiplier",
    ),
    FunctionSpec(
        "COMBO_MULT", combo_mult, 1, 4, "stage",
        "COMBO_MULT(comboCount, baseMult?, perCombo?, maxBonus?)", "COMBO_MULT(10, 1, 0.1, 2)",
        "Combo damage multiplier",
    ),
    # util
    FunctionSpec(
        "CLAMP", clamp, 3, 3, "util",
        "CLAMP(value, min, max)", "CLAMP(150, 0, 100)",
        "Limit a value to a range",
    ),
    FunctionSpec(
        "LERP", lerp, 3, 3, "util",
        "LERP(start, end, t)", "LERP(0, 100, 0.5)",
        "Linear interpolation",
    ),
    FunctionSpec(
        "INVERSE_LERP", inverse_lerp, 3, 3, "util",
        "INVERSE_LERP(start, end, value)", "INVERSE_LERP(0, 100, 25)",
        "Position of a value within a range (0-1)",
    ),
    FunctionSpec(
        "REMAP", remap, 5, 5, "util",
        "REMAP(value, inMin, inMax, outMin, outMax)", "REMAP(50, 0, 100, 0, 1)",
        "Map a value from one range onto another",
    ),
    FunctionSpec(
        "DIMINISHING", diminishing, 3, 4, "util",
        "DIMINISHING(base, input, softcap, hardcap?)", "DIMINISHING(0, 150, 100, 200)",
        "Diminishing returns past a softcap",
    ),
    FunctionSpec(
        "STAMINA_REGEN", stamina_regen, 3, 3, "util",
        "STAMINA_REGEN(maxStamina, regenTime, elapsed)", "STAMINA_REGEN(100, 480, 60)",
        "Stamina regenerated after elapsed minutes",
    ),
    FunctionSpec(
        "STAR_RATING", star_rating, 2, 3, "util",
        "STAR_RATING(value, maxValue, maxStars?)", "STAR_RATING(80, 100, 5)",
        "Star rating in half-star steps",
    ),
    FunctionSpec(
        "TIER_INDEX", tier_index, 1, None, "util",
        "TIER_INDEX(value, ...thresholds)", "TIER_INDEX(1500, 1000, 1200, 1400, 1600)",
        "Tier reached by a value",
    ),
    # ref
    FunctionSpec(
        "REF", None, 3, 3, "ref",
        "REF(sheetName, rowId, columnName)", 'REF("Monsters", "goblin", "HP")',
        "Value of a cell in another sheet",
        text_args=frozenset({0, 1, 2}),
    ),
]
