"""Tests for the function library and registry."""

from __future__ import annotations

import math

import pytest

from balancebook.formulas import FormulaArgumentError, FunctionRegistry, FunctionSpec, default_registry
from balancebook.formulas import fn_game
from balancebook.formulas.library import CATEGORIES


# ────────────────────────────────────────────────────────────────
# Combat
# ────────────────────────────────────────────────────────────────


class TestCombat:
    def test_scale_curves(self) -> None:
        assert fn_game.scale(100, 10, 5, "linear") == 150
        assert fn_game.scale(100, 10, 1.1, "exponential") == pytest.approx(100 * 1.1**10)
        assert fn_game.scale(100, 10, 20, "logarithmic") == pytest.approx(100 + 20 * math.log(10))
        assert fn_game.scale(100, 10, 2, "quadratic") == 300

    def test_scale_logarithmic_clamps_level(self) -> None:
        assert fn_game.scale(100, 0, 20, "logarithmic") == 100

    def test_scale_scurve_midpoint(self) -> None:
        # At the midpoint the sigmoid contributes exactly half of max
        assert fn_game.scale(10, 50, 0.1, "scurve") == pytest.approx(60)
        assert fn_game.scale(0, 5, 1, "scurve", 200, 5) == pytest.approx(100)

    def test_scale_unknown_curve_is_linear(self) -> None:
        assert fn_game.scale(100, 10, 5, "wobbly") == 150

    def test_scale_curve_is_case_insensitive(self) -> None:
        assert fn_game.scale(100, 2, 2, "EXPONENTIAL") == 400

    def test_damage(self) -> None:
        assert fn_game.damage(100, 50) == pytest.approx(66.6666666667)
        assert fn_game.damage(100, 0, 2) == 200

    def test_dps(self) -> None:
        assert fn_game.dps(50, 2, 0.2, 1.5) == pytest.approx(110)
        assert fn_game.dps(50, 2) == 100

    def test_ttk(self) -> None:
        # 10 hits, the first lands immediately
        assert fn_game.ttk(1000, 100, 2) == 4.5
        assert fn_game.ttk(1000, 0, 2) == math.inf
        assert fn_game.ttk(1000, 100, 0) == math.inf

    def test_ehp(self) -> None:
        assert fn_game.ehp(1000, 50) == 1500
        assert fn_game.ehp(1000, 0, 0.5) == 2000
        assert fn_game.ehp(1000, 0, 5) == pytest.approx(100000)


# ────────────────────────────────────────────────────────────────
# Economy / stage
# ────────────────────────────────────────────────────────────────


class TestEconomy:
    def test_drop_rate(self) -> None:
        assert fn_game.drop_rate(0.1, 100) == pytest.approx(0.2)
        assert fn_game.drop_rate(0.1, 0, 10) == pytest.approx(0.05)
        assert fn_game.drop_rate(0.1, 0, 100) == pytest.approx(0.01)
        assert fn_game.drop_rate(0.9, 200) == 1.0

    def test_gacha_pity_boundaries(self) -> None:
        assert fn_game.gacha_pity(0.01, 90, 74, 90) == 1
        assert fn_game.gacha_pity(0.01, 50, 74, 90) == 0.01
        assert fn_game.gacha_pity(0.01, 74, 74, 90) == 0.01

    def test_gacha_pity_ramp(self) -> None:
        assert fn_game.gacha_pity(0.01, 82, 74, 90) == pytest.approx(0.01 + 0.99 * 0.5 * 0.5)

    def test_cost_is_floored(self) -> None:
        assert fn_game.cost(100, 5, 1.5) == math.floor(100 * 1.5**5)
        assert fn_game.cost(100, 3, 10, "linear") == 130

    def test_chance(self) -> None:
        assert fn_game.chance(0.5, 2) == pytest.approx(0.75)
        assert fn_game.chance(1.5, 1) == 1

    def test_expected_attempts(self) -> None:
        assert fn_game.expected_attempts(0.25) == 4
        assert fn_game.expected_attempts(0) == math.inf
        assert fn_game.expected_attempts(2) == 1

    def test_compound(self) -> None:
        assert fn_game.compound(1000, 0.1, 2) == pytest.approx(1210)


class TestStage:
    def test_wave_power(self) -> None:
        assert fn_game.wave_power(100, 1) == 100
        assert fn_game.wave_power(100, 3, 2) == 400

    def test_element_mult(self) -> None:
        assert fn_game.element_mult(1, 0) == 1.5
        assert fn_game.element_mult(0, 1) == 0.5
        assert fn_game.element_mult(2, 2) == 1
        assert fn_game.element_mult(0, 2, 2, 0.25) == 2

    def test_combo_mult(self) -> None:
        assert fn_game.combo_mult(10) == pytest.approx(2.0)
        assert fn_game.combo_mult(100) == 3.0


# ────────────────────────────────────────────────────────────────
# Utility
# ────────────────────────────────────────────────────────────────


class TestUtil:
    def test_clamp_lerp(self) -> None:
        assert fn_game.clamp(150, 0, 100) == 100
        assert fn_game.lerp(0, 100, 0.25) == 25
        assert fn_game.lerp(0, 100, 2) == 100

    def test_inverse_lerp_and_remap(self) -> None:
        assert fn_game.inverse_lerp(0, 100, 25) == 0.25
        assert fn_game.inverse_lerp(5, 5, 7) == 0
        assert fn_game.remap(50, 0, 100, 10, 20) == 15

    def test_diminishing(self) -> None:
        assert fn_game.diminishing(0, 50, 100) == 50
        # 50 over the softcap keeps 50 * (1 - 50/150)
        assert fn_game.diminishing(0, 150, 100) == pytest.approx(100 + 50 * (1 - 50 / 150))
        assert fn_game.diminishing(0, 1000, 100, 150) == 150

    def test_stamina_regen(self) -> None:
        assert fn_game.stamina_regen(100, 480, 48) == pytest.approx(10)
        assert fn_game.stamina_regen(100, 480, 10000) == 100

    def test_star_rating(self) -> None:
        assert fn_game.star_rating(80, 100) == 4
        assert fn_game.star_rating(75, 100) == 4  # 7.5 half-stars round up
        assert fn_game.star_rating(33, 100) == 1.5
        assert fn_game.star_rating(10, 0) == 0

    def test_tier_index(self) -> None:
        assert fn_game.tier_index(1500, 1000, 1200, 1400, 1600) == 3
        assert fn_game.tier_index(500, 1000, 1200) == 0
        assert fn_game.tier_index(5000, 1000, 1200) == 2


# ────────────────────────────────────────────────────────────────
# Registry
# ────────────────────────────────────────────────────────────────


class TestRegistry:
    def test_lookup_is_case_insensitive(self) -> None:
        registry = default_registry()
        assert "scale" in registry
        assert registry["scale"].name == "SCALE"

    def test_every_category_is_known(self) -> None:
        for spec in default_registry().values():
            assert spec.category in CATEGORIES

    def test_metadata_grouped_by_category(self) -> None:
        infos = default_registry().metadata()
        order = [CATEGORIES.index(i.category) for i in infos]
        assert order == sorted(order)
        assert infos[0].name == "SCALE"

    def test_metadata_single_category(self) -> None:
        names = [i.name for i in default_registry().metadata("stat")]
        assert names == ["SUM", "AVERAGE", "MIN", "MAX"]

    def test_ref_is_listed(self) -> None:
        [ref] = default_registry().metadata("ref")
        assert ref.syntax.startswith("REF(")

    def test_subset(self) -> None:
        sandbox = default_registry().subset(["sum", "MAX", "nope"])
        assert sorted(sandbox) == ["MAX", "SUM"]
        assert len(default_registry()) > len(sandbox)

    def test_extend_returns_new_registry(self) -> None:
        base = default_registry()
        double = FunctionSpec("DOUBLE", lambda x: x * 2, 1, 1, "util", "DOUBLE(x)")
        extended = base.extend([double])
        assert "DOUBLE" in extended
        assert "DOUBLE" not in base

    def test_unknown_category_rejected(self) -> None:
        with pytest.raises(ValueError, match="category"):
            FunctionRegistry([FunctionSpec("X", abs, 1, 1, "misc", "X(a)")])

    def test_registry_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            default_registry()["SUM"] = None  # type: ignore[index]

    def test_check_arity(self) -> None:
        spec = default_registry()["CLAMP"]
        spec.check_arity(3)
        with pytest.raises(FormulaArgumentError, match="CLAMP requires exactly 3 arguments, got 2"):
            spec.check_arity(2)


# ────────────────────────────────────────────────────────────────
# Non-finite inputs
# ────────────────────────────────────────────────────────────────


class TestNonFiniteInputs:
    @pytest.mark.parametrize(
        "fn, args",
        [
            (fn_game.clamp, (math.nan, 0, 100)),
            (fn_game.clamp, (50, 0, math.nan)),
            (fn_game.drop_rate, (0.1, 0, math.nan)),
            (fn_game.drop_rate, (math.nan, 0, 0)),
            (fn_game.combo_mult, (math.nan,)),
            (fn_game.gacha_pity, (0.01, 80, math.nan, math.nan)),
            (fn_game.scale, (100, math.nan, 20, "logarithmic")),
        ],
    )
    def test_nan_propagates(self, fn, args) -> None:
        assert math.isnan(fn(*args))

    def test_ttk_infinite_hp(self) -> None:
        assert fn_game.ttk(math.inf, 10, 1) == math.inf
        assert math.isnan(fn_game.ttk(math.nan, 10, 1))

    def test_star_rating_and_cost(self) -> None:
        assert fn_game.star_rating(math.inf, 100) == math.inf
        assert fn_game.cost(100, 10000, 1.5) == math.inf

    def test_element_mult_non_finite(self) -> None:
        assert fn_game.element_mult(math.inf, 0) == 1
        assert fn_game.element_mult(math.nan, 0) == 1
