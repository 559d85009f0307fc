"""Tests for the latent-process specification dataclasses.

Verifies frozen immutability, describe() output, variant validation, the
preset registry, copy-target resolution, and build_process() inside a real
PyMC model context.

Run: uv run pytest tests/test_model_spec.py -v
"""

import sys
from pathlib import Path

import numpy as np
import pymc as pm
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.model_spec import (
    AR1,
    PRODUCTION_VARIANT,
    SHARED_GAMMA,
    VARIANTS,
    Independent,
    ModelVariant,
    RandomWalk,
    SharedCopy,
    build_process,
    copy_targets,
    validate_variant,
)

BLOCK_COLUMNS = [
    "y_1",
    "y_2",
    "y_3",
    "shared_effect_index",
    "category_index",
    "temporal_replicate_index",
    "time",
    "copy_1",
    "copy_2",
    "copy_3",
]

# ── Frozen Immutability ──────────────────────────────────────────────────────


class TestFrozenImmutability:
    """Specs are frozen dataclasses."""

    def test_cannot_set_index(self):
        spec = AR1("time")
        with pytest.raises(AttributeError):
            spec.index = "category_index"  # type: ignore[misc]

    def test_cannot_set_variant_terms(self):
        with pytest.raises(AttributeError):
            PRODUCTION_VARIANT.terms = ()  # type: ignore[misc]

    def test_hashable_and_equal(self):
        assert RandomWalk(2, "time") == RandomWalk(2, "time")
        assert len({AR1("time"), AR1("time")}) == 1

    def test_replicate_is_second_positional_field(self):
        iid = Independent("time", "category_index")
        ar1 = AR1("time", "category_index")
        assert iid.replicate == ar1.replicate == "category_index"
        assert iid.name == "iid"


# ── describe() ───────────────────────────────────────────────────────────────


class TestDescribe:
    """Human-readable description strings."""

    def test_independent(self):
        assert SHARED_GAMMA.describe() == "gamma: iid(shared_effect_index)"

    def test_ar1_replicated(self):
        spec = AR1("temporal_replicate_index", "category_index", name="temporal")
        assert spec.describe() == "temporal: ar1(temporal_replicate_index, replicate=category_index)"

    def test_rw2(self):
        assert RandomWalk(2, "time").describe() == "rw: rw2(time)"

    def test_copy(self):
        assert SharedCopy("shape").describe() == "copy: copy(shape -> all copy columns, scaled)"
        fixed = SharedCopy("shape", ("copy_2",), fixed=True)
        assert fixed.describe() == "copy: copy(shape -> copy_2, fixed)"

    def test_variant_without_trend(self):
        desc = VARIANTS["rw1"].describe()
        assert desc.startswith("alpha[k] + gamma")
        assert "beta" not in desc

    def test_variant_with_trend(self):
        assert ModelVariant("bare").describe() == "alpha[k] + beta[k]*time"


# ── Presets ──────────────────────────────────────────────────────────────────


class TestPresets:
    def test_production_is_ar1(self):
        assert PRODUCTION_VARIANT is VARIANTS["ar1"]

    def test_registry_names_match_keys(self):
        for key, variant in VARIANTS.items():
            assert variant.name == key

    def test_every_variant_has_shared_effect(self):
        for variant in VARIANTS.values():
            assert variant.term("gamma") == SHARED_GAMMA

    def test_term_lookup_missing(self):
        with pytest.raises(KeyError, match="no term"):
            PRODUCTION_VARIANT.term("shape")


# ── validate_variant() ───────────────────────────────────────────────────────


class TestValidateVariant:
    def test_presets_valid(self):
        for variant in VARIANTS.values():
            validate_variant(variant, BLOCK_COLUMNS)

    def test_duplicate_name(self):
        variant = ModelVariant("dup", (AR1("time", name="x"), RandomWalk(1, "time", name="x")))
        with pytest.raises(ValueError, match="Duplicate"):
            validate_variant(variant, BLOCK_COLUMNS)

    def test_unknown_column(self):
        with pytest.raises(ValueError, match="Unknown column"):
            validate_variant(ModelVariant("v", (AR1("season"),)), BLOCK_COLUMNS)

    def test_unknown_replicate(self):
        with pytest.raises(ValueError, match="Unknown column"):
            validate_variant(ModelVariant("v", (AR1("time", "basin"),)), BLOCK_COLUMNS)

    def test_bad_rw_order(self):
        with pytest.raises(ValueError, match="order"):
            validate_variant(ModelVariant("v", (RandomWalk(3, "time"),)), BLOCK_COLUMNS)

    def test_copy_before_source(self):
        variant = ModelVariant("v", (SharedCopy("shape"), RandomWalk(2, "copy_1", name="shape")))
        with pytest.raises(ValueError, match="not defined before"):
            validate_variant(variant, BLOCK_COLUMNS)

    def test_copy_of_replicated_source(self):
        variant = ModelVariant(
            "v", (AR1("time", "category_index", name="f"), SharedCopy("f"))
        )
        with pytest.raises(ValueError, match="non-replicated"):
            validate_variant(variant, BLOCK_COLUMNS)

    def test_copy_unknown_target(self):
        variant = ModelVariant(
            "v", (RandomWalk(1, "copy_1", name="s"), SharedCopy("s", ("copy_9",)))
        )
        with pytest.raises(ValueError, match="copy_9"):
            validate_variant(variant, BLOCK_COLUMNS)


class TestCopyTargets:
    def test_all_but_source(self):
        assert copy_targets(SharedCopy("s"), "copy_1", 3) == ("copy_2", "copy_3")

    def test_explicit(self):
        assert copy_targets(SharedCopy("s", ("copy_3",)), "copy_1", 3) == ("copy_3",)


# ── build_process() ─────────────────────────────────────────────────────────


class TestBuildProcess:
    """Latent processes built inside a PyMC model."""

    def test_independent_shape(self):
        with pm.Model() as model:
            f = build_process(SHARED_GAMMA, n_levels=5)
        assert "gamma" in model.named_vars
        assert "gamma_sd" in model.named_vars
        assert tuple(model.initial_point()["gamma_z"].shape) == (1, 5)
        assert f.ndim == 2

    def test_ar1_variables(self):
        with pm.Model() as model:
            build_process(AR1("time", "category_index", name="temporal"), 6, n_replicates=3)
        assert {"temporal", "temporal_sd", "temporal_rho", "temporal_z"} <= set(model.named_vars)
        point = model.initial_point()
        assert point["temporal_z"].shape == (3, 6)

    def test_ar1_deterministic_shape(self):
        with pm.Model() as model:
            build_process(AR1("time", name="f"), 4, n_replicates=2)
        draw = pm.draw(model["f"], random_seed=1)
        assert draw.shape == (2, 4)

    @pytest.mark.parametrize("order", [1, 2])
    def test_random_walk_centred(self, order):
        with pm.Model() as model:
            build_process(RandomWalk(order, "time", name="rw"), 10, n_replicates=2)
        draw = pm.draw(model["rw"], random_seed=3)
        assert draw.shape == (2, 10)
        np.testing.assert_allclose(draw.mean(axis=1), 0.0, atol=1e-9)

    def test_shared_copy_rejected(self):
        with pm.Model(), pytest.raises(ValueError, match="standalone"):
            build_process(SharedCopy("s"), 5)
