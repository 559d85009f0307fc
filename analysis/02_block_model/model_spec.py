"""Latent-process specifications for the ALR block model.

Each latent term of a model variant is one of four frozen dataclasses:

    Independent(index)                 iid effect per index level
    AR1(index, replicate)              stationary order-1 autoregression
    RandomWalk(order, index, replicate) intrinsic random walk, order 1 or 2
    SharedCopy(source)                 reuse another term's process on the
                                       copy-index columns, with per-column scale

``index`` and ``replicate`` name columns of the BlockResponse frame.  With a
``replicate`` column, one independent process is fitted per replicate level
(e.g. one temporal process per ALR coordinate); without it, a single process
is shared by every row that carries the index.

A ModelVariant bundles the terms with the fixed-effect structure (per-category
intercepts always, per-category linear trends optionally).  Production uses
PRODUCTION_VARIANT; model comparison iterates over VARIANTS.
"""

from dataclasses import dataclass, field

COPY_PREFIX = "copy_"


@dataclass(frozen=True)
class Independent:
    """iid Gaussian effect, one value per index level."""

    index: str
    replicate: str | None = None
    name: str = "iid"

    def describe(self) -> str:
        return f"{self.name}: iid({self.index})"


@dataclass(frozen=True)
class AR1:
    """Stationary AR(1) over the index, optionally replicated."""

    index: str
    replicate: str | None = None
    name: str = "ar1"

    def describe(self) -> str:
        rep = f", replicate={self.replicate}" if self.replicate else ""
        return f"{self.name}: ar1({self.index}{rep})"


@dataclass(frozen=True)
class RandomWalk:
    """Intrinsic random walk of order 1 or 2, centred to sum to zero."""

    order: int
    index: str
    replicate: str | None = None
    name: str = "rw"

    def describe(self) -> str:
        rep = f", replicate={self.replicate}" if self.replicate else ""
        return f"{self.name}: rw{self.order}({self.index}{rep})"


@dataclass(frozen=True)
class SharedCopy:
    """Reuse the process of term ``source`` on other copy-index columns.

    ``indices`` lists the copy columns that receive the copied process; None
    means every ``copy_k`` column except the source's own index.  With
    ``fixed=False`` each receiving column gets its own scale coefficient.
    """

    source: str
    indices: tuple[str, ...] | None = None
    fixed: bool = False
    name: str = "copy"

    def describe(self) -> str:
        targets = ", ".join(self.indices) if self.indices else "all copy columns"
        scale = "fixed" if self.fixed else "scaled"
        return f"{self.name}: copy({self.source} -> {targets}, {scale})"


LatentSpec = Independent | AR1 | RandomWalk | SharedCopy


@dataclass(frozen=True)
class ModelVariant:
    """A named block-model formula: intercepts, optional trends, latent terms."""

    name: str
    terms: tuple[LatentSpec, ...] = field(default_factory=tuple)
    linear_trend: bool = True

    def describe(self) -> str:
        fixed = "alpha[k]" + (" + beta[k]*time" if self.linear_trend else "")
        if not self.terms:
            return fixed
        return fixed + " + " + " + ".join(t.describe() for t in self.terms)

    def term(self, name: str) -> LatentSpec:
        for t in self.terms:
            if t.name == name:
                return t
        msg = f"Variant {self.name!r} has no term named {name!r}"
        raise KeyError(msg)


def copy_targets(spec: SharedCopy, source_index: str, n_coords: int) -> tuple[str, ...]:
    """Resolve the copy columns a SharedCopy term writes to."""
    if spec.indices is not None:
        return spec.indices
    return tuple(
        f"{COPY_PREFIX}{k}" for k in range(1, n_coords + 1) if f"{COPY_PREFIX}{k}" != source_index
    )


def validate_variant(variant: ModelVariant, columns: list[str] | tuple[str, ...]) -> None:
    """Check a variant against a BlockResponse frame's columns.

    Raises:
        ValueError: On duplicate term names, unknown index/replicate columns,
            unsupported random-walk orders, or a SharedCopy whose source is
            missing, defined later, replicated, or itself a copy.
    """
    seen: dict[str, LatentSpec] = {}
    for spec in variant.terms:
        if spec.name in seen:
            msg = f"Duplicate latent term name {spec.name!r} in variant {variant.name!r}"
            raise ValueError(msg)

        match spec:
            case RandomWalk(order=order) if order not in (1, 2):
                msg = f"RandomWalk order must be 1 or 2, got {order}"
                raise ValueError(msg)
            case SharedCopy(source=source):
                src = seen.get(source)
                if src is None:
                    msg = (
                        f"SharedCopy {spec.name!r} copies {source!r}, "
                        f"which is not defined before it"
                    )
                    raise ValueError(msg)
                if isinstance(src, SharedCopy) or src.replicate is not None:
                    msg = f"SharedCopy source {source!r} must be a single, non-replicated process"
                    raise ValueError(msg)
                for col in spec.indices or ():
                    if col not in columns:
                        msg = f"Unknown copy column {col!r} in term {spec.name!r}"
                        raise ValueError(msg)

        if not isinstance(spec, SharedCopy):
            for col in (spec.index, spec.replicate):
                if col is not None and col not in columns:
                    msg = f"Unknown column {col!r} in term {spec.name!r}"
                    raise ValueError(msg)
        seen[spec.name] = spec


# ── Presets ──────────────────────────────────────────────────────────────────

SHARED_GAMMA = Independent("shared_effect_index", name="gamma")
"""Contemporaneous correlation: one iid effect per time point shared by all coordinates."""

VARIANTS: dict[str, ModelVariant] = {
    "trend": ModelVariant("trend", (SHARED_GAMMA,)),
    "ar1": ModelVariant(
        "ar1",
        (SHARED_GAMMA, AR1("temporal_replicate_index", "category_index", name="temporal")),
    ),
    "ar1_common": ModelVariant(
        "ar1_common",
        (SHARED_GAMMA, AR1("temporal_replicate_index", None, name="temporal")),
    ),
    "rw1": ModelVariant(
        "rw1",
        (SHARED_GAMMA, RandomWalk(1, "temporal_replicate_index", "category_index", "temporal")),
        linear_trend=False,
    ),
    "rw2": ModelVariant(
        "rw2",
        (SHARED_GAMMA, RandomWalk(2, "temporal_replicate_index", "category_index", "temporal")),
        linear_trend=False,
    ),
    "rw2_shared_shape": ModelVariant(
        "rw2_shared_shape",
        (
            SHARED_GAMMA,
            RandomWalk(2, "copy_1", None, "shape"),
            SharedCopy("shape", name="shape_copy"),
        ),
        linear_trend=False,
    ),
}
"""Competing latent-trend structures compared by the evaluation phase."""

PRODUCTION_VARIANT = VARIANTS["ar1"]


# ── Graph Construction ───────────────────────────────────────────────────────


def build_process(spec: LatentSpec, n_levels: int, n_replicates: int = 1):
    """Instantiate a latent process inside an active model context.

    Must be called inside a ``with pm.Model():`` block.  Every process is
    non-centred: standard-normal innovations ``<name>_z`` scaled by
    ``<name>_sd`` and, for AR1, propagated with ``<name>_rho``.

    Args:
        spec: Independent, AR1, or RandomWalk term (SharedCopy has no process of its own).
        n_levels: Number of index levels (e.g. N time points).
        n_replicates: Number of independent replicates (1 when not replicated).

    Returns:
        PyMC Deterministic named ``spec.name`` with shape (n_replicates, n_levels).

    Raises:
        ValueError: For SharedCopy or an unsupported random-walk order.
    """
    import pymc as pm
    import pytensor.tensor as pt

    shape = (n_replicates, n_levels)
    match spec:
        case Independent(name=name):
            sd = pm.HalfNormal(f"{name}_sd", sigma=1.0)
            z = pm.Normal(f"{name}_z", mu=0, sigma=1, shape=shape)
            f = sd * z
        case AR1(name=name):
            sd = pm.HalfNormal(f"{name}_sd", sigma=1.0)
            rho = pm.Uniform(f"{name}_rho", lower=-1, upper=1)
            z = pm.Normal(f"{name}_z", mu=0, sigma=1, shape=shape)
            # Stationary start, then x[t] = rho * x[t-1] + sd * z[t]
            steps = [z[:, 0] * sd / pt.sqrt(1 - rho**2)]
            for t in range(1, n_levels):
                steps.append(rho * steps[t - 1] + sd * z[:, t])
            f = pt.stack(steps, axis=1)
        case RandomWalk(order=order, name=name) if order in (1, 2):
            sd = pm.HalfNormal(f"{name}_sd", sigma=1.0)
            z = pm.Normal(f"{name}_z", mu=0, sigma=1, shape=shape)
            f = pt.cumsum(sd * z, axis=1)
            if order == 2:
                f = pt.cumsum(f, axis=1)
            # Sum-to-zero per replicate
            f = f - f.mean(axis=1, keepdims=True)
        case _:
            msg = f"Cannot build a standalone process for {spec!r}"
            raise ValueError(msg)

    return pm.Deterministic(spec.name, f)
