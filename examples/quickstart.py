"""
Quickstart example for the NEOHAZARD package.

Fits both estimators on a synthetic near-Earth-object table, checks the
chains and compares held-out scores. Run with:

    python examples/quickstart.py
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from neohazard import (
    FEATURE_COLUMNS,
    LABEL_COLUMN,
    ConvergenceDiagnostics,
    Dataset,
    PosteriorSampler,
    PredictiveEvaluator,
    RegularizedFitter,
    SamplerConfig,
    compare_results,
)


def synthetic_objects(n: int, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            "absolute_magnitude": rng.normal(22.0, 2.5, n),
            "relative_velocity": rng.gamma(4.0, 12_000.0, n),
            "orbit_uncertainty": rng.integers(0, 10, n).astype(float),
            "minimum_orbit_intersection": rng.exponential(0.15, n),
            "perihelion_distance": rng.uniform(0.3, 1.3, n),
            "eccentricity": rng.beta(2.0, 3.0, n),
        }
    )
    # bright objects on close orbits are the hazardous ones
    z = (
        -1.0
        - 1.2 * (df["absolute_magnitude"] - 22.0)
        - 25.0 * (df["minimum_orbit_intersection"] - 0.05)
    )
    df[LABEL_COLUMN] = (rng.random(n) < 1.0 / (1.0 + np.exp(-z))).astype(int)
    return df


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

    train = Dataset.from_frame(synthetic_objects(800, seed=1))
    test = Dataset.from_frame(synthetic_objects(200, seed=2))

    path = RegularizedFitter(l1_ratio=0.9, verbose=True).fit(
        train.X, train.y, np.logspace(-1, -4, 12), feature_names=FEATURE_COLUMNS
    )
    print("regularisation path:\n", path.to_frame().round(4))

    cfg = SamplerConfig(n_chains=2, iterations=6000, burn_in=1000, thin=2, seed=7)
    fit = PosteriorSampler(verbose=True).sample(train.X, train.y, cfg, feature_names=FEATURE_COLUMNS)
    report = ConvergenceDiagnostics().diagnose(fit)
    print("diagnostics:\n", report.to_frame().iloc[:, :7].round(3))
    if not report.converged:
        print("not converged:", "; ".join(report.reasons))

    evaluator = PredictiveEvaluator()
    results = {
        "elastic net": evaluator.evaluate(path.coefficients(-1), test.X, test.y),
        "bayesian": evaluator.evaluate(fit, test.X, test.y),
    }
    print(compare_results(results))


if __name__ == "__main__":
    main()
