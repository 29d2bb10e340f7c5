"""Super learner modeling package.

- Base learners behind a uniform train/predict capability, registered by name
- Out-of-fold stacking over a deterministic fold plan
- Combination weights (NNLS or non-negative log-likelihood on the simplex)
- Cross-validated AUC with influence-curve confidence intervals
- Win / tie probability grids and calibration tables
"""
