import gspcr
import numpy as np


# Simulated data: 10 of 60 predictors load on the latent factor driving y
data = gspcr.generate_gspcr_data(
    n_samples=200,
    n_features=60,
    n_informative=10,
    effect=1.0,
    noise=1.0,
    random_state=42
)
X, y = data['X'], data['y']

# Functional interface: full CV surface and solution table
solution = gspcr.cv_gspcr(
    y, X,
    fit_measure='F',
    threshold_type='normalized',
    n_thresholds=20,
    component_range=range(1, 6),
    n_folds=10,
    random_state=42
)
print(solution.sol_table)

retained = solution.active_set('standard')
informative = [f'X{j + 1}' for j in data['informative']]
print(f"Informative predictors retained: "
      f"{len(np.intersect1d(retained, informative))}/{len(informative)}")

fig = gspcr.plot_gspcr_cv(solution, save_path="scripts/demo/simple_usage_cv.png")

# Estimator interface: CV then refit with the 1-SE solution
model = gspcr.GSPCRCV(
    fit_measure='BIC',
    component_range=(1, 2, 3, 4),
    refit_rule='oneSE',
    random_state=42
)
model.fit(X, y)
model.summary()
print(model.get_cv_results_df().head(10))

# Binary outcome with mixed predictor types
binary = gspcr.generate_gspcr_data(
    n_samples=200,
    n_features=30,
    family='binomial',
    n_discrete=3,
    effect=2.0,
    random_state=7
)
clf = gspcr.GSPCRCV(family='binomial', fit_measure='LRT', random_state=7)
clf.fit(binary['X'], binary['y'])
print(f"Training accuracy: {clf.score(binary['X'], binary['y']):.3f}")
