"""Models Package - Splitting, nearest-neighbor classifier, k search, thresholds, evaluation

Modules:
    errors       - InputValidationError, InsufficientDataError, UndefinedMetricError
    splitting    - stratified train/test split and k-fold assignment
    classifiers  - NeighborModel, fit / predict_proba, KNNClassifier
    evaluation   - repeated CV search, GridSearchTuner, ConfusionMatrix, ModelEvaluator
    thresholds   - Youden's J threshold selection and ROC curve
    experiment   - ExperimentManager (tune -> threshold -> evaluate)

Import from the submodules directly, e.g. ``from models.evaluation import GridSearchTuner``.
"""
