import logging

import numpy as np

from softreg.errors import (
    InvalidInputError,
    NotFittedError,
    ShapeMismatchError,
)

log = logging.getLogger(__name__)

PROB_FLOOR = 1e-15  # clamp before log() so a zero probability never yields -inf
INIT_SCALE = 0.01
LOG_EVERY = 100


def softmax(z: np.ndarray) -> np.ndarray:
    """Row-wise softmax of a (n_samples, n_classes) score matrix."""
    z = np.asarray(z, dtype=np.float64)
    z = z - np.max(z, axis=1, keepdims=True)
    e = np.exp(z)
    return e / e.sum(axis=1, keepdims=True)


def as_feature_matrix(rows) -> np.ndarray:
    """
    Build a (n_samples, n_features) float64 matrix from an array or from a
    sequence of rows. Ragged rows are rejected instead of being padded.
    """
    if isinstance(rows, (list, tuple)):
        if not rows:
            return np.empty((0, 0), dtype=np.float64)
        if not all(isinstance(row, (list, tuple, np.ndarray)) for row in rows):
            raise InvalidInputError("expected a sequence of feature rows, not a flat list")
        widths = {len(row) for row in rows}
        if len(widths) > 1:
            raise InvalidInputError(
                f"all rows must have the same number of features, got widths {sorted(widths)}"
            )
    try:
        X = np.asarray(rows, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"features must be numeric: {exc}") from exc
    if X.ndim != 2:
        raise InvalidInputError(f"expected a 2-D feature matrix, got {X.ndim} dimension(s)")
    if not np.isfinite(X).all():
        raise InvalidInputError("features must be finite (no NaN or inf)")
    return X


def as_labels(y) -> np.ndarray:
    """Validate class labels: 1-D, integral, non-negative."""
    y = np.asarray(y)
    if y.ndim != 1:
        raise InvalidInputError(f"labels must be 1-D, got {y.ndim} dimension(s)")
    if y.size == 0:
        return y.astype(np.int64)
    if not np.issubdtype(y.dtype, np.integer):
        if not np.issubdtype(y.dtype, np.floating) or not np.all(np.mod(y, 1) == 0):
            raise InvalidInputError("labels must be integer class indices")
    y = y.astype(np.int64)
    if y.min() < 0:
        raise InvalidInputError("labels must be non-negative class indices")
    return y


def one_hot(y: np.ndarray, n_classes: int) -> np.ndarray:
    return np.eye(n_classes, dtype=np.float64)[y]  # (n_samples, n_classes)


def cross_entropy_loss(
    probs: np.ndarray, y: np.ndarray, W: np.ndarray, l2: float = 0.0
) -> float:
    """
    Mean negative log-likelihood of the true classes, plus 0.5 * l2 * ||W||^2
    when l2 > 0. The bias is never penalized.
    """
    n_samples = probs.shape[0]
    picked = probs[np.arange(n_samples), y]
    loss = -np.mean(np.log(np.maximum(picked, PROB_FLOOR)))
    if l2 > 0:
        loss += 0.5 * l2 * np.sum(W * W)
    return float(loss)


def gradients(
    X: np.ndarray, probs: np.ndarray, Y: np.ndarray, W: np.ndarray, l2: float = 0.0
) -> tuple[np.ndarray, np.ndarray]:
    """
    Closed-form gradients of the softmax cross-entropy loss.

    dScores = (P - Y) / n
    dW = X^T dScores + l2 * W   (penalty term only when l2 > 0)
    db = column sums of dScores
    """
    d_scores = (probs - Y) / X.shape[0]
    dW = X.T @ d_scores
    if l2 > 0:
        dW = dW + l2 * W
    db = d_scores.sum(axis=0)
    return dW, db


class SoftmaxRegression:
    """
    Multinomial (softmax) logistic regression trained with batch gradient descent.

    Every iteration uses the full training set; there is no early stopping and
    no shuffling, so `fit` always runs exactly `iterations` steps.
    """

    def __init__(
        self,
        lr: float = 0.1,
        iterations: int = 2000,
        l2: float = 1e-3,
        random_state: int | None = None,
    ):
        self.lr = lr
        self.iterations = iterations
        self.l2 = l2  # L2 regularization coefficient
        self.random_state = random_state
        self.W_: np.ndarray | None = None  # (n_features, n_classes)
        self.b_: np.ndarray | None = None  # (n_classes,)
        self.loss_history_: list[float] = []

    @property
    def is_fitted(self) -> bool:
        return self.W_ is not None and self.b_ is not None

    @property
    def n_features_(self) -> int:
        self._check_fitted()
        return int(self.W_.shape[0])

    @property
    def n_classes_(self) -> int:
        self._check_fitted()
        return int(self.W_.shape[1])

    def fit(self, X, y) -> "SoftmaxRegression":
        """
        Train on X (n_samples, n_features) and integer labels y (n_samples,).

        The class count is inferred as max(y) + 1, so labels are expected to be
        dense indices starting at 0. Parameters are initialized on the first
        call; later calls continue from them and therefore require the same
        feature and class counts.
        """
        X = as_feature_matrix(X)
        n_samples, n_features = X.shape
        if n_samples == 0:
            raise InvalidInputError("fit: X is empty")
        y = as_labels(y)
        if y.shape[0] != n_samples:
            raise InvalidInputError(
                f"fit: X has {n_samples} samples but y has {y.shape[0]} labels"
            )

        n_classes = int(y.max()) + 1
        self._init_params(n_features, n_classes)
        Y = one_hot(y, n_classes)

        self.loss_history_ = []
        for it in range(self.iterations):
            _, probs = self._forward(X)
            loss = cross_entropy_loss(probs, y, self.W_, self.l2)
            self.loss_history_.append(loss)

            dW, db = gradients(X, probs, Y, self.W_, self.l2)
            self.W_ -= self.lr * dW
            self.b_ -= self.lr * db

            if it % LOG_EVERY == 0:
                log.debug("iteration %d/%d loss=%.6f", it, self.iterations, loss)

        if self.loss_history_:
            log.info(
                "trained on %d samples, %d features, %d classes: loss %.6f -> %.6f",
                n_samples,
                n_features,
                n_classes,
                self.loss_history_[0],
                self.loss_history_[-1],
            )
        return self

    def _init_params(self, n_features: int, n_classes: int) -> None:
        if not self.is_fitted:
            # small random weights only break the symmetry between classes
            rng = np.random.default_rng(self.random_state)
            self.W_ = INIT_SCALE * rng.standard_normal((n_features, n_classes))
            self.b_ = np.zeros(n_classes, dtype=np.float64)
            return
        if self.W_.shape != (n_features, n_classes):
            raise ShapeMismatchError(
                f"fit: data has {n_features} features and {n_classes} classes but the "
                f"existing parameters expect {self.W_.shape[0]} and {self.W_.shape[1]}"
            )

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise NotFittedError("Model is not fitted.")

    def _forward(self, X: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        # scores = XW + b, probs = softmax(scores)
        self._check_fitted()
        if X.shape[1] != self.W_.shape[0]:
            raise ShapeMismatchError(
                f"expected {self.W_.shape[0]} features, got {X.shape[1]}"
            )
        scores = X @ self.W_ + self.b_
        if not np.isfinite(scores).all():
            raise InvalidInputError("scores overflowed: feature values too large for this model")
        return scores, softmax(scores)

    def predict_proba(self, X) -> np.ndarray:
        self._check_fitted()
        X = as_feature_matrix(X)
        if X.shape[0] == 0:
            return np.empty((0, self.n_classes_), dtype=np.float64)
        _, probs = self._forward(X)
        return probs

    def predict(self, X) -> np.ndarray:
        # np.argmax keeps the first maximum, so ties go to the lowest index
        probs = self.predict_proba(X)
        return np.argmax(probs, axis=1)

    def accuracy(self, X, y) -> float:
        y_pred = self.predict(X)
        y = as_labels(y)
        if y_pred.shape[0] != y.shape[0]:
            raise InvalidInputError(
                f"accuracy: {y_pred.shape[0]} predictions but {y.shape[0]} labels"
            )
        if y.shape[0] == 0:
            raise InvalidInputError("accuracy: no samples to score")
        return float(np.mean(y_pred == y))

    def save(self, path) -> None:
        from softreg.persistence import save_model

        save_model(self, path)

    @classmethod
    def load(cls, path) -> "SoftmaxRegression":
        from softreg.persistence import load_model

        return load_model(path)
