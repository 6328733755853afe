"""
Reading and writing trained softmax models.

A model file is a small JSON document: dimensions, the weight matrix
flattened in row-major order, the bias vector and the hyperparameters used to
train it. Training diagnostics (loss history) are not stored.
"""

import json
import logging
import os
import tempfile
from numbers import Real
from pathlib import Path

import numpy as np

from softreg.errors import ModelFormatError, NotFittedError
from softreg.ml_model import SoftmaxRegression

log = logging.getLogger(__name__)

DEFAULT_MODEL_PATH = Path("weights") / "softmax_model.json"
FORMAT_VERSION = 1
REQUIRED_FIELDS = ("n_features", "n_classes", "w", "b", "lr", "n_iter", "reg_lambda")


def model_to_dict(model: SoftmaxRegression) -> dict:
    if not model.is_fitted:
        raise NotFittedError("save: model not trained")
    if not (np.isfinite(model.W_).all() and np.isfinite(model.b_).all()):
        raise ModelFormatError("save: model parameters contain NaN or inf")
    n_features, n_classes = model.W_.shape
    return {
        "format_version": FORMAT_VERSION,
        "n_features": int(n_features),
        "n_classes": int(n_classes),
        "w": model.W_.ravel(order="C").tolist(),
        "b": model.b_.tolist(),
        "lr": float(model.lr),
        "n_iter": int(model.iterations),
        "reg_lambda": float(model.l2),
    }


def save_model(model: SoftmaxRegression, path) -> Path:
    """
    Write `model` to `path` atomically: the record goes to a temporary file in
    the same directory which then replaces the destination in one step.
    """
    payload = json.dumps(model_to_dict(model), indent=2, allow_nan=False)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    log.info("saved softmax model to %s", path)
    return path


def _require_int(record: dict, key: str) -> int:
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ModelFormatError(f"'{key}' must be an integer, got {value!r}")
    return value


def _require_real(record: dict, key: str) -> float:
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ModelFormatError(f"'{key}' must be a number, got {value!r}")
    return float(value)


def _require_floats(record: dict, key: str) -> np.ndarray:
    values = record[key]
    if not isinstance(values, list) or any(
        isinstance(v, bool) or not isinstance(v, Real) for v in values
    ):
        raise ModelFormatError(f"'{key}' must be a list of numbers")
    arr = np.asarray(values, dtype=np.float64)
    if not np.isfinite(arr).all():
        raise ModelFormatError(f"'{key}' contains NaN or inf")
    return arr


def model_from_dict(record) -> SoftmaxRegression:
    if not isinstance(record, dict):
        raise ModelFormatError("model file must contain a JSON object")
    missing = [key for key in REQUIRED_FIELDS if key not in record]
    if missing:
        raise ModelFormatError(f"model file is missing fields: {', '.join(missing)}")

    # files written before the version field existed are version 1
    version = record.get("format_version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version > FORMAT_VERSION:
        raise ModelFormatError(f"unsupported model format version: {version!r}")

    n_features = _require_int(record, "n_features")
    n_classes = _require_int(record, "n_classes")
    if n_features <= 0 or n_classes <= 0:
        raise ModelFormatError(
            f"dimensions must be positive, got n_features={n_features} n_classes={n_classes}"
        )

    w = _require_floats(record, "w")
    b = _require_floats(record, "b")
    if w.shape[0] != n_features * n_classes:
        raise ModelFormatError(
            f"W dimensions mismatch: expected {n_features * n_classes} values, got {w.shape[0]}"
        )
    if b.shape[0] != n_classes:
        raise ModelFormatError(
            f"B dimensions mismatch: expected {n_classes} values, got {b.shape[0]}"
        )

    model = SoftmaxRegression(
        lr=_require_real(record, "lr"),
        iterations=_require_int(record, "n_iter"),
        l2=_require_real(record, "reg_lambda"),
    )
    model.W_ = w.reshape(n_features, n_classes)
    model.b_ = b
    return model


def load_model(path) -> SoftmaxRegression:
    """
    Read a model written by `save_model`. I/O errors propagate unchanged;
    anything wrong with the content raises ModelFormatError.
    """
    path = Path(path)
    with path.open("rb") as handle:
        raw = handle.read()
    try:
        record = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ModelFormatError(f"{path} is not valid JSON: {exc}") from exc

    model = model_from_dict(record)
    log.info(
        "loaded softmax model from %s (%d features, %d classes)",
        path,
        model.n_features_,
        model.n_classes_,
    )
    return model
