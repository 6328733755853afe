import argparse
import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from softreg.ml_model import SoftmaxRegression
from softreg.persistence import DEFAULT_MODEL_PATH, save_model

log = logging.getLogger("softreg.train")

# 3 classes in 2-D, clustered around (-1, -1), (0, 1) and (2, 2)
TOY_FEATURES = np.array(
    [
        [-1.0, -1.2],
        [-0.8, -0.9],
        [-1.2, -1.1],
        [0.0, 1.0],
        [0.2, 0.8],
        [-0.1, 1.1],
        [2.0, 2.1],
        [1.8, 1.9],
        [2.2, 2.0],
    ]
)
TOY_LABELS = np.array([0, 0, 0, 1, 1, 1, 2, 2, 2])


@dataclass
class TrainingConfig:
    """Hyperparameters and file locations for one training run."""

    data_path: Path | None = None
    label_column: str = "label"
    lr: float = 0.1
    iterations: int = 2000
    l2: float = 1e-3
    seed: int | None = None
    model_path: Path = DEFAULT_MODEL_PATH
    loss_csv: Path | None = None
    points_csv: Path | None = None


def toy_dataset():
    columns = [f"x{i + 1}" for i in range(TOY_FEATURES.shape[1])]
    return TOY_FEATURES.copy(), TOY_LABELS.copy(), columns


def load_data(path: Path, label_column: str):
    """
    Read a CSV with one integer label column; every other column is a feature.
    Returns (X, y, feature_names).
    """
    frame = pd.read_csv(path)
    if label_column not in frame.columns:
        raise ValueError(f"column '{label_column}' not found in {path}")
    if len(frame.columns) < 2:
        raise ValueError(f"{path} needs at least one feature column besides '{label_column}'")
    if frame.empty:
        raise ValueError(f"{path} has no data rows")

    features = frame.drop(columns=[label_column])
    non_numeric = [c for c in features.columns if not pd.api.types.is_numeric_dtype(features[c])]
    if non_numeric:
        raise ValueError(f"non-numeric feature columns in {path}: {non_numeric}")
    if not pd.api.types.is_integer_dtype(frame[label_column]):
        raise ValueError(f"label column '{label_column}' must contain integers")

    X = features.to_numpy(dtype=np.float64)
    y = frame[label_column].to_numpy(dtype=np.int64)
    return X, y, [str(c) for c in features.columns]


def export_loss_csv(path: Path, loss_history) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame({"iter": np.arange(len(loss_history)), "loss": loss_history}).to_csv(
        path, index=False
    )


def export_points_csv(path: Path, X, y, probs, feature_names) -> None:
    """Columns: features..., y_true, y_pred, p0..pK. Use -1 for unknown y_true."""
    frame = pd.DataFrame(X, columns=feature_names)
    frame["y_true"] = y
    frame["y_pred"] = np.argmax(probs, axis=1)
    for k in range(probs.shape[1]):
        frame[f"p{k}"] = probs[:, k]
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, index=False)


def train(config: TrainingConfig) -> SoftmaxRegression:
    if config.data_path is None:
        log.info("no dataset given, training on the built-in toy dataset")
        X, y, feature_names = toy_dataset()
    else:
        X, y, feature_names = load_data(config.data_path, config.label_column)
    log.info("dataset: %d samples, %d features", X.shape[0], X.shape[1])

    model = SoftmaxRegression(
        lr=config.lr, iterations=config.iterations, l2=config.l2, random_state=config.seed
    )
    model.fit(X, y)

    acc = model.accuracy(X, y)
    print(f"Training accuracy: {acc:.4f}")

    save_model(model, config.model_path)
    print(f"Saved model to {config.model_path}")

    if config.loss_csv is not None and model.loss_history_:
        export_loss_csv(config.loss_csv, model.loss_history_)
        log.info("wrote loss curve to %s", config.loss_csv)
    if config.points_csv is not None:
        export_points_csv(config.points_csv, X, y, model.predict_proba(X), feature_names)
        log.info("wrote per-point probabilities to %s", config.points_csv)

    return model


def parse_args(argv=None) -> TrainingConfig:
    parser = argparse.ArgumentParser(description="Train a softmax regression classifier.")
    parser.add_argument(
        "--data",
        type=Path,
        default=None,
        help="CSV dataset; the built-in 3-class toy set is used when omitted.",
    )
    parser.add_argument("--label-column", default=TrainingConfig.label_column)
    parser.add_argument("--lr", type=float, default=TrainingConfig.lr)
    parser.add_argument("--iterations", type=int, default=TrainingConfig.iterations)
    parser.add_argument("--l2", type=float, default=TrainingConfig.l2)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--model-path",
        type=Path,
        default=TrainingConfig.model_path,
        help="Where to write the trained model (default: %(default)s)",
    )
    parser.add_argument("--loss-csv", type=Path, default=None, help="Export iter,loss as CSV.")
    parser.add_argument(
        "--points-csv", type=Path, default=None, help="Export per-point predictions as CSV."
    )
    args = parser.parse_args(argv)
    return TrainingConfig(
        data_path=args.data,
        label_column=args.label_column,
        lr=args.lr,
        iterations=args.iterations,
        l2=args.l2,
        seed=args.seed,
        model_path=args.model_path,
        loss_csv=args.loss_csv,
        points_csv=args.points_csv,
    )


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )
    train(parse_args(argv))


if __name__ == "__main__":
    main()
