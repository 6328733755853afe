import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, List

import numpy as np
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from backend.config import Settings, settings
from softreg.errors import InvalidInputError, ModelFormatError
from softreg.ml_model import SoftmaxRegression
from softreg.persistence import load_model

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [backend] %(message)s",
)
log = logging.getLogger(__name__)


class ModelHandle:
    """
    Owns the model served by the app.

    Readers call `get()` and predict on the returned instance without holding
    any lock. Writers build a complete new model first and then swap it in,
    so a model is never mutated while requests are using it.
    """

    def __init__(self, model_path: Path, model: SoftmaxRegression | None = None):
        self.model_path = Path(model_path)
        self._model = model
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()

    def get(self) -> SoftmaxRegression | None:
        with self._lock:
            return self._model

    def set(self, model: SoftmaxRegression) -> None:
        with self._lock:
            self._model = model

    def reload(self) -> SoftmaxRegression:
        with self._write_lock:
            model = load_model(self.model_path)
            self.set(model)
        return model


class PredictRequest(BaseModel):
    features: List[List[float]]


class PredictResponse(BaseModel):
    predictions: List[int]
    probabilities: List[List[float]]
    confidence: List[float]


def get_model_handle(request: Request) -> ModelHandle:
    return request.app.state.model_handle


def get_model(handle: ModelHandle = Depends(get_model_handle)) -> SoftmaxRegression:
    model = handle.get()
    if model is None:
        raise HTTPException(status_code=500, detail="Model not loaded")
    return model


@asynccontextmanager
async def lifespan(app: FastAPI):
    handle: ModelHandle = app.state.model_handle
    if handle.get() is None:
        if handle.model_path.exists():
            try:
                model = handle.reload()
                log.info(
                    "Model loaded from %s: %d features, %d classes",
                    handle.model_path,
                    model.n_features_,
                    model.n_classes_,
                )
            except (OSError, ModelFormatError):
                log.exception("Failed to load model from %s", handle.model_path)
        else:
            log.warning("No model file at %s; /predict will fail until /reload", handle.model_path)
    yield


def create_app(handle: ModelHandle | None = None, config: Settings = settings) -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    app.state.model_handle = handle or ModelHandle(config.MODEL_PATH)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/predict", response_model=PredictResponse)
    def predict(body: PredictRequest, model: SoftmaxRegression = Depends(get_model)) -> Dict:
        if not body.features:
            raise HTTPException(status_code=400, detail="features must not be empty")
        try:
            probs = model.predict_proba(body.features)
        except InvalidInputError as e:
            raise HTTPException(status_code=400, detail=str(e))

        idx = np.argmax(probs, axis=1)
        return {
            "predictions": idx.tolist(),
            "probabilities": probs.tolist(),
            "confidence": probs[np.arange(probs.shape[0]), idx].tolist(),
        }

    @app.post("/reload")
    def reload_model(handle: ModelHandle = Depends(get_model_handle)) -> Dict:
        try:
            model = handle.reload()
        except (OSError, ModelFormatError) as e:
            log.exception("Reload from %s failed", handle.model_path)
            raise HTTPException(status_code=500, detail=f"Error loading model: {e}")
        return {
            "status": "reloaded",
            "n_features": model.n_features_,
            "n_classes": model.n_classes_,
        }

    @app.get("/health")
    async def health(handle: ModelHandle = Depends(get_model_handle)):
        return {"status": "healthy", "model_loaded": handle.get() is not None}

    return app


app = create_app()
