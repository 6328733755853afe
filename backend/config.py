import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Load .env automatically


class Settings:
    def __init__(self):
        self.MODEL_PATH: Path = Path(
            os.getenv("SOFTREG_MODEL_PATH", str(Path("weights") / "softmax_model.json"))
        )
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.CORS_ORIGINS: list[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]


settings = Settings()
