"""Runtime settings for the prediction service."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root if present
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

FLOOD_ARTIFACT = "flood_model.pkl"
DROUGHT_ARTIFACT = "drought_model.pkl"
CROP_ARTIFACT = "crop_model.pkl"

DEFAULT_DATABASE_URL = "sqlite:///agriml.db"


def _optional_int(key: str) -> Optional[int]:
    val = os.environ.get(key)
    if val is None or val == "":
        return None
    return int(val)


@dataclass(frozen=True)
class Settings:
    model_dir: Path = Path("models")
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    log_file: Optional[str] = None
    price_random_seed: Optional[int] = None
    regression_iterations: int = 1000
    regression_learning_rate: float = 0.01
    price_history_points: int = 200

    @property
    def flood_artifact(self) -> Path:
        return self.model_dir / FLOOD_ARTIFACT

    @property
    def drought_artifact(self) -> Path:
        return self.model_dir / DROUGHT_ARTIFACT

    @property
    def crop_artifact(self) -> Path:
        return self.model_dir / CROP_ARTIFACT

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            model_dir=Path(os.environ.get("AGRIML_MODEL_DIR", "models")),
            database_url=os.environ.get("AGRIML_DATABASE_URL", DEFAULT_DATABASE_URL),
            log_level=os.environ.get("AGRIML_LOG_LEVEL", "INFO"),
            log_file=os.environ.get("AGRIML_LOG_FILE") or None,
            price_random_seed=_optional_int("PRICE_RANDOM_SEED"),
            regression_iterations=int(os.environ.get("REGRESSION_ITERATIONS", 1000)),
            regression_learning_rate=float(os.environ.get("REGRESSION_LEARNING_RATE", 0.01)),
            price_history_points=int(os.environ.get("PRICE_HISTORY_POINTS", 200)),
        )
