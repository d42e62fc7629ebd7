"""
Configuration management for the supply chain forecasting engine.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


class Config:
    """Application configuration settings."""
    
    # Base paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = Path(os.getenv("SCENARIOS_DIR", str(PROJECT_ROOT / "scenarios")))
    RUNS_DIR: Path = Path(os.getenv("RUNS_DIR", str(PROJECT_ROOT / "runs")))
    
    # API settings
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_DEBUG: bool = os.getenv("API_DEBUG", "false").lower() == "true"
    
    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    
    # Override layer: max % any leaf value may move in one update pass
    MAX_CHANGE_PCT: float = float(os.getenv("MAX_CHANGE_PCT", "15"))
    
    # Summary list lengths
    TOP_N_SHORTAGES: int = int(os.getenv("TOP_N_SHORTAGES", "20"))
    TOP_N_GLUTS: int = int(os.getenv("TOP_N_GLUTS", "20"))
    TOP_N_BOTTLENECKS: int = int(os.getenv("TOP_N_BOTTLENECKS", "10"))
    
    @classmethod
    def ensure_directories(cls) -> None:
        """Ensure all required directories exist."""
        cls.RUNS_DIR.mkdir(parents=True, exist_ok=True)
