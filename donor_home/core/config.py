from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path

# Get the project root directory (two levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

class Settings(BaseSettings):
    # Donor backend API
    DONOR_API_URL: str = "http://localhost:5000/api"
    DONOR_API_TOKEN: Optional[str] = None
    HTTP_TIMEOUT: float = 30.0

    # Eligibility
    DONATION_DEFERRAL_DAYS: int = 120 # whole-blood deferral; plasma/platelets are shorter

    # Home screen limits
    FEATURED_CAMPAIGNS_LIMIT: int = 5
    EMERGENCIES_LIMIT: int = 5

    model_config = SettingsConfigDict(env_file=str(ENV_FILE), case_sensitive=True, extra="ignore")

settings = Settings()
