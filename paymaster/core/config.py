import os
import json
import logging
from pydantic import BaseModel, Field
from typing import Dict, List
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str = "0") -> float:
    return float(os.getenv(name, default))


def _frequency_defaults_from_env() -> Dict[str, Dict[str, bool]]:
    """
    Per-frequency scenario toggle overrides, e.g.
    PAYROLL_FREQUENCY_DEFAULTS='{"weekly": {"allowances": false}}'
    """
    raw = os.getenv("PAYROLL_FREQUENCY_DEFAULTS")
    if not raw:
        return {
            "monthly": {},
            "semi_monthly": {},
            "biweekly": {"allowances": False},
            "weekly": {"allowances": False, "statutory": False},
        }
    return json.loads(raw)


class PayrollSettings(BaseModel):
    currency: str = Field(default=os.getenv("PAYROLL_CURRENCY", "KWD"))

    # Flat statutory amounts; no tax tables are applied
    tax_deduction: float = Field(default_factory=lambda: _env_float("PAYROLL_TAX_DEDUCTION"))
    social_security_deduction: float = Field(default_factory=lambda: _env_float("PAYROLL_SOCIAL_SECURITY_DEDUCTION"))
    health_insurance_deduction: float = Field(default_factory=lambda: _env_float("PAYROLL_HEALTH_INSURANCE_DEDUCTION"))

    use_attendance_for_deductions: bool = Field(
        default=os.getenv("PAYROLL_USE_ATTENDANCE", "false").lower() == "true"
    )
    default_frequency: str = os.getenv("PAYROLL_DEFAULT_FREQUENCY", "monthly")
    frequency_scenario_defaults: Dict[str, Dict[str, bool]] = Field(
        default_factory=_frequency_defaults_from_env
    )


class Config(BaseModel):
    app_name: str = "PayMaster Payroll Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./paymaster.db")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"

    # CORS: comma-separated origins loaded from env
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    payroll: PayrollSettings = PayrollSettings()

settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("Using a local SQLite file outside development; set DATABASE_URL.")
