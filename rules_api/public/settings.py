"""
Application settings for the rules API service.
Externalizes engine limits so deployments can tune them without code changes.
"""
import os


class AppSettings:
    """Application settings with environment variable support."""

    def __init__(self):
        # Engine limits applied to every /api/rules/apply call
        self.default_max_iterations: int = int(os.getenv("DEFAULT_MAX_ITERATIONS", "10"))
        self.max_iterations_limit: int = int(os.getenv("MAX_ITERATIONS_LIMIT", "100"))
        self.expression_step_limit: int = int(os.getenv("EXPRESSION_STEP_LIMIT", "100000"))
        self.apply_time_budget_seconds: float = float(os.getenv("APPLY_TIME_BUDGET_SECONDS", "5"))
        self.max_rules: int = int(os.getenv("MAX_RULES", "500"))

        self.api_version: str = os.getenv("API_VERSION", "1.0.0")
        self.build_commit: str = os.getenv("BUILD_COMMIT", "unknown")
        self.enable_audit_logging: bool = os.getenv("ENABLE_AUDIT_LOGGING", "true").lower() == "true"
        self.enable_redaction: bool = os.getenv("ENABLE_REDACTION", "true").lower() == "true"


settings = AppSettings()
