"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Redis (durable job store backend)
    redis_url: str = "redis://localhost:6379/0"
    job_store_backend: str = "memory"  # "memory" or "redis"
    job_store_key: str = "procurement:jobs"

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 3000
    api_key: str = ""  # When set, job-starting endpoints require X-API-Key

    # ==========================================================================
    # Scraping Settings
    # ==========================================================================
    output_dir: str = "output"
    profiles_dir: str = "."  # Parent of the pw-profile-* directories
    headless: bool = True
    offers_limit: int = 15
    delay_ms: int = 1500
    login_wait_ms: int = 10000
    keep_open_ms: int = 0
    wait_results_ms: int = 8000
    wait_price_ms: int = 4000
    scroll_step_px: int = 720
    capture_html: bool = False
    capture_screenshot: bool = False
    # Re-parse a saved result page when the live page yields nothing; needs capture_html
    offline_parse_fallback: bool = True

    # Amazon search
    amazon_region: str = "com"

    # BrokerBin
    brokerbin_user: str = ""
    brokerbin_pass: str = ""

    # ==========================================================================
    # Invoice Capture Settings
    # ==========================================================================
    invoice_pdf_dir: str = "amazon_invoices"
    invoice_json_dir: str = "amazon_invoices_json"
    invoice_profile: str = "pw-profile"
    invoice_max_pages: int = 20
    card_brand: str = "American Express"
    card_last4: str = "1001"

    # ==========================================================================
    # Reconciliation Settings
    # ==========================================================================
    statement_root: str = "Amex Bill"
    statement_intake_subdir: str = "incoming"
    statement_archive_subdir: str = "activity logs"
    statement_results_subdir: str = "results"
    statement_order_column: str = "Amazon Order ID"
    statement_markers: list[str] = ["AMAZON", "AMZN.COM", "MARKETPLACE"]
    match_epsilon: str = "0.01"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
