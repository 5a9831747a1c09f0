import os
import logging
from pydantic import BaseModel, Field
from dotenv import load_dotenv

DEFAULT_USER_AGENT = 'SEO-Best-Practices-Assessment-Tool/1.0'

# maps settings fields to the environment variables that override them
ENV_OVERRIDES = {
    "fetch_timeout": "SEO_AUDIT_FETCH_TIMEOUT",
    "max_redirects": "SEO_AUDIT_MAX_REDIRECTS",
    "max_content_size": "SEO_AUDIT_MAX_CONTENT_SIZE",
    "crawl_delay": "SEO_AUDIT_CRAWL_DELAY",
    "max_pages": "SEO_AUDIT_MAX_PAGES",
    "max_links_to_verify": "SEO_AUDIT_MAX_LINKS_TO_VERIFY",
    "crawl_concurrency": "SEO_AUDIT_CRAWL_CONCURRENCY",
    "user_agent": "SEO_AUDIT_USER_AGENT",
}


class AuditSettings(BaseModel):
    """
    Tunables for one audit session. Every field has a default so an empty
    configuration is valid; bad values raise a pydantic ValidationError.
    """
    fetch_timeout: float = Field(45.0, gt=0)
    max_redirects: int = Field(10, ge=0)
    max_content_size: int = Field(10 * 1024 * 1024, gt=0)
    crawl_delay: float = Field(0.5, ge=0)
    max_pages: int = Field(50, ge=1)
    max_links_to_verify: int = Field(5, ge=0)
    link_check_timeout: float = Field(5.0, gt=0)
    link_check_max_redirects: int = Field(3, ge=0)
    link_check_delay: float = Field(0.1, ge=0)
    crawl_concurrency: int = Field(4, ge=1, le=32)
    max_links_per_page: int = Field(10, ge=0)
    sitemap_timeout: float = Field(5.0, gt=0)
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls, **overrides) -> "AuditSettings":
        """Builds settings from a .env file / SEO_AUDIT_* variables, then explicit overrides."""
        load_dotenv()
        values = {}
        for field, env_name in ENV_OVERRIDES.items():
            if (raw := os.getenv(env_name)) is not None and raw.strip():
                values[field] = raw.strip()
        values.update(overrides)
        if values:
            logging.info(f"Audit settings overridden: {sorted(values)}")
        return cls(**values)
