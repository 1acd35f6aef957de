"""Configuration for the WebDriver browser driver."""

from pydantic import BaseModel, Field


class WebDriverConfig(BaseModel):
    """Configuration for a W3C WebDriver session."""

    base_url: str = "http://localhost:4444"
    browser: str = "chrome"
    headless: bool = True
    script_timeout: float = Field(default=60, gt=0)
    page_load_timeout: float = Field(default=60, gt=0)
